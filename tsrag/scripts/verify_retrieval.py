"""
tsrag - Retrieval Verification
===============================
Runs a fixed set of questions through ``RAGService`` against the live
corpus and prints the sources, cache status and timings of each
answer.  The last question is out of scope and must be refused.  The
first question is asked twice to show the cache hit.

Run:  python -m tsrag.scripts.verify_retrieval
"""

from __future__ import annotations

import asyncio
import time

from tsrag.src.core.cache import ResponseCache
from tsrag.src.core.models import QueryOptions
from tsrag.src.core.rag_engine import RAGService
from tsrag.src.database.mongo import close_mongo_client
from tsrag.src.database.vector_store import BookVectorStore, create_embedder

SAMPLE_QUESTIONS: list[tuple[str, str]] = [
    ("Generics", "Como funcionam generics no TypeScript?"),
    ("Interfaces", "Explique o que são interfaces em TypeScript"),
    ("Type annotations", "O que são type annotations?"),
    ("Generics (cache)", "como funcionam   generics no typescript?"),
    ("Out of scope", "Como fazer um loop em Python?"),
]


async def verify() -> None:
    store = BookVectorStore(create_embedder())
    rag = RAGService(store, ResponseCache())
    print(f"Corpus holds {await store.count()} chunk(s).\n")

    try:
        for name, question in SAMPLE_QUESTIONS:
            print("-" * 60)
            print(f"{name}: {question}")

            t_start = time.perf_counter()
            result = await rag.query(question, QueryOptions(use_cache=True, use_hybrid_search=True, top_k=3))
            elapsed_ms = (time.perf_counter() - t_start) * 1000

            print(f"  Time       : {elapsed_ms:.0f}ms")
            print(f"  From cache : {'yes' if result.from_cache else 'no'}")
            print(f"  Sources    : {len(result.sources)}")
            for i, source in enumerate(result.sources, 1):
                meta = source.metadata
                print(f"    {i}. {meta.chapter} (p. {meta.page}) [{meta.type}] score={source.score:.4f}")
            print(f"  Answer     : {result.response[:300]}")
            print()

        print(f"Cache: {rag.get_cache_stats()}")
    finally:
        close_mongo_client()


if __name__ == "__main__":
    asyncio.run(verify())
