"""
tsrag - BookVectorStore
========================
Retrieval layer over the MongoDB Atlas chunk collection, providing:
  • Dense vector search (``$vectorSearch``) with candidate over-fetch
  • Full-text search (``$search``) over the chunk text
  • Hybrid search: both searches issued concurrently, merged by RRF
  • Chunk insertion with a corpus-wide embedding-dimension check

Design decisions:
  • **Dependency Injection**: the embedder and the motor collection are
    injected, so the store runs against fakes in tests.
  • **One metadata predicate**: filters are translated once and applied
    identically to both searches; fusion never re-filters.
  • **Loud failures**: driver errors become ``RetrievalUnavailable`` and
    deadlines become ``UpstreamTimeout``; an empty list always means
    "no matches", never "store down".

Usage:
    from tsrag.src.database.vector_store import BookVectorStore, create_embedder

    store = BookVectorStore(create_embedder())
    results = await store.hybrid_search("How do generics work?", limit=5)
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Protocol, runtime_checkable

import motor.motor_asyncio
from pymongo.errors import PyMongoError
from pymongo.operations import SearchIndexModel

from tsrag.config.settings import settings
from tsrag.src.core.errors import EmbeddingDimensionMismatch, RetrievalUnavailable
from tsrag.src.core.fusion import reciprocal_rank_fusion
from tsrag.src.core.models import Chunk, SearchFilters, SearchResult
from tsrag.src.database.mongo import get_embeddings_collection
from tsrag.src.utils.async_utils import with_timeout
from tsrag.src.utils.logger import get_logger

logger = get_logger(__name__)

# ── Type Aliases ──────────────────────────────────────────────────────
MongoFilter = dict[str, str | dict[str, int]]
Pipeline = list[dict[str, object]]

# Metadata fields declared as filterable on the vector index
FILTER_FIELDS: tuple[str, ...] = ("metadata.type", "metadata.chapter", "metadata.section", "metadata.page")


# ── Embedder Protocol ─────────────────────────────────────────────────

@runtime_checkable
class Embedder(Protocol):
    """Structural type for any LangChain-compatible async embedding model."""

    async def aembed_documents(self, texts: list[str]) -> list[list[float]]: ...

    async def aembed_query(self, text: str) -> list[float]: ...


def create_embedder() -> Embedder:
    """Initialise the Gemini embedding model via LangChain."""
    from langchain_google_genai import GoogleGenerativeAIEmbeddings

    embedder = GoogleGenerativeAIEmbeddings(model=settings.EMBEDDING_MODEL, google_api_key=settings.GOOGLE_API_KEY.get_secret_value())
    logger.info("Embedder initialised: %s", settings.EMBEDDING_MODEL)
    return embedder


def build_metadata_filter(filters: SearchFilters | None) -> MongoFilter:
    """
    Translate ``SearchFilters`` into a MongoDB predicate on ``metadata.*``.

    Returns an empty dict when no predicate is set.  Page bounds are
    checked against ``None`` so that a bound of ``0`` is honoured.
    """
    if filters is None or filters.is_empty():
        return {}

    predicate: MongoFilter = {}
    if filters.type is not None:
        predicate["metadata.type"] = filters.type
    if filters.chapter is not None:
        predicate["metadata.chapter"] = filters.chapter
    if filters.section is not None:
        predicate["metadata.section"] = filters.section

    page_range: dict[str, int] = {}
    if filters.min_page is not None:
        page_range["$gte"] = filters.min_page
    if filters.max_page is not None:
        page_range["$lte"] = filters.max_page
    if page_range:
        predicate["metadata.page"] = page_range

    return predicate


def _check_limit(limit: int) -> None:
    if limit < 1:
        raise ValueError(f"limit must be ≥ 1, got {limit}")


class BookVectorStore:
    """
    High-level abstraction over the Atlas chunk collection.

    Parameters
    ----------
    embedder : Embedder
        Any object satisfying the ``Embedder`` protocol.
    collection
        Override the motor collection.  Defaults to the embeddings collection.
    vector_index
        Override the vector index name.  Defaults to ``settings.VECTOR_INDEX_NAME``.
    text_index
        Override the full-text index name.  Defaults to ``settings.FULLTEXT_INDEX_NAME``.
    timeout_seconds
        Deadline for every call to the store or the embedder.
    """

    __slots__ = ("embedder", "_collection", "_vector_index", "_text_index", "_timeout")

    def __init__(self, embedder: Embedder, collection: motor.motor_asyncio.AsyncIOMotorCollection | None = None, vector_index: str | None = None, text_index: str | None = None, timeout_seconds: float | None = None) -> None:
        self.embedder: Embedder = embedder
        self._collection = collection if collection is not None else get_embeddings_collection()
        self._vector_index: str = vector_index or settings.VECTOR_INDEX_NAME
        self._text_index: str = text_index or settings.FULLTEXT_INDEX_NAME
        self._timeout: float = timeout_seconds if timeout_seconds is not None else settings.UPSTREAM_TIMEOUT_SECONDS

    # ══════════════════════════════════════════════════════════════════
    #  SEARCH PRIMITIVES
    # ══════════════════════════════════════════════════════════════════

    async def embed_query(self, query_text: str) -> list[float]:
        """Embed a query; embedder errors propagate unmodified."""
        return await with_timeout(self.embedder.aembed_query(query_text), self._timeout, "embedding")


    async def vector_search(self, query_embedding: list[float], limit: int = 5, filters: SearchFilters | None = None) -> list[SearchResult]:
        """
        Rank chunks by vector similarity to *query_embedding*.

        Requests ``limit × VECTOR_CANDIDATE_MULTIPLIER`` candidates from
        the approximate index before truncating to *limit*.

        Returns
        -------
        list[SearchResult]
            Best first, ``score`` = raw ``vectorSearchScore``.
        """
        _check_limit(limit)
        stage: dict[str, object] = {"index": self._vector_index, "path": "embedding", "queryVector": query_embedding, "numCandidates": limit * settings.VECTOR_CANDIDATE_MULTIPLIER, "limit": limit}
        predicate = build_metadata_filter(filters)
        if predicate:
            stage["filter"] = predicate

        pipeline: Pipeline = [{"$vectorSearch": stage}, {"$project": {"_id": 0, "text": 1, "metadata": 1, "score": {"$meta": "vectorSearchScore"}}}]
        results = await self._aggregate(pipeline, "vector search")
        logger.info("[RETRIEVAL] Vector search returned %d result(s) (limit=%d, filter=%s).", len(results), limit, predicate or "none")
        return results


    async def full_text_search(self, query_text: str, limit: int = 5, filters: SearchFilters | None = None) -> list[SearchResult]:
        """
        Rank chunks by keyword relevance of their text to *query_text*.

        Returns
        -------
        list[SearchResult]
            Best first, ``score`` = raw ``searchScore``.
        """
        _check_limit(limit)
        pipeline: Pipeline = [{"$search": {"index": self._text_index, "text": {"query": query_text, "path": "text"}}}]
        predicate = build_metadata_filter(filters)
        if predicate:
            pipeline.append({"$match": predicate})
        pipeline.append({"$limit": limit})
        pipeline.append({"$project": {"_id": 0, "text": 1, "metadata": 1, "score": {"$meta": "searchScore"}}})

        results = await self._aggregate(pipeline, "text search")
        logger.info("[RETRIEVAL] Text search returned %d result(s) (limit=%d, filter=%s).", len(results), limit, predicate or "none")
        return results


    async def hybrid_search(self, query_text: str, limit: int = 5, filters: SearchFilters | None = None, vector_weight: float | None = None, text_weight: float | None = None) -> list[SearchResult]:
        """
        Fuse vector and full-text rankings with Reciprocal Rank Fusion.

        Both searches request ``limit × HYBRID_FETCH_MULTIPLIER`` results,
        run concurrently with the same filters, and are merged by
        ``reciprocal_rank_fusion``.

        Parameters
        ----------
        query_text
            Natural-language query, embedded once.
        limit
            Maximum fused results (≥ 1).
        filters
            Metadata predicate applied to both searches.
        vector_weight, text_weight
            List weights; default to ``settings.VECTOR_WEIGHT`` / ``settings.TEXT_WEIGHT``.

        Returns
        -------
        list[SearchResult]
            Best first, ``score`` = fused RRF sum.
        """
        _check_limit(limit)
        vector_weight = settings.VECTOR_WEIGHT if vector_weight is None else vector_weight
        text_weight = settings.TEXT_WEIGHT if text_weight is None else text_weight
        fetch = limit * settings.HYBRID_FETCH_MULTIPLIER

        t_start = time.perf_counter()
        query_embedding = await self.embed_query(query_text)
        vector_results, text_results = await asyncio.gather(self.vector_search(query_embedding, fetch, filters), self.full_text_search(query_text, fetch, filters))

        fused = reciprocal_rank_fusion([(vector_results, vector_weight), (text_results, text_weight)], limit)
        elapsed_ms = (time.perf_counter() - t_start) * 1000
        logger.info("[RETRIEVAL] Hybrid: %d vector + %d text → %d fused in %.1fms.", len(vector_results), len(text_results), len(fused), elapsed_ms)
        return fused


    async def similarity_search(self, query_text: str, limit: int = 5, filters: SearchFilters | None = None) -> list[SearchResult]:
        """Embed *query_text* and run ``vector_search``."""
        _check_limit(limit)
        query_embedding = await self.embed_query(query_text)
        return await self.vector_search(query_embedding, limit, filters)


    async def _aggregate(self, pipeline: Pipeline, operation: str) -> list[SearchResult]:
        """Run an aggregation under the deadline, mapping driver errors."""
        try:
            cursor = self._collection.aggregate(pipeline)
            documents = await with_timeout(cursor.to_list(length=None), self._timeout, operation)
        except PyMongoError as exc:
            logger.error("[RETRIEVAL] %s failed: %s", operation, exc)
            raise RetrievalUnavailable(f"{operation} failed: {exc}") from exc
        return [SearchResult.model_validate(doc) for doc in documents]

    # ══════════════════════════════════════════════════════════════════
    #  CORPUS MAINTENANCE
    # ══════════════════════════════════════════════════════════════════

    async def add_chunks(self, chunks: Sequence[Chunk], expected_dimension: int | None = None) -> int:
        """
        Persist chunks after validating every embedding's dimension.

        Nothing is written when any chunk fails the check.

        Returns
        -------
        int
            Number of documents inserted.

        Raises
        ------
        EmbeddingDimensionMismatch
            If a chunk's embedding length differs from the corpus dimension.
        """
        if not chunks:
            return 0

        dimension = expected_dimension if expected_dimension is not None else settings.EMBEDDING_DIMENSION
        for index, chunk in enumerate(chunks):
            if len(chunk.embedding) != dimension:
                raise EmbeddingDimensionMismatch(dimension, len(chunk.embedding), index)

        now = datetime.now(timezone.utc)
        documents = [{**chunk.model_dump(by_alias=True), "createdAt": now} for chunk in chunks]
        try:
            result = await with_timeout(self._collection.insert_many(documents), self._timeout, "chunk insert")
        except PyMongoError as exc:
            logger.error("[RETRIEVAL] Failed to insert %d chunk(s): %s", len(documents), exc)
            raise RetrievalUnavailable(f"chunk insert failed: {exc}") from exc

        inserted = len(result.inserted_ids)
        logger.info("[RETRIEVAL] Inserted %d chunk(s).", inserted)
        return inserted


    async def count(self) -> int:
        """Return the total number of chunk documents."""
        return await self._collection.count_documents({})


    async def drop(self) -> int:
        """Delete every chunk document (useful for re-ingestion)."""
        result = await self._collection.delete_many({})
        logger.info("[RETRIEVAL] Deleted %d chunk(s).", result.deleted_count)
        return result.deleted_count


    async def ensure_search_indexes(self, dimension: int | None = None) -> list[str]:
        """
        Create the Atlas vector and full-text indexes when missing.

        Returns
        -------
        list[str]
            Names of the indexes created by this call.
        """
        dimension = dimension if dimension is not None else settings.EMBEDDING_DIMENSION
        existing = {index["name"] async for index in self._collection.list_search_indexes()}

        vector_fields: list[dict[str, object]] = [{"type": "vector", "path": "embedding", "numDimensions": dimension, "similarity": "cosine"}]
        vector_fields.extend({"type": "filter", "path": field} for field in FILTER_FIELDS)
        wanted = [
            SearchIndexModel(definition={"fields": vector_fields}, name=self._vector_index, type="vectorSearch"),
            SearchIndexModel(definition={"mappings": {"dynamic": False, "fields": {"text": {"type": "string"}}}}, name=self._text_index, type="search"),
        ]

        created: list[str] = []
        for model in wanted:
            name = model.document["name"]
            if name in existing:
                logger.info("[RETRIEVAL] Search index '%s' already exists.", name)
                continue
            created.append(await self._collection.create_search_index(model))
            logger.info("[RETRIEVAL] Created search index '%s'.", name)
        return created


    async def inspect(self, dimension: int | None = None) -> dict[str, int | dict[str, int]]:
        """Summarise corpus health: counts, embedding coverage and type distribution."""
        dimension = dimension if dimension is not None else settings.EMBEDDING_DIMENSION
        total = await self._collection.count_documents({})
        with_embedding = await self._collection.count_documents({"embedding": {"$exists": True, "$ne": []}})
        right_dimension = await self._collection.count_documents({"embedding": {"$size": dimension}})
        empty_text = await self._collection.count_documents({"$or": [{"text": ""}, {"text": {"$exists": False}}]})

        cursor = self._collection.aggregate([{"$group": {"_id": "$metadata.type", "count": {"$sum": 1}}}])
        types = {str(row["_id"]): row["count"] for row in await cursor.to_list(length=None)}

        return {"total": total, "with_embedding": with_embedding, "right_dimension": right_dimension, "empty_text": empty_text, "types": types}


    def __repr__(self) -> str:
        return f"BookVectorStore(vector_index='{self._vector_index}', text_index='{self._text_index}')"
