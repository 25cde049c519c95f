"""
tsrag - Database Setup & Ingestion Script
==========================================
CLI entry point that orchestrates:
    1. Load settings (fail fast on a missing ``GOOGLE_API_KEY`` / ``MONGO_URI``).
    2. Initialise the embedder and ``BookVectorStore``.
    3. Optional maintenance: drop chunks, clear conversations, create
       the Atlas search indexes, validate stored embeddings.
    4. Run the ``IngestionPipeline`` over the book PDF.
    5. Print a structured execution summary with timing breakdown.

Flags:
    --drop                 Delete every stored chunk before ingesting.
    --drop-only            Delete every stored chunk and exit.
    --create-indexes       Create the vector and full-text indexes if missing.
    --validate             Report corpus health and exit.
    --clear-conversations  Delete every stored conversation and exit.
    --pdf PATH             Ingest another PDF than ``settings.PDF_PATH``.
    --no-resume            Re-embed from the first chunk even if chunks exist.

Usage:
    python -m tsrag.scripts.setup_db                    # Resumable ingestion
    python -m tsrag.scripts.setup_db --drop             # Clean re-ingestion
    python -m tsrag.scripts.setup_db --create-indexes   # Indexes, then ingest
    python -m tsrag.scripts.setup_db --validate         # Health report only
"""

from __future__ import annotations

import argparse
import asyncio
import sys
import time
from pathlib import Path

from pydantic import ValidationError


# ── CLI Argument Parsing ───────────────────────────────────────────────

def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="setup_db", description="tsrag: initialise the MongoDB Atlas corpus and ingest the book.")
    parser.add_argument("--drop", action="store_true", default=False, help="Delete every stored chunk before ingesting.")
    parser.add_argument("--drop-only", action="store_true", default=False, help="Delete every stored chunk and exit (no ingestion).")
    parser.add_argument("--create-indexes", action="store_true", default=False, help="Create the Atlas vector and full-text search indexes when missing.")
    parser.add_argument("--validate", action="store_true", default=False, help="Report stored-embedding health and exit.")
    parser.add_argument("--clear-conversations", action="store_true", default=False, help="Delete every stored conversation and exit.")
    parser.add_argument("--pdf", type=Path, default=None, help="Path of the PDF to ingest.")
    parser.add_argument("--no-resume", action="store_true", default=False, help="Embed from the first chunk even when chunks are already stored.")
    return parser.parse_args(argv)


# ── Main Orchestration ─────────────────────────────────────────────────

async def _run(args: argparse.Namespace) -> int:
    t_start = time.perf_counter()

    # ── 0. Load settings + .env (timed) ────────────────────────────────
    t_settings = time.perf_counter()
    try:
        from tsrag.config.settings import settings
    except ValidationError as exc:
        print("\n[FATAL] Configuration error, check your .env file:\n")
        print(f"  {exc}")
        print()
        return 1
    settings_ms = (time.perf_counter() - t_settings) * 1000

    # Settings are valid, so the logger can be imported safely
    from tsrag.src.database.conversation_store import MongoConversationStore
    from tsrag.src.database.mongo import close_mongo_client
    from tsrag.src.database.vector_store import BookVectorStore, create_embedder
    from tsrag.src.utils.logger import get_logger

    logger = get_logger(__name__)
    logger.info("Settings loaded in %.1fms", settings_ms)
    _print_header(settings, args.pdf or settings.PDF_PATH)

    try:
        # ── 1. Initialise embedder + store (timed) ─────────────────────
        t_init = time.perf_counter()
        store = BookVectorStore(create_embedder())
        existing = await store.count()
        init_ms = (time.perf_counter() - t_init) * 1000
        logger.info("Store ready: %d existing chunk(s) (%.1fms).", existing, init_ms)

        # ── 2. Maintenance modes ───────────────────────────────────────
        if args.clear_conversations:
            deleted = await MongoConversationStore().delete_all()
            print(f"  Conversations deleted: {deleted}")
            return 0

        if args.validate:
            _print_report(await store.inspect(), settings.EMBEDDING_DIMENSION)
            return 0

        if args.drop or args.drop_only:
            logger.warning("Deleting every chunk from '%s' as requested.", settings.EMBEDDINGS_COLLECTION)
            await store.drop()
            if args.drop_only:
                _print_footer(None, time.perf_counter() - t_start, settings_ms, init_ms)
                return 0

        if args.create_indexes:
            created = await store.ensure_search_indexes()
            logger.info("Search indexes created: %s", ", ".join(created) or "none (already present)")

        # ── 3. Run IngestionPipeline ───────────────────────────────────
        from tsrag.src.core.ingestor import IngestionPipeline

        pipeline = IngestionPipeline(store, pdf_path=args.pdf)
        summary = await pipeline.run(resume=not args.no_resume)

        # ── 4. Print execution summary ─────────────────────────────────
        _print_footer(summary, time.perf_counter() - t_start, settings_ms, init_ms)
        return 0
    finally:
        close_mongo_client()


def main(argv: list[str] | None = None) -> None:
    sys.exit(asyncio.run(_run(_parse_args(argv))))


# ── Pretty-print helpers ──────────────────────────────────────────────

def _print_header(settings: object, pdf_path: Path) -> None:
    api_key_val = settings.GOOGLE_API_KEY.get_secret_value()  # type: ignore[attr-defined]
    masked = f"****{api_key_val[-4:]}" if len(api_key_val) > 4 else "****"

    mongo_uri_val = settings.MONGO_URI.get_secret_value()  # type: ignore[attr-defined]
    mongo_masked = mongo_uri_val.split("@")[-1] if "@" in mongo_uri_val else "****"

    print()
    print("=" * 60)
    print(f"  TSRAG: {settings.BOOK_TITLE} corpus setup")  # type: ignore[attr-defined]
    print("=" * 60)
    print(f"  Environment  : {settings.ENV}")  # type: ignore[attr-defined]
    print(f"  Embedding    : {settings.EMBEDDING_MODEL} ({settings.EMBEDDING_DIMENSION} dims)")  # type: ignore[attr-defined]
    print(f"  MongoDB      : {mongo_masked} (db: {settings.MONGO_DB_NAME})")  # type: ignore[attr-defined]
    print(f"  PDF          : {pdf_path}")
    print(f"  Chunking     : {settings.CHUNK_SIZE} chars, overlap {settings.CHUNK_OVERLAP}")  # type: ignore[attr-defined]
    print(f"  Rate limit   : {settings.RATE_LIMIT_RPM} req/min, batch {settings.EMBED_BATCH_SIZE}")  # type: ignore[attr-defined]
    print(f"  API Key      : {masked}")
    print("=" * 60)
    print()


def _print_report(report: dict[str, int | dict[str, int]], dimension: int) -> None:
    print("=" * 60)
    print("  CORPUS HEALTH")
    print("-" * 60)
    print(f"  Documents              : {report['total']}")
    print(f"  With embedding         : {report['with_embedding']}")
    print(f"  With {dimension} dimensions  : {report['right_dimension']}")
    print(f"  Empty text             : {report['empty_text']}")
    print("-" * 60)
    for chunk_type, count in sorted(report["types"].items()):  # type: ignore[union-attr]
        print(f"  {chunk_type:<22} : {count}")
    print("=" * 60)
    print()


def _print_footer(summary: dict[str, object] | None, elapsed: float, settings_ms: float, init_ms: float) -> None:
    startup_s = (settings_ms + init_ms) / 1000

    print()
    print("=" * 60)
    print("  EXECUTION SUMMARY")
    print("-" * 60)
    if summary is not None:
        print(f"  Pages read           : {summary['total_pages']}")
        print(f"  Chunks built         : {summary['total_chunks']}")
        print(f"  Chunks skipped       : {summary['skipped_chunks']}")
        print(f"  Chunks stored        : {summary['stored_chunks']}")
        print("-" * 60)
    print("  TIMING BREAKDOWN")
    print("-" * 60)
    print(f"  Settings + .env load : {settings_ms:>8.1f}ms")
    print(f"  Embedder + store     : {init_ms:>8.1f}ms")
    print(f"  Processing time      : {elapsed - startup_s:>8.2f}s")
    print(f"  Total elapsed        : {elapsed:>8.2f}s")
    print("=" * 60)
    print()


# ── Entry point ────────────────────────────────────────────────────────

if __name__ == "__main__":
    main()
