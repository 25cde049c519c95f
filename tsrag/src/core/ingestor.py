"""
tsrag - IngestionPipeline
==========================
One-shot batch pipeline that reads the book PDF, cleans and chunks it,
classifies every chunk and persists the embedded chunks through
``BookVectorStore``.

Key design decisions:
    • **Dependency Injection**: receives ``BookVectorStore`` (and with it
      the embedder); classifier and rate limiter are injectable too.
    • **Page-aware chunking**: pages are split one at a time with
      ``RecursiveCharacterTextSplitter`` so each chunk knows the page
      it came from (used as the classifier's page fallback).
    • **Quota safety**: embeddings are requested in batches of
      ``EMBED_BATCH_SIZE``; every batch waits on the ``RateLimiter``.
    • **Resumable**: chunks already in the collection (by count) are
      skipped, so an interrupted run continues where it stopped.

Usage:
    from tsrag.src.core.ingestor import IngestionPipeline
    pipeline = IngestionPipeline(vector_store)
    summary  = await pipeline.run()
"""

from __future__ import annotations

import time
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import TypedDict

from langchain_text_splitters import RecursiveCharacterTextSplitter
from pypdf import PdfReader

from tsrag.config.settings import settings
from tsrag.src.core.chunk_classifier import ChunkClassifier
from tsrag.src.core.models import Chunk, ChunkMetadata
from tsrag.src.database.vector_store import BookVectorStore
from tsrag.src.utils.async_utils import with_timeout
from tsrag.src.utils.logger import get_logger
from tsrag.src.utils.rate_limiter import RateLimiter
from tsrag.src.utils.text_utils import clean_text

logger = get_logger(__name__)

_SEPARATORS = ["\n\n", "\n", ". ", " ", ""]


@dataclass(frozen=True)
class PendingChunk:
    """A classified chunk not yet embedded."""

    text: str
    metadata: ChunkMetadata


class IngestionSummary(TypedDict):
    total_pages: int
    total_chunks: int
    skipped_chunks: int
    stored_chunks: int
    types: dict[str, int]
    elapsed_seconds: float


class IngestionPipeline:
    """
    End-to-end book ingestion: read → clean → chunk → classify → embed → store.

    Parameters
    ----------
    vector_store
        An initialised ``BookVectorStore`` instance (injected).
    pdf_path
        Override the source PDF.  Defaults to ``settings.PDF_PATH``.
    classifier
        Metadata extractor; a fresh ``ChunkClassifier`` per pipeline by default.
    rate_limiter
        Throttle for embedding requests.
    batch_size
        Chunks per embedding request.  Defaults to ``settings.EMBED_BATCH_SIZE``.
    """

    __slots__ = ("_store", "_pdf_path", "_classifier", "_limiter", "_batch_size", "_splitter")

    def __init__(self, vector_store: BookVectorStore, pdf_path: Path | None = None, classifier: ChunkClassifier | None = None, rate_limiter: RateLimiter | None = None, batch_size: int | None = None) -> None:
        self._store = vector_store
        self._pdf_path = Path(pdf_path or settings.PDF_PATH)
        self._classifier = classifier or ChunkClassifier()
        self._limiter = rate_limiter or RateLimiter()
        self._batch_size = batch_size or settings.EMBED_BATCH_SIZE
        self._splitter = RecursiveCharacterTextSplitter(chunk_size=settings.CHUNK_SIZE, chunk_overlap=settings.CHUNK_OVERLAP, separators=_SEPARATORS)

    # ══════════════════════════════════════════════════════════════════
    #  PUBLIC ENTRY POINT
    # ══════════════════════════════════════════════════════════════════

    async def run(self, resume: bool = True) -> IngestionSummary:
        """
        Execute the full ingestion.

        Parameters
        ----------
        resume
            Skip as many leading chunks as the collection already holds.

        Returns
        -------
        IngestionSummary
            Page and chunk counts, type distribution and elapsed time.
        """
        t_start = time.perf_counter()
        pages = self.load_pages()
        chunks = self.build_chunks(pages)
        types = dict(Counter(chunk.metadata.type for chunk in chunks))
        for chunk_type, count in sorted(types.items()):
            logger.info("[INGEST] %-12s %5d (%.1f%%)", chunk_type, count, 100 * count / max(len(chunks), 1))

        skipped = await self._store.count() if resume else 0
        if skipped:
            logger.info("[INGEST] Resuming: %d of %d chunk(s) already stored.", min(skipped, len(chunks)), len(chunks))
        pending = chunks[skipped:]

        stored = 0
        for start in range(0, len(pending), self._batch_size):
            batch = pending[start : start + self._batch_size]
            stored += await self._embed_and_store(batch)
            logger.info("[INGEST] Progress: %d/%d chunk(s).", skipped + stored, len(chunks))

        elapsed = time.perf_counter() - t_start
        logger.info("[INGEST] Complete: %d chunk(s) stored, %d skipped, in %.2fs.", stored, min(skipped, len(chunks)), elapsed)
        return {"total_pages": len(pages), "total_chunks": len(chunks), "skipped_chunks": min(skipped, len(chunks)), "stored_chunks": stored, "types": types, "elapsed_seconds": round(elapsed, 2)}

    # ══════════════════════════════════════════════════════════════════
    #  READ → CHUNK → CLASSIFY
    # ══════════════════════════════════════════════════════════════════

    def load_pages(self) -> list[str]:
        """Extract and clean the text of every PDF page."""
        if not self._pdf_path.exists():
            raise FileNotFoundError(f"PDF not found: {self._pdf_path}")

        reader = PdfReader(str(self._pdf_path))
        pages = [clean_text(page.extract_text() or "") for page in reader.pages]
        logger.info("[INGEST] Read %d page(s) (%d chars) from %s.", len(pages), sum(len(p) for p in pages), self._pdf_path.name)
        return pages


    def build_chunks(self, pages: list[str]) -> list[PendingChunk]:
        """Split pages into overlapping chunks and classify each one."""
        self._classifier.reset()
        chunks: list[PendingChunk] = []
        for page_number, page_text in enumerate(pages, start=1):
            if not page_text.strip():
                continue
            for piece in self._splitter.split_text(page_text):
                chunks.append(PendingChunk(text=piece, metadata=self._classifier.classify(piece, fallback_page=page_number)))

        stats = self._classifier.stats()
        logger.info("[INGEST] %d chunk(s) built; %d chapter heading(s), %d section heading(s) detected.", len(chunks), stats["chapters_detected"], stats["sections_detected"])
        return chunks

    # ══════════════════════════════════════════════════════════════════
    #  EMBED → STORE
    # ══════════════════════════════════════════════════════════════════

    async def _embed_and_store(self, batch: list[PendingChunk]) -> int:
        await self._limiter.wait()
        t_embed = time.perf_counter()
        vectors = await with_timeout(self._store.embedder.aembed_documents([chunk.text for chunk in batch]), settings.UPSTREAM_TIMEOUT_SECONDS, "embedding")
        logger.debug("[INGEST] Embedded %d chunk(s) in %.1fms.", len(batch), (time.perf_counter() - t_embed) * 1000)

        return await self._store.add_chunks([Chunk(text=chunk.text, embedding=vector, metadata=chunk.metadata) for chunk, vector in zip(batch, vectors)])
