"""
Test suite for IngestionPipeline.

The PDF reader is bypassed: pages are fed straight to the pipeline and
embeddings come from the keyword-bag fake.
"""

from pathlib import Path

import pytest

from tests.fakes import DIMENSION, FakeChunkCollection, FakeEmbedder, make_chunk
from tsrag.config.settings import settings
from tsrag.src.core.ingestor import IngestionPipeline
from tsrag.src.database.vector_store import BookVectorStore
from tsrag.src.utils.rate_limiter import RateLimiter

PAGES = [
    "Chapter 12: Using Generic Types\nGenerics let one function work over many types.",
    "A generic class keeps its type parameter for every member.",
    "",
    "For example, identity<T> returns exactly the value it receives.",
    "Chapter 13: Advanced Generic Types\nConditional types choose between two types.",
    "Note: mapped types transform every property of an object type.",
]


@pytest.fixture(autouse=True)
def small_dimension(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "EMBEDDING_DIMENSION", DIMENSION)


@pytest.fixture
def collection() -> FakeChunkCollection:
    return FakeChunkCollection()


@pytest.fixture
def pipeline(embedder: FakeEmbedder, collection: FakeChunkCollection, monkeypatch: pytest.MonkeyPatch) -> IngestionPipeline:
    monkeypatch.setattr(IngestionPipeline, "load_pages", lambda self: PAGES)
    store = BookVectorStore(embedder, collection=collection)
    return IngestionPipeline(store, rate_limiter=RateLimiter(max_requests=100), batch_size=2)


class TestBuildChunks:
    def test_blank_pages_should_be_skipped(self, pipeline: IngestionPipeline) -> None:
        chunks = pipeline.build_chunks(PAGES)

        assert len(chunks) == 5
        assert [chunk.metadata.page for chunk in chunks] == [1, 2, 4, 5, 6]


    def test_chapter_context_should_carry_across_pages(self, pipeline: IngestionPipeline) -> None:
        chunks = pipeline.build_chunks(PAGES)

        assert [chunk.metadata.chapter for chunk in chunks] == [
            "Chapter 12: Using Generic Types",
            "Chapter 12: Using Generic Types",
            "Chapter 12: Using Generic Types",
            "Chapter 13: Advanced Generic Types",
            "Chapter 13: Advanced Generic Types",
        ]


    def test_chunks_should_carry_content_type(self, pipeline: IngestionPipeline) -> None:
        types = [chunk.metadata.type for chunk in pipeline.build_chunks(PAGES)]

        assert types[2] == "example"
        assert types[4] == "reference"


    def test_long_page_should_split_into_overlapping_chunks(self, pipeline: IngestionPipeline) -> None:
        page = " ".join(f"Sentence {i} explains generic constraints." for i in range(80))

        chunks = pipeline.build_chunks([page])

        assert len(chunks) > 1
        assert all(len(chunk.text) <= settings.CHUNK_SIZE for chunk in chunks)
        assert all(chunk.metadata.page == 1 for chunk in chunks)


class TestRun:
    @pytest.mark.asyncio
    async def test_run_should_embed_in_batches_and_store_everything(self, pipeline: IngestionPipeline, embedder: FakeEmbedder, collection: FakeChunkCollection) -> None:
        summary = await pipeline.run()

        assert summary["total_pages"] == 6
        assert summary["total_chunks"] == 5
        assert summary["stored_chunks"] == 5
        assert summary["skipped_chunks"] == 0
        assert summary["types"]["example"] == 1
        assert embedder.document_calls == 3
        assert len(collection.inserted) == 5
        assert all(len(document["embedding"]) == DIMENSION for document in collection.inserted)


    @pytest.mark.asyncio
    async def test_run_should_resume_after_stored_chunks(self, embedder: FakeEmbedder, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(IngestionPipeline, "load_pages", lambda self: PAGES)
        collection = FakeChunkCollection([make_chunk(embedder, "already stored", page=1, chapter="Chapter 12", chunk_type="explanation") for _ in range(2)])
        pipeline = IngestionPipeline(BookVectorStore(embedder, collection=collection), rate_limiter=RateLimiter(max_requests=100), batch_size=2)

        summary = await pipeline.run()

        assert summary["skipped_chunks"] == 2
        assert summary["stored_chunks"] == 3
        assert collection.inserted[0]["metadata"]["page"] == 4


    @pytest.mark.asyncio
    async def test_run_without_resume_should_store_everything_again(self, embedder: FakeEmbedder, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(IngestionPipeline, "load_pages", lambda self: PAGES)
        collection = FakeChunkCollection([make_chunk(embedder, "already stored", page=1, chapter="Chapter 12", chunk_type="explanation")])
        pipeline = IngestionPipeline(BookVectorStore(embedder, collection=collection), rate_limiter=RateLimiter(max_requests=100), batch_size=2)

        summary = await pipeline.run(resume=False)

        assert summary["stored_chunks"] == 5


def test_missing_pdf_should_raise(embedder: FakeEmbedder, tmp_path: Path) -> None:
    pipeline = IngestionPipeline(BookVectorStore(embedder, collection=FakeChunkCollection()), pdf_path=tmp_path / "missing.pdf")

    with pytest.raises(FileNotFoundError):
        pipeline.load_pages()
