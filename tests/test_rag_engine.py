"""
Test suite for the RAG orchestrator.

Covers the guardrail and empty-retrieval short-circuits, caching,
context assembly, response shaping and failure propagation.
"""

from unittest.mock import AsyncMock

import pytest
from langchain_core.messages import HumanMessage, SystemMessage

from tests.fakes import FakeChatModel, FakeChunkCollection, FakeEmbedder, UnavailableError
from tsrag.config.prompt_templates import NO_CONTEXT_RESPONSE, OUT_OF_SCOPE_RESPONSE
from tsrag.config.settings import settings
from tsrag.src.core.cache import ResponseCache
from tsrag.src.core.errors import GenerationFailed, RetrievalUnavailable, UpstreamTimeout
from tsrag.src.core.models import ChunkMetadata, QueryOptions, SearchFilters, SearchResult
from tsrag.src.core.rag_engine import RAGService
from tsrag.src.database.vector_store import BookVectorStore


def _result(text: str, score: float, chapter: str = "Chapter 12") -> SearchResult:
    return SearchResult(text=text, metadata=ChunkMetadata(page=7, chapter=chapter, type="explanation", book_title="Essential TypeScript 5"), score=score)


@pytest.fixture
def store(embedder: FakeEmbedder, chunk_collection: FakeChunkCollection) -> BookVectorStore:
    return BookVectorStore(embedder, collection=chunk_collection)


@pytest.fixture
def cache() -> ResponseCache:
    return ResponseCache(max_size=10, ttl_seconds=60)


@pytest.fixture
def rag(store: BookVectorStore, cache: ResponseCache, chat_model: FakeChatModel) -> RAGService:
    return RAGService(store, cache, llm=chat_model)


@pytest.fixture
def mock_store() -> AsyncMock:
    store = AsyncMock(spec=BookVectorStore)
    store.hybrid_search.return_value = [_result("Generics allow reuse.", 0.02)]
    store.similarity_search.return_value = [_result("Generics allow reuse.", 0.91)]
    return store


class TestShortCircuits:
    @pytest.mark.asyncio
    async def test_out_of_scope_should_refuse_without_retrieval(self, mock_store: AsyncMock, cache: ResponseCache, chat_model: FakeChatModel) -> None:
        rag = RAGService(mock_store, cache, llm=chat_model)

        result = await rag.query("Como fazer um loop em Python?")

        assert result.response == OUT_OF_SCOPE_RESPONSE
        assert result.sources == []
        assert result.from_cache is False
        mock_store.hybrid_search.assert_not_awaited()
        assert chat_model.call_count == 0
        assert len(cache) == 0


    @pytest.mark.asyncio
    async def test_empty_retrieval_should_not_call_generation(self, embedder: FakeEmbedder, cache: ResponseCache, chat_model: FakeChatModel) -> None:
        rag = RAGService(BookVectorStore(embedder, collection=FakeChunkCollection()), cache, llm=chat_model)

        result = await rag.query("How do generics work?")

        assert result.response == NO_CONTEXT_RESPONSE
        assert result.sources == []
        assert result.from_cache is False
        assert chat_model.call_count == 0
        assert len(cache) == 0


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_repeat_question_should_be_served_from_cache(self, rag: RAGService, chat_model: FakeChatModel) -> None:
        options = QueryOptions(use_hybrid_search=True, top_k=3)

        first = await rag.query("How do generics work?", options)
        second = await rag.query("How do generics work?", options)

        assert len(first.sources) >= 1
        assert first.from_cache is False
        assert second.from_cache is True
        assert second.response == first.response
        assert second.sources == first.sources
        assert chat_model.call_count == 1


    @pytest.mark.asyncio
    async def test_cache_should_ignore_case_and_spacing(self, rag: RAGService, chat_model: FakeChatModel) -> None:
        await rag.query("How do generics work?")

        result = await rag.query("  how do   GENERICS work? ")

        assert result.from_cache is True
        assert chat_model.call_count == 1


    @pytest.mark.asyncio
    async def test_disabled_cache_should_neither_read_nor_write(self, rag: RAGService, cache: ResponseCache, chat_model: FakeChatModel) -> None:
        options = QueryOptions(use_cache=False)

        await rag.query("How do generics work?", options)
        result = await rag.query("How do generics work?", options)

        assert result.from_cache is False
        assert chat_model.call_count == 2
        assert len(cache) == 0


    @pytest.mark.asyncio
    @pytest.mark.parametrize("hybrid", [True, False])
    async def test_type_filter_should_hold_for_every_source(self, rag: RAGService, hybrid: bool) -> None:
        options = QueryOptions(use_hybrid_search=hybrid, top_k=5, filters=SearchFilters(type="code"))

        result = await rag.query("Show a generic function", options)

        assert result.sources
        assert all(source.metadata.type == "code" for source in result.sources)


    @pytest.mark.asyncio
    async def test_vector_only_mode_should_use_similarity_search(self, mock_store: AsyncMock, cache: ResponseCache, chat_model: FakeChatModel) -> None:
        rag = RAGService(mock_store, cache, llm=chat_model)

        result = await rag.query("How do generics work?", QueryOptions(use_hybrid_search=False, top_k=2))

        mock_store.similarity_search.assert_awaited_once_with("How do generics work?", 2, None)
        mock_store.hybrid_search.assert_not_awaited()
        assert result.sources[0].score == 0.91


class TestPromptAndShaping:
    @pytest.mark.asyncio
    async def test_context_should_list_best_score_first(self, mock_store: AsyncMock, cache: ResponseCache, chat_model: FakeChatModel) -> None:
        mock_store.hybrid_search.return_value = [_result("LOW SCORE PASSAGE", 0.01), _result("HIGH SCORE PASSAGE", 0.05)]
        rag = RAGService(mock_store, cache, llm=chat_model)

        result = await rag.query("How do generics work?")

        system, human = chat_model.last_messages
        assert isinstance(system, SystemMessage)
        assert isinstance(human, HumanMessage)
        assert human.content.index("HIGH SCORE PASSAGE") < human.content.index("LOW SCORE PASSAGE")
        assert "How do generics work?" in human.content
        assert "Capítulo: Chapter 12" in human.content
        assert [source.text for source in result.sources] == ["HIGH SCORE PASSAGE", "LOW SCORE PASSAGE"]


    @pytest.mark.asyncio
    async def test_system_prompt_should_name_book_and_language(self, rag: RAGService, chat_model: FakeChatModel) -> None:
        await rag.query("How do generics work?")

        system = chat_model.last_messages[0].content
        assert settings.BOOK_TITLE in system
        assert settings.RESPONSE_LANGUAGE in system


    @pytest.mark.asyncio
    async def test_sources_should_be_truncated_previews(self, mock_store: AsyncMock, cache: ResponseCache, chat_model: FakeChatModel) -> None:
        long_text = "generic " * 60
        mock_store.hybrid_search.return_value = [_result(long_text, 0.03), _result("short text", 0.02)]
        rag = RAGService(mock_store, cache, llm=chat_model)

        result = await rag.query("How do generics work?")

        assert result.sources[0].text == long_text[: settings.SOURCE_PREVIEW_CHARS] + "..."
        assert result.sources[1].text == "short text"
        assert result.sources[0].metadata.chapter == "Chapter 12"
        assert result.sources[0].score == 0.03


    @pytest.mark.asyncio
    async def test_list_content_parts_should_be_joined(self, mock_store: AsyncMock, cache: ResponseCache) -> None:
        llm = FakeChatModel([{"type": "text", "text": "Generics "}, {"type": "text", "text": "são úteis."}])
        rag = RAGService(mock_store, cache, llm=llm)

        result = await rag.query("How do generics work?")

        assert result.response == "Generics são úteis."


class TestFailures:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("reply", ["", "   \n"])
    async def test_empty_generation_should_raise_and_skip_cache(self, mock_store: AsyncMock, cache: ResponseCache, reply: str) -> None:
        rag = RAGService(mock_store, cache, llm=FakeChatModel(reply))

        with pytest.raises(GenerationFailed):
            await rag.query("How do generics work?")

        assert len(cache) == 0


    @pytest.mark.asyncio
    async def test_retrieval_outage_should_propagate(self, embedder: FakeEmbedder, cache: ResponseCache, chat_model: FakeChatModel) -> None:
        store = BookVectorStore(embedder, collection=FakeChunkCollection(error=UnavailableError("cluster down")))
        rag = RAGService(store, cache, llm=chat_model)

        with pytest.raises(RetrievalUnavailable):
            await rag.query("How do generics work?")

        assert chat_model.call_count == 0


    @pytest.mark.asyncio
    async def test_slow_generation_should_raise_upstream_timeout(self, mock_store: AsyncMock, cache: ResponseCache, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings, "UPSTREAM_TIMEOUT_SECONDS", 0.01)
        rag = RAGService(mock_store, cache, llm=FakeChatModel("late", delay=0.5))

        with pytest.raises(UpstreamTimeout) as exc_info:
            await rag.query("How do generics work?")

        assert exc_info.value.operation == "generation"


    @pytest.mark.asyncio
    async def test_model_errors_should_propagate_unmodified(self, mock_store: AsyncMock, cache: ResponseCache) -> None:
        llm = AsyncMock()
        llm.ainvoke.side_effect = RuntimeError("quota exceeded")
        rag = RAGService(mock_store, cache, llm=llm)

        with pytest.raises(RuntimeError, match="quota exceeded"):
            await rag.query("How do generics work?")


def test_cache_stats_and_clear_should_delegate_to_cache(cache: ResponseCache, mock_store: AsyncMock, chat_model: FakeChatModel) -> None:
    rag = RAGService(mock_store, cache, llm=chat_model)

    rag.clear_cache()

    assert rag.get_cache_stats() == {"size": 0, "max_size": 10, "approximate_byte_size": 0}
