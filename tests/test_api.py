"""
Test suite for the HTTP surface.

Routes run against a real ``ChatService`` wired to in-memory fakes, via
FastAPI's ``TestClient`` with the service dependency overridden.
"""

import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from tests.fakes import FakeChatModel, FakeChunkCollection, FakeConversationCollection, FakeEmbedder, UnavailableError
from tsrag.config.prompt_templates import OUT_OF_SCOPE_RESPONSE
from tsrag.src.api.routes import get_chat_service
from tsrag.src.api.service import ChatService
from tsrag.src.core.cache import ResponseCache
from tsrag.src.core.errors import GenerationFailed, RetrievalUnavailable, UpstreamTimeout
from tsrag.src.core.rag_engine import RAGService
from tsrag.src.database.conversation_store import MongoConversationStore
from tsrag.src.database.vector_store import BookVectorStore
from tsrag.src.main import create_app


@pytest.fixture
def chat_service(embedder: FakeEmbedder, chunk_collection: FakeChunkCollection, conversation_collection: FakeConversationCollection, chat_model: FakeChatModel) -> ChatService:
    store = BookVectorStore(embedder, collection=chunk_collection)
    rag = RAGService(store, ResponseCache(max_size=10, ttl_seconds=60), llm=chat_model)
    return ChatService(rag, store, MongoConversationStore(conversation_collection))


@pytest.fixture
def app(chat_service: ChatService) -> FastAPI:
    app = create_app()
    app.dependency_overrides[get_chat_service] = lambda: chat_service
    return app


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)


class TestChatEndpoint:
    def test_chat_should_answer_and_mint_conversation_id(self, client: TestClient) -> None:
        response = client.post("/api/chat", json={"question": "How do generics work?", "topK": 3})

        assert response.status_code == 200
        body = response.json()
        assert body["response"]
        assert body["fromCache"] is False
        assert 1 <= len(body["sources"]) <= 3
        assert uuid.UUID(body["conversationId"])
        assert "timestamp" in body
        assert set(body["sources"][0]["metadata"]) >= {"page", "chapter", "type", "bookTitle"}


    def test_repeat_question_should_report_cache_hit(self, client: TestClient) -> None:
        client.post("/api/chat", json={"question": "How do generics work?"})

        response = client.post("/api/chat", json={"question": "How do generics work?"})

        assert response.json()["fromCache"] is True


    def test_exchange_should_be_persisted_under_given_id(self, client: TestClient) -> None:
        conversation_id = str(uuid.uuid4())

        client.post("/api/chat", json={"question": "How do generics work?", "conversationId": conversation_id})
        history = client.get(f"/api/chat/history/{conversation_id}")

        assert history.status_code == 200
        assert [m["role"] for m in history.json()["messages"]] == ["user", "assistant"]
        assert history.json()["conversationId"] == conversation_id


    def test_out_of_scope_question_should_be_refused_with_200(self, client: TestClient) -> None:
        response = client.post("/api/chat", json={"question": "Como fazer um loop em Python?"})

        assert response.status_code == 200
        assert response.json()["response"] == OUT_OF_SCOPE_RESPONSE
        assert response.json()["sources"] == []


    def test_filters_should_reach_retrieval(self, client: TestClient) -> None:
        response = client.post("/api/chat", json={"question": "Show a generic function", "filters": {"type": "code"}})

        assert response.status_code == 200
        assert all(source["metadata"]["type"] == "code" for source in response.json()["sources"])


    @pytest.mark.parametrize("payload", [
        {"question": "hi"},
        {"question": "x" * 501},
        {"question": "How do generics work?", "topK": 0},
        {"question": "How do generics work?", "topK": 11},
        {"question": "How do generics work?", "conversationId": "not-a-uuid"},
        {"question": "How do generics work?", "filters": {"page": 3}},
    ])
    def test_invalid_payload_should_be_rejected(self, client: TestClient, payload: dict) -> None:
        assert client.post("/api/chat", json=payload).status_code == 422


class TestSearchEndpoint:
    @pytest.mark.parametrize("search_type", ["vector", "text", "hybrid"])
    def test_search_should_dispatch_by_type(self, client: TestClient, search_type: str) -> None:
        response = client.post("/api/search", json={"query": "generics", "limit": 2, "searchType": search_type})

        assert response.status_code == 200
        body = response.json()
        assert body["searchType"] == search_type
        assert body["total"] == len(body["results"]) <= 2


    def test_search_should_default_to_hybrid(self, client: TestClient) -> None:
        assert client.post("/api/search", json={"query": "generics"}).json()["searchType"] == "hybrid"


    @pytest.mark.parametrize("payload", [{"query": "g"}, {"query": "generics", "limit": 21}, {"query": "generics", "searchType": "fuzzy"}])
    def test_invalid_search_should_be_rejected(self, client: TestClient, payload: dict) -> None:
        assert client.post("/api/search", json=payload).status_code == 422


class TestHistoryEndpoints:
    def test_unknown_history_should_be_404_with_error_body(self, client: TestClient) -> None:
        conversation_id = str(uuid.uuid4())

        response = client.get(f"/api/chat/history/{conversation_id}")

        assert response.status_code == 404
        assert response.json()["error"] == "ConversationNotFound"
        assert conversation_id in response.json()["message"]


    @pytest.mark.parametrize("method", ["get", "delete"])
    def test_malformed_conversation_id_should_be_422(self, client: TestClient, method: str) -> None:
        response = getattr(client, method)("/api/chat/history/not-a-uuid")

        assert response.status_code == 422


    def test_conversations_should_list_recent(self, client: TestClient) -> None:
        client.post("/api/chat", json={"question": "How do generics work?"})

        body = client.get("/api/chat/conversations").json()

        assert body["total"] == 1
        assert body["conversations"][0]["messageCount"] == 2
        assert body["conversations"][0]["title"] == "How do generics work?"


    def test_delete_should_return_204_then_404(self, client: TestClient) -> None:
        conversation_id = client.post("/api/chat", json={"question": "How do generics work?"}).json()["conversationId"]

        assert client.delete(f"/api/chat/history/{conversation_id}").status_code == 204
        assert client.delete(f"/api/chat/history/{conversation_id}").status_code == 404


class TestCacheEndpoints:
    def test_stats_and_clear(self, client: TestClient) -> None:
        client.post("/api/chat", json={"question": "How do generics work?"})

        assert client.get("/api/cache/stats").json()["size"] == 1
        assert client.delete("/api/cache").status_code == 204
        assert client.get("/api/cache/stats").json() == {"size": 0, "maxSize": 10, "approximateByteSize": 0}


class TestErrorMapping:
    @pytest.mark.parametrize(("error", "status_code"), [
        (RetrievalUnavailable("cluster down"), 503),
        (GenerationFailed("empty output"), 502),
        (UpstreamTimeout("generation", 30.0), 504),
    ])
    def test_pipeline_errors_should_map_to_status(self, error: Exception, status_code: int) -> None:
        service = MagicMock()
        service.ask = AsyncMock(side_effect=error)
        app = create_app()
        app.dependency_overrides[get_chat_service] = lambda: service

        response = TestClient(app).post("/api/chat", json={"question": "How do generics work?"})

        assert response.status_code == status_code
        assert response.json() == {"error": type(error).__name__, "message": str(error)}


    def test_failed_conversation_write_should_be_503(self, embedder: FakeEmbedder, chunk_collection: FakeChunkCollection, chat_model: FakeChatModel) -> None:
        store = BookVectorStore(embedder, collection=chunk_collection)
        rag = RAGService(store, ResponseCache(max_size=10, ttl_seconds=60), llm=chat_model)
        broken = MongoConversationStore(FakeConversationCollection(error=UnavailableError("connection refused")))
        app = create_app()
        app.dependency_overrides[get_chat_service] = lambda: ChatService(rag, store, broken)

        response = TestClient(app).post("/api/chat", json={"question": "How do generics work?"})

        assert response.status_code == 503
        assert response.json()["error"] == "RetrievalUnavailable"
        assert "conversation write failed" in response.json()["message"]


def test_health_should_report_ok(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
