"""
tsrag - Chat Service
=====================
Implements the Ask and Search operations on top of ``RAGService``,
``BookVectorStore`` and ``MongoConversationStore``, with no HTTP
concerns.  Route handlers stay thin controllers over this class.
"""

from __future__ import annotations

import time
import uuid
from datetime import datetime, timezone

from tsrag.src.api.schemas import CacheStatsResponse, ChatRequest, ChatResponse, ConversationList, SearchRequest, SearchResponse
from tsrag.src.core.models import Conversation, QueryOptions, SearchResult
from tsrag.src.core.rag_engine import RAGService
from tsrag.src.database.conversation_store import MongoConversationStore
from tsrag.src.database.vector_store import BookVectorStore
from tsrag.src.utils.logger import get_logger

logger = get_logger(__name__)


class ChatService:
    """
    Application service behind the HTTP routes.

    Parameters
    ----------
    rag
        The RAG orchestrator answering questions.
    vector_store
        Retrieval layer used directly by the search operation.
    conversations
        Store receiving every answered exchange.
    """

    __slots__ = ("_rag", "_store", "_conversations")

    def __init__(self, rag: RAGService, vector_store: BookVectorStore, conversations: MongoConversationStore) -> None:
        self._rag = rag
        self._store = vector_store
        self._conversations = conversations


    async def ask(self, request: ChatRequest) -> ChatResponse:
        """Answer a question and persist the exchange under its conversation id."""
        conversation_id = request.conversation_id or uuid.uuid4()
        filters = request.filters.to_search_filters() if request.filters is not None else None
        options = QueryOptions(use_cache=request.use_cache, use_hybrid_search=request.use_hybrid_search, top_k=request.top_k, filters=filters)

        t_start = time.perf_counter()
        rag_response = await self._rag.query(request.question, options)
        timestamp = datetime.now(timezone.utc)
        await self._conversations.append_exchange(str(conversation_id), request.question, rag_response, timestamp)

        logger.info("[API] Chat answered in %.1fms (conversation=%s, fromCache=%s, sources=%d)", (time.perf_counter() - t_start) * 1000, conversation_id, rag_response.from_cache, len(rag_response.sources))
        return ChatResponse(response=rag_response.response, sources=rag_response.sources, conversation_id=conversation_id, from_cache=rag_response.from_cache, timestamp=timestamp)


    async def search(self, request: SearchRequest) -> SearchResponse:
        """Run a raw search of the requested kind, without generation."""
        results: list[SearchResult]
        if request.search_type == "vector":
            results = await self._store.similarity_search(request.query, request.limit, request.filters)
        elif request.search_type == "text":
            results = await self._store.full_text_search(request.query, request.limit, request.filters)
        else:
            results = await self._store.hybrid_search(request.query, request.limit, request.filters)

        logger.info("[API] %s search for '%.60s' → %d result(s).", request.search_type, request.query, len(results))
        return SearchResponse(results=results, total=len(results), search_type=request.search_type, timestamp=datetime.now(timezone.utc))


    async def get_history(self, conversation_id: str) -> Conversation | None:
        return await self._conversations.get_conversation(conversation_id)


    async def list_conversations(self) -> ConversationList:
        conversations = await self._conversations.list_recent()
        return ConversationList(conversations=conversations, total=len(conversations))


    async def delete_conversation(self, conversation_id: str) -> bool:
        deleted = await self._conversations.delete_conversation(conversation_id)
        if deleted:
            logger.info("[API] Deleted conversation '%s'.", conversation_id)
        return deleted


    def cache_stats(self) -> CacheStatsResponse:
        return CacheStatsResponse(**self._rag.get_cache_stats())


    def clear_cache(self) -> None:
        self._rag.clear_cache()
