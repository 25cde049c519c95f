"""
tsrag - Conversation Store
===========================
Async chat-history store backed by MongoDB via ``motor``.

Every query filters by ``conversationId``, so conversations stay
isolated from one another.  The RAG core never reads these back into
generation; the store only serves the history endpoints.

Collection schema (``conversations``)::

    {
        "conversationId": str,
        "title": str,
        "messages": [{"role": str, "content": str, "timestamp": datetime, "sources": [...]?}, ...],
        "createdAt": datetime,
        "updatedAt": datetime
    }
"""

from __future__ import annotations

from collections.abc import Awaitable
from datetime import datetime, timezone
from typing import TypeVar

import motor.motor_asyncio
from pymongo.errors import PyMongoError

from tsrag.config.settings import settings
from tsrag.src.core.errors import RetrievalUnavailable
from tsrag.src.core.models import Conversation, ConversationMessage, ConversationSummary, RAGResponse
from tsrag.src.database.mongo import get_conversations_collection
from tsrag.src.utils.async_utils import with_timeout
from tsrag.src.utils.logger import get_logger
from tsrag.src.utils.text_utils import generate_title

logger = get_logger(__name__)

_RECENT_LIMIT = 20

T = TypeVar("T")


class MongoConversationStore:
    """
    Persists question/answer exchanges keyed by conversation id.

    Every driver call runs under ``settings.UPSTREAM_TIMEOUT_SECONDS``;
    driver errors surface as ``RetrievalUnavailable``.

    Parameters
    ----------
    collection
        Override the motor collection.  Defaults to the conversations collection.
    """

    __slots__ = ("_collection",)

    def __init__(self, collection: motor.motor_asyncio.AsyncIOMotorCollection | None = None) -> None:
        self._collection = collection if collection is not None else get_conversations_collection()


    async def append_exchange(self, conversation_id: str, question: str, rag_response: RAGResponse, timestamp: datetime | None = None) -> None:
        """Append the user question and the assistant answer (upsert on first write)."""
        now = timestamp or datetime.now(timezone.utc)
        user_message = ConversationMessage(role="user", content=question, timestamp=now)
        assistant_message = ConversationMessage(role="assistant", content=rag_response.response, timestamp=now, sources=rag_response.sources)
        messages = [user_message.model_dump(by_alias=True, exclude_none=True), assistant_message.model_dump(by_alias=True, exclude_none=True)]

        update = {
            "$push": {"messages": {"$each": messages}},
            "$set": {"updatedAt": now},
            "$setOnInsert": {"conversationId": conversation_id, "title": generate_title(question), "createdAt": now},
        }
        await self._run(self._collection.update_one({"conversationId": conversation_id}, update, upsert=True), "conversation write")
        logger.debug("[CONVERSATION] Appended exchange to '%s'.", conversation_id)


    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        doc = await self._run(self._collection.find_one({"conversationId": conversation_id}, {"_id": 0}), "conversation read")
        if doc is None:
            return None
        return Conversation.model_validate(doc)


    async def list_recent(self, limit: int = _RECENT_LIMIT) -> list[ConversationSummary]:
        """Return the most recently updated conversations, newest first."""
        cursor = self._collection.find({}, {"_id": 0}).sort("updatedAt", -1).limit(limit)
        summaries: list[ConversationSummary] = []
        for doc in await self._run(cursor.to_list(length=limit), "conversation listing"):
            messages = doc.get("messages", [])
            last_message = messages[-1]["content"] if messages else ""
            summaries.append(ConversationSummary(conversation_id=doc["conversationId"], title=doc.get("title"), message_count=len(messages), last_message=last_message, created_at=doc["createdAt"], updated_at=doc["updatedAt"]))
        return summaries


    async def delete_conversation(self, conversation_id: str) -> bool:
        """Delete a conversation entirely.  Returns True if removed."""
        result = await self._run(self._collection.delete_one({"conversationId": conversation_id}), "conversation delete")
        return result.deleted_count > 0


    async def delete_all(self) -> int:
        result = await self._run(self._collection.delete_many({}), "conversation purge")
        logger.info("[CONVERSATION] Deleted %d conversation(s).", result.deleted_count)
        return result.deleted_count


    async def _run(self, awaitable: Awaitable[T], operation: str) -> T:
        try:
            return await with_timeout(awaitable, settings.UPSTREAM_TIMEOUT_SECONDS, operation)
        except PyMongoError as exc:
            logger.error("[CONVERSATION] %s failed: %s", operation, exc)
            raise RetrievalUnavailable(f"{operation} failed: {exc}") from exc
