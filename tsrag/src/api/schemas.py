"""
tsrag - HTTP Schemas
=====================
Request / response bodies of the HTTP surface.  Bounds are enforced
here so the RAG core only ever sees validated input; JSON field names
are camelCase (``conversationId``, ``topK``, ``fromCache``).
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import ConfigDict, Field
from pydantic.alias_generators import to_camel

from tsrag.src.core.models import CamelModel, ChunkType, ConversationSummary, SearchFilters, SearchResult

SearchType = Literal["vector", "text", "hybrid"]


class SourceFilters(CamelModel):
    """Metadata filters accepted by the chat endpoint."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    type: ChunkType | None = None
    chapter: str | None = None
    section: str | None = None

    def to_search_filters(self) -> SearchFilters:
        return SearchFilters(type=self.type, chapter=self.chapter, section=self.section)


class ChatRequest(CamelModel):
    question: str = Field(min_length=3, max_length=500)
    conversation_id: UUID | None = None
    use_cache: bool = True
    use_hybrid_search: bool = True
    top_k: int = Field(default=5, ge=1, le=10)
    filters: SourceFilters | None = None


class ChatResponse(CamelModel):
    response: str
    sources: list[SearchResult]
    conversation_id: UUID
    from_cache: bool
    timestamp: datetime


class SearchRequest(CamelModel):
    query: str = Field(min_length=2, max_length=200)
    limit: int = Field(default=5, ge=1, le=20)
    search_type: SearchType = "hybrid"
    filters: SearchFilters | None = None


class SearchResponse(CamelModel):
    results: list[SearchResult]
    total: int
    search_type: SearchType
    timestamp: datetime


class ConversationList(CamelModel):
    conversations: list[ConversationSummary]
    total: int


class CacheStatsResponse(CamelModel):
    size: int
    max_size: int
    approximate_byte_size: int


class ErrorResponse(CamelModel):
    """Body of every non-validation error response."""

    error: str
    message: str
