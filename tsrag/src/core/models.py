"""
tsrag - Data Model
===================
Pydantic models shared by the retrieval, caching and orchestration
layers.

Field names are snake_case in Python and camelCase on the wire
(MongoDB documents and JSON payloads) through ``CamelModel``'s alias
generator, so ``ChunkMetadata.book_title`` is stored as ``bookTitle``.

``score`` on a ``SearchResult`` means different things by origin: raw
``vectorSearchScore``, raw ``searchScore``, or a fused RRF sum.  Scores
of different origins are never compared without fusion.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

# ── Type aliases ───────────────────────────────────────────────────────
ChunkType = Literal["code", "explanation", "example", "reference"]
MessageRole = Literal["user", "assistant"]


class CamelModel(BaseModel):
    """Base model serialising to camelCase while accepting both spellings."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ══════════════════════════════════════════════════════════════════════
#  CHUNKS & SEARCH RESULTS
# ══════════════════════════════════════════════════════════════════════


class ChunkMetadata(CamelModel):
    """Classification metadata attached to every stored chunk."""

    page: int = Field(ge=0)
    chapter: str
    section: str | None = None
    type: ChunkType
    book_title: str


class Chunk(CamelModel):
    """A stored passage: text, its embedding and its metadata."""

    text: str
    embedding: list[float]
    metadata: ChunkMetadata


class SearchFilters(CamelModel):
    """
    Closed set of metadata predicates accepted by every search.

    Exact match on ``type``, ``chapter`` and ``section``; inclusive
    range on ``page`` with either bound optional.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    type: ChunkType | None = None
    chapter: str | None = None
    section: str | None = None
    min_page: int | None = Field(default=None, ge=0)
    max_page: int | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _page_bounds_ordered(self) -> SearchFilters:
        if self.min_page is not None and self.max_page is not None and self.min_page > self.max_page:
            raise ValueError(f"min_page ({self.min_page}) must not exceed max_page ({self.max_page})")
        return self


    def is_empty(self) -> bool:
        return all(value is None for value in (self.type, self.chapter, self.section, self.min_page, self.max_page))


class SearchResult(CamelModel):
    """One ranked hit returned by a search primitive or by fusion."""

    text: str
    metadata: ChunkMetadata
    score: float


# ══════════════════════════════════════════════════════════════════════
#  ORCHESTRATION
# ══════════════════════════════════════════════════════════════════════


class QueryOptions(CamelModel):
    """Per-call switches for ``RAGService.query``."""

    use_cache: bool = True
    use_hybrid_search: bool = True
    top_k: int = Field(default=5, ge=1)
    filters: SearchFilters | None = None


class RAGResponse(CamelModel):
    """Answer text plus the sources it was grounded on."""

    response: str
    sources: list[SearchResult] = Field(default_factory=list)
    from_cache: bool = False


class CacheEntry(CamelModel):
    """A memoised, already-shaped response keyed by the normalised query."""

    query_key: str
    response: str
    sources: list[SearchResult] = Field(default_factory=list)
    inserted_at: float


# ══════════════════════════════════════════════════════════════════════
#  CONVERSATIONS
# ══════════════════════════════════════════════════════════════════════


class ConversationMessage(CamelModel):
    role: MessageRole
    content: str
    timestamp: datetime
    sources: list[SearchResult] | None = None


class Conversation(CamelModel):
    conversation_id: str
    title: str | None = None
    messages: list[ConversationMessage] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class ConversationSummary(CamelModel):
    conversation_id: str
    title: str | None = None
    message_count: int
    last_message: str
    created_at: datetime
    updated_at: datetime
