"""
tsrag - RAG Engine
===================
Orchestrates the Retrieval-Augmented Generation pipeline over the book
corpus: scope guardrail, response cache, hybrid retrieval, grounded
prompt assembly and Gemini generation.

Architecture (OOP)
------------------
``RAGService``
    Stateless-per-turn pipeline orchestrator.  Flow:
        1. Guardrail → out of scope returns a fixed refusal
        2. Cache lookup → hit returns the memoised response
        3. Retrieve → hybrid (RRF) or vector-only search
        4. Empty retrieval → fixed "not found" response (no LLM call)
        5. Build grounding context, best score first
        6. System instruction + user prompt
        7. Call Gemini (async, bounded by a timeout)
        8. Shape response → source previews
        9. Cache write

Only the cache is mutated.  Conversation persistence belongs to the
caller, which receives the finished ``RAGResponse``.

Usage:
    from tsrag.src.core.rag_engine import RAGService
    rag = RAGService(vector_store, ResponseCache())
    answer = await rag.query("How do generics work?", QueryOptions(top_k=3))
"""

from __future__ import annotations

import time

from langchain_core.messages import HumanMessage, SystemMessage

from tsrag.config.prompt_templates import CONTEXT_BLOCK_TEMPLATE, CONTEXT_DELIMITER, EMPTY_CONTEXT_MESSAGE, NO_CONTEXT_RESPONSE, OUT_OF_SCOPE_RESPONSE, SYSTEM_PROMPT, USER_PROMPT_TEMPLATE
from tsrag.config.settings import settings
from tsrag.src.core.cache import CacheStats, ResponseCache
from tsrag.src.core.errors import GenerationFailed
from tsrag.src.core.guardrail import ScopeGuardrail
from tsrag.src.core.models import CacheEntry, QueryOptions, RAGResponse, SearchResult
from tsrag.src.database.vector_store import BookVectorStore
from tsrag.src.utils.async_utils import with_timeout
from tsrag.src.utils.logger import get_logger
from tsrag.src.utils.text_utils import truncate_preview

logger = get_logger(__name__)


class RAGService:
    """
    Orchestrates the full RAG pipeline: guardrail → cache → retrieve → generate.

    Parameters
    ----------
    vector_store
        An initialised ``BookVectorStore``.
    cache
        The shared ``ResponseCache``.
    guardrail
        Optional custom ``ScopeGuardrail``.
    llm
        Optional chat model exposing LangChain's ``ainvoke``.  Defaults
        to ``ChatGoogleGenerativeAI``.
    """

    __slots__ = ("_store", "_cache", "_guardrail", "_llm")

    def __init__(self, vector_store: BookVectorStore, cache: ResponseCache, guardrail: ScopeGuardrail | None = None, llm: object | None = None) -> None:
        self._store = vector_store
        self._cache = cache
        self._guardrail = guardrail or ScopeGuardrail()
        self._llm = llm if llm is not None else self._init_llm()


    @staticmethod
    def _init_llm() -> object:
        """Initialise the Gemini LLM via LangChain."""
        from langchain_google_genai import ChatGoogleGenerativeAI

        llm = ChatGoogleGenerativeAI(model=settings.LLM_MODEL, temperature=settings.LLM_TEMPERATURE, max_output_tokens=settings.LLM_MAX_OUTPUT_TOKENS, google_api_key=settings.GOOGLE_API_KEY.get_secret_value())
        logger.info("LLM initialised: %s (temperature=%.1f)", settings.LLM_MODEL, settings.LLM_TEMPERATURE)
        return llm


    async def query(self, user_query: str, options: QueryOptions | None = None) -> RAGResponse:
        """
        Answer *user_query* from the book, or refuse.

        Steps run strictly in order; every path ends after a bounded
        number of steps and nothing is retried here.

        Raises
        ------
        RetrievalUnavailable
            The index store is down or rejected the query.
        GenerationFailed
            The model returned empty output.
        UpstreamTimeout
            Embedding, search or generation ran past its deadline.
        """
        options = options or QueryOptions()
        t_start = time.perf_counter()

        # ── 1. Guardrail ──────────────────────────────────────────────
        if not self._guardrail.is_in_scope(user_query):
            logger.info("[RAG] Out of scope: '%.60s'", user_query)
            return RAGResponse(response=OUT_OF_SCOPE_RESPONSE, sources=[], from_cache=False)

        # ── 2. Cache lookup ───────────────────────────────────────────
        if options.use_cache:
            cached = self._cache.get(user_query)
            if cached is not None:
                logger.info("[RAG] Cache hit for '%.60s'", user_query)
                return RAGResponse(response=cached.response, sources=cached.sources, from_cache=True)

        # ── 3. Retrieve ───────────────────────────────────────────────
        t_search = time.perf_counter()
        if options.use_hybrid_search:
            results = await self._store.hybrid_search(user_query, options.top_k, options.filters)
        else:
            results = await self._store.similarity_search(user_query, options.top_k, options.filters)
        search_ms = (time.perf_counter() - t_search) * 1000
        logger.info("[RAG] Retrieved %d result(s) in %.1fms (hybrid=%s)", len(results), search_ms, options.use_hybrid_search)

        # ── 4. Empty retrieval → no generation ────────────────────────
        if not results:
            logger.warning("[RAG] No relevant context for '%.60s'", user_query)
            return RAGResponse(response=NO_CONTEXT_RESPONSE, sources=[], from_cache=False)

        # ── 5–6. Build grounded prompt ────────────────────────────────
        ordered = sorted(results, key=lambda result: result.score, reverse=True)
        prompt = USER_PROMPT_TEMPLATE.format(context=self._format_context(ordered), question=user_query)
        messages = [SystemMessage(content=SYSTEM_PROMPT), HumanMessage(content=prompt)]

        # ── 7. Call Gemini (async) ────────────────────────────────────
        t_llm = time.perf_counter()
        response_obj = await with_timeout(self._llm.ainvoke(messages), settings.UPSTREAM_TIMEOUT_SECONDS, "generation")  # type: ignore[attr-defined]
        answer = self._extract_text(response_obj)
        llm_ms = (time.perf_counter() - t_llm) * 1000
        if not answer.strip():
            logger.error("[RAG] LLM returned empty content after %.1fms.", llm_ms)
            raise GenerationFailed("the model returned an empty response")
        logger.info("[RAG] LLM response: %.1fms (%d chars)", llm_ms, len(answer))

        # ── 8. Shape response ─────────────────────────────────────────
        sources = [self._to_preview(result) for result in ordered]
        rag_response = RAGResponse(response=answer, sources=sources, from_cache=False)

        # ── 9. Cache write ────────────────────────────────────────────
        if options.use_cache:
            self._cache.set(user_query, CacheEntry(query_key=ResponseCache.key_for(user_query), response=answer, sources=sources, inserted_at=time.time()))

        total_ms = (time.perf_counter() - t_start) * 1000
        logger.info("[RAG] Pipeline total: %.1fms (search=%.1f, llm=%.1f)", total_ms, search_ms, llm_ms)
        return rag_response


    def get_cache_stats(self) -> CacheStats:
        return self._cache.stats()


    def clear_cache(self) -> None:
        self._cache.clear()

    # ══════════════════════════════════════════════════════════════════
    #  PROMPT FORMATTING
    # ══════════════════════════════════════════════════════════════════

    @staticmethod
    def _format_context(results: list[SearchResult]) -> str:
        """Format results into numbered context blocks carrying their metadata."""
        if not results:
            return EMPTY_CONTEXT_MESSAGE

        blocks: list[str] = []
        for i, result in enumerate(results, 1):
            meta = result.metadata
            blocks.append(CONTEXT_BLOCK_TEMPLATE.format(index=i, chapter=meta.chapter, section=meta.section or "N/A", page=meta.page, type=meta.type, score=result.score, text=result.text))

        return CONTEXT_DELIMITER.join(blocks)


    @staticmethod
    def _extract_text(response_obj: object) -> str:
        """Return the text of a chat-model reply; list content parts are joined."""
        content = response_obj.content if hasattr(response_obj, "content") else response_obj
        if content is None:
            return ""
        if isinstance(content, list):
            parts = [part if isinstance(part, str) else str(part.get("text", "")) for part in content if isinstance(part, (str, dict))]
            return "".join(parts)
        return str(content)


    @staticmethod
    def _to_preview(result: SearchResult) -> SearchResult:
        return result.model_copy(update={"text": truncate_preview(result.text, settings.SOURCE_PREVIEW_CHARS)})


    def __repr__(self) -> str:
        return f"RAGService(store={self._store!r}, cache={self._cache!r})"
