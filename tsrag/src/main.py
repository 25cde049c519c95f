"""
tsrag - Application Entry Point
================================
FastAPI application factory.  The lifespan handler wires the shared
collaborators (embedder, ``BookVectorStore``, ``ResponseCache``,
``RAGService``, ``MongoConversationStore``) into one ``ChatService`` on
``app.state`` and closes the MongoDB client on shutdown.

Hard pipeline failures map to explicit status codes:
    RetrievalUnavailable → 503, GenerationFailed → 502, UpstreamTimeout → 504.

Usage:
    python -m tsrag.src.main
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tsrag.config.settings import settings
from tsrag.src.api.routes import router
from tsrag.src.api.schemas import ErrorResponse
from tsrag.src.api.service import ChatService
from tsrag.src.core.cache import ResponseCache
from tsrag.src.core.errors import GenerationFailed, RAGError, RetrievalUnavailable, UpstreamTimeout
from tsrag.src.core.rag_engine import RAGService
from tsrag.src.database.conversation_store import MongoConversationStore
from tsrag.src.database.mongo import close_mongo_client
from tsrag.src.database.vector_store import BookVectorStore, create_embedder
from tsrag.src.utils.logger import get_logger

logger = get_logger(__name__)

_ERROR_STATUS: dict[type[RAGError], int] = {
    RetrievalUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
    GenerationFailed: status.HTTP_502_BAD_GATEWAY,
    UpstreamTimeout: status.HTTP_504_GATEWAY_TIMEOUT,
}


def build_chat_service() -> ChatService:
    """Assemble the production collaborators."""
    vector_store = BookVectorStore(create_embedder())
    rag = RAGService(vector_store, ResponseCache())
    return ChatService(rag, vector_store, MongoConversationStore())


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    app.state.chat_service = build_chat_service()
    logger.info("[API] %s assistant ready (env=%s).", settings.BOOK_TITLE, settings.ENV)
    try:
        yield
    finally:
        close_mongo_client()


async def rag_error_handler(request: Request, exc: RAGError) -> JSONResponse:
    status_code = next((code for error_type, code in _ERROR_STATUS.items() if isinstance(exc, error_type)), status.HTTP_500_INTERNAL_SERVER_ERROR)
    logger.error("[API] %s %s failed with %s: %s", request.method, request.url.path, type(exc).__name__, exc)
    body = ErrorResponse(error=type(exc).__name__, message=str(exc))
    return JSONResponse(status_code=status_code, content=body.model_dump(by_alias=True))


def create_app() -> FastAPI:
    """Create the FastAPI application with routes, CORS and error mapping."""
    app = FastAPI(title=f"{settings.BOOK_TITLE} RAG API", version="1.0.0", lifespan=lifespan)
    app.add_middleware(CORSMiddleware, allow_origins=settings.CORS_ORIGINS, allow_methods=["*"], allow_headers=["*"])
    app.add_exception_handler(RAGError, rag_error_handler)  # type: ignore[arg-type]
    app.include_router(router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "book": settings.BOOK_TITLE}

    return app


def main() -> None:
    uvicorn.run(create_app(), host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    main()
