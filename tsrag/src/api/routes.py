"""
tsrag - API Routes
===================
REST endpoints of the book assistant:

  - POST   /api/chat                            → ask a question
  - POST   /api/search                          → raw vector / text / hybrid search
  - GET    /api/chat/history/{conversationId}   → one conversation
  - DELETE /api/chat/history/{conversationId}   → delete one conversation
  - GET    /api/chat/conversations              → most recent conversations
  - GET    /api/cache/stats                     → response-cache statistics
  - DELETE /api/cache                           → clear the response cache

Each handler is a thin controller delegating to ``ChatService``.  Conversation
ids in paths must be UUIDs; anything else is rejected with 422.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import JSONResponse

from tsrag.src.api.schemas import CacheStatsResponse, ChatRequest, ChatResponse, ConversationList, ErrorResponse, SearchRequest, SearchResponse
from tsrag.src.api.service import ChatService
from tsrag.src.core.models import Conversation

router = APIRouter(prefix="/api")


def get_chat_service(request: Request) -> ChatService:
    """Return the ``ChatService`` built by the application lifespan."""
    return request.app.state.chat_service


def _not_found(conversation_id: UUID) -> JSONResponse:
    body = ErrorResponse(error="ConversationNotFound", message=f"Conversation '{conversation_id}' not found.")
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content=body.model_dump(by_alias=True))


@router.post("/chat", response_model=ChatResponse)
async def chat(body: ChatRequest, service: ChatService = Depends(get_chat_service)) -> ChatResponse:
    return await service.ask(body)


@router.post("/search", response_model=SearchResponse)
async def search(body: SearchRequest, service: ChatService = Depends(get_chat_service)) -> SearchResponse:
    return await service.search(body)


@router.get("/chat/history/{conversation_id}", response_model=Conversation, responses={404: {"model": ErrorResponse}})
async def get_history(conversation_id: UUID, service: ChatService = Depends(get_chat_service)) -> Conversation | JSONResponse:
    conversation = await service.get_history(str(conversation_id))
    if conversation is None:
        return _not_found(conversation_id)
    return conversation


@router.delete("/chat/history/{conversation_id}", status_code=status.HTTP_204_NO_CONTENT, responses={404: {"model": ErrorResponse}})
async def delete_history(conversation_id: UUID, service: ChatService = Depends(get_chat_service)) -> Response:
    if not await service.delete_conversation(str(conversation_id)):
        return _not_found(conversation_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/chat/conversations", response_model=ConversationList)
async def list_conversations(service: ChatService = Depends(get_chat_service)) -> ConversationList:
    return await service.list_conversations()


@router.get("/cache/stats", response_model=CacheStatsResponse)
async def cache_stats(service: ChatService = Depends(get_chat_service)) -> CacheStatsResponse:
    return service.cache_stats()


@router.delete("/cache", status_code=status.HTTP_204_NO_CONTENT)
async def clear_cache(service: ChatService = Depends(get_chat_service)) -> Response:
    service.clear_cache()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
