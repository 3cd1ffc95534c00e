"""Chat: POST turn list -> model reply; history per document; conversation delete."""
from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from pdfchat.database import get_db
from pdfchat.dependencies import AppServices, get_services
from pdfchat.errors import NotFound
from pdfchat.schemas import ChatRequest, ChatResponse, ErrorResponse, StoredMessage
from pdfchat.services import conversation_store
from pdfchat.services.chat_service import get_history, handle_chat

router = APIRouter(prefix="/api", tags=["chat"])


@router.post(
    "/chat",
    response_model=ChatResponse,
    response_model_exclude_none=True,
    responses={code: {"model": ErrorResponse} for code in (400, 404, 500, 502)},
)
async def post_chat(
    request: ChatRequest,
    db: AsyncSession = Depends(get_db),
    services: AppServices = Depends(get_services),
):
    result = await handle_chat(db, services, request.document_id, request.messages)
    return ChatResponse(response=result.reply, usage=result.usage)


@router.get("/chat/history/{document_id}", response_model=list[StoredMessage])
async def get_chat_history(
    document_id: str,
    db: AsyncSession = Depends(get_db),
):
    messages = await get_history(db, document_id)
    return [StoredMessage.model_validate(m) for m in messages]


@router.delete(
    "/conversations/{conversation_id}",
    status_code=204,
    responses={404: {"model": ErrorResponse}},
)
async def delete_conversation(
    conversation_id: str,
    db: AsyncSession = Depends(get_db),
):
    deleted = await conversation_store.delete_conversation(db, conversation_id)
    if not deleted:
        raise NotFound(f"Conversation not found: {conversation_id}")
    await db.commit()
    return Response(status_code=204)
