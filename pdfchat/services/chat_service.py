"""Chat turn over a stored PDF: resolve PDF and conversation, call the model, persist the turn.

PDF прикладывается только к первому сообщению (если оно от пользователя), с cache_control:
провайдер кэширует документ между ходами. Остальные сообщения уходят текстом."""
import json
import logging
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from pdfchat.dependencies import AppServices
from pdfchat.errors import DatabaseError, ExternalApiError, NotFound, StorageError
from pdfchat.llm_client import LlmApiError, extract_reply_text, pdf_message, system_blocks, text_message
from pdfchat.models import ChatMessage
from pdfchat.schemas import ChatTurn, Usage
from pdfchat.services import conversation_store
from pdfchat.storage.base import BlobStorageError, PdfNotFoundError

_log = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are an AI assistant helping users understand research papers.

Guidelines:
- CRITICAL: Always format page references using EXACTLY this format: (page X) for single pages or (page X, page Y) for multiple pages
- ONLY state information you can actually find in the PDF content
- NEVER make assumptions or educated guesses
- If you cannot find specific information, clearly state "I cannot find this information in the paper"
- Use markdown formatting for better readability
- Be concise and clear in your explanations"""


@dataclass
class ChatResult:
    reply: str
    usage: Usage


def build_provider_messages(pdf_base64: str, turns: list[ChatTurn]) -> list[dict]:
    messages: list[dict] = []
    for idx, turn in enumerate(turns):
        if idx == 0 and turn.role == "user":
            messages.append(pdf_message(pdf_base64, turn.content, cache=True))
        else:
            messages.append(text_message(turn.role, turn.content))
    return messages


async def _resolve_pdf(services: AppServices, document_id: str) -> str:
    try:
        return await services.pdf_cache.get_or_compute(document_id)
    except PdfNotFoundError as e:
        raise NotFound(f"Document not found: {document_id}") from e
    except BlobStorageError as e:
        raise StorageError(f"Failed to read document {document_id}: {e}") from e


async def _legacy_filename(services: AppServices, document_id: str) -> str | None:
    """Имя файла из sidecar-метаданных хранилища, если они есть."""
    try:
        raw = await services.storage.get_metadata(document_id)
    except BlobStorageError:
        return None
    if not raw:
        return None
    try:
        meta = json.loads(raw)
    except ValueError:
        return None
    name = meta.get("filename") if isinstance(meta, dict) else None
    return name if isinstance(name, str) and name else None


async def handle_chat(
    db: AsyncSession,
    services: AppServices,
    document_id: str,
    turns: list[ChatTurn],
) -> ChatResult:
    pdf_base64 = await _resolve_pdf(services, document_id)

    try:
        legacy_filename = None
        if await conversation_store.get_document(db, document_id) is None:
            legacy_filename = await _legacy_filename(services, document_id)
        conversation = await conversation_store.get_or_create_conversation(
            db, document_id, legacy_filename=legacy_filename
        )
        conversation_id = conversation.id
        # Не держим транзакцию SQLite открытой на время запроса к модели
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise DatabaseError(f"Database error: {e}") from e

    s = services.settings
    try:
        reply = await services.llm.chat(
            s.anthropic_model,
            s.chat_max_tokens,
            build_provider_messages(pdf_base64, turns),
            system_blocks(SYSTEM_PROMPT),
        )
        text = extract_reply_text(reply.content)
    except LlmApiError as e:
        raise ExternalApiError(f"Claude API error: {e}") from e

    # Модель уже отработала: ошибка записи даёт 500, повтор запроса просто допишет сообщения
    try:
        if turns and turns[-1].role == "user":
            await conversation_store.save_message(db, conversation_id, "user", turns[-1].content)
        await conversation_store.save_message(db, conversation_id, "assistant", text)
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        _log.error("Failed to persist chat turn | conversation_id=%s error=%s", conversation_id, e)
        raise DatabaseError(f"Database error: {e}") from e

    return ChatResult(reply=text, usage=reply.usage)


async def get_history(db: AsyncSession, document_id: str) -> list[ChatMessage]:
    try:
        return await conversation_store.get_conversation_messages(db, document_id)
    except SQLAlchemyError as e:
        raise DatabaseError(f"Database error: {e}") from e
