"""Documents, conversations and messages: get/create conversation, save message, history."""
import logging
from datetime import timedelta

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from pdfchat.models import ChatMessage, Conversation, Document, utcnow

_log = logging.getLogger(__name__)

LEGACY_FILENAME = "legacy-document.pdf"


async def create_document(db: AsyncSession, document_id: str, filename: str) -> Document:
    now = utcnow()
    doc = Document(
        id=document_id,
        filename=filename,
        uploaded_at=now,
        created_at=now,
        updated_at=now,
    )
    db.add(doc)
    await db.flush()
    return doc


async def get_document(db: AsyncSession, document_id: str) -> Document | None:
    result = await db.execute(select(Document).where(Document.id == document_id))
    return result.scalar_one_or_none()


async def ensure_document(
    db: AsyncSession,
    document_id: str,
    filename: str | None = None,
) -> Document:
    """Документ из старых данных (до таблицы documents): строки нет, создаём с заглушкой."""
    doc = await get_document(db, document_id)
    if doc:
        return doc
    _log.warning(
        "Synthesizing document row for legacy document | document_id=%s filename=%s",
        document_id,
        filename or LEGACY_FILENAME,
    )
    return await create_document(db, document_id, filename or LEGACY_FILENAME)


async def get_or_create_conversation(
    db: AsyncSession,
    document_id: str,
    legacy_filename: str | None = None,
) -> Conversation:
    """Последний по created_at разговор документа; если нет, создаётся ровно один.

    Без блокировок: два одновременных вызова для нового документа могут создать две строки,
    при чтении выигрывает самая свежая."""
    result = await db.execute(
        select(Conversation)
        .where(Conversation.document_id == document_id)
        .order_by(Conversation.created_at.desc())
        .limit(1)
    )
    conversation = result.scalar_one_or_none()
    if conversation:
        conversation.updated_at = utcnow()
        await db.flush()
        return conversation
    await ensure_document(db, document_id, legacy_filename)
    now = utcnow()
    conversation = Conversation(document_id=document_id, created_at=now, updated_at=now)
    db.add(conversation)
    await db.flush()
    _log.info("Created conversation %s for document %s", conversation.id, document_id)
    return conversation


async def save_message(
    db: AsyncSession,
    conversation_id: str,
    role: str,
    content: str,
) -> ChatMessage:
    # created_at строго растёт внутри разговора, иначе две записи подряд могут совпасть по времени
    result = await db.execute(
        select(func.max(ChatMessage.created_at)).where(ChatMessage.conversation_id == conversation_id)
    )
    latest = result.scalar()
    created_at = utcnow()
    if latest is not None and created_at <= latest:
        created_at = latest + timedelta(microseconds=1)
    msg = ChatMessage(
        conversation_id=conversation_id,
        role=role,
        content=content,
        created_at=created_at,
    )
    db.add(msg)
    await db.flush()
    return msg


async def get_conversation_messages(db: AsyncSession, document_id: str) -> list[ChatMessage]:
    """История по документу: все сообщения его разговоров, по возрастанию created_at."""
    result = await db.execute(
        select(ChatMessage)
        .join(Conversation, ChatMessage.conversation_id == Conversation.id)
        .where(Conversation.document_id == document_id)
        .order_by(ChatMessage.created_at.asc())
    )
    return list(result.scalars().all())


async def delete_conversation(db: AsyncSession, conversation_id: str) -> bool:
    """Удаляет разговор вместе с сообщениями. False, если разговора нет."""
    result = await db.execute(select(Conversation.id).where(Conversation.id == conversation_id))
    if result.scalar_one_or_none() is None:
        return False
    await db.execute(delete(ChatMessage).where(ChatMessage.conversation_id == conversation_id))
    await db.execute(delete(Conversation).where(Conversation.id == conversation_id))
    await db.flush()
    return True


async def list_recent_documents(db: AsyncSession, limit: int) -> list[Document]:
    result = await db.execute(
        select(Document).order_by(Document.uploaded_at.desc()).limit(limit)
    )
    return list(result.scalars().all())


async def update_document_metadata(
    db: AsyncSession,
    document_id: str,
    keywords_json: str,
    topics_json: str,
) -> bool:
    """keywords и topics записываются одним UPDATE."""
    result = await db.execute(
        update(Document)
        .where(Document.id == document_id)
        .values(keywords=keywords_json, topics=topics_json, updated_at=utcnow())
    )
    await db.flush()
    return (result.rowcount or 0) > 0
