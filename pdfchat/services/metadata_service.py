"""Keywords/topics extraction: one document, batch backfill with retries, post-upload task.

Ошибки глотаются ровно в двух местах: внутри цикла backfill_all (считаются в failed)
и на границе фоновой задачи после загрузки (только лог). Всё остальное пробрасывается."""
import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from pdfchat.dependencies import AppServices
from pdfchat.errors import NotFound
from pdfchat.services import conversation_store

_log = logging.getLogger(__name__)

T = TypeVar("T")

# Сильные ссылки на фоновые задачи, иначе их может собрать GC до завершения
_background_tasks: set[asyncio.Task] = set()


@dataclass
class BackfillSummary:
    processed: int = 0
    succeeded: int = 0
    failed: int = 0


async def extract_and_save(services: AppServices, document_id: str) -> None:
    """Reads the PDF from storage (not the cache), asks the model, stores both lists at once."""
    pdf_base64 = await services.storage.get_pdf_base64(document_id)
    metadata = await services.llm.extract_metadata(pdf_base64)
    keywords_json = json.dumps(metadata.keywords)
    topics_json = json.dumps(metadata.topics)
    async with services.session_maker() as db:
        updated = await conversation_store.update_document_metadata(
            db, document_id, keywords_json, topics_json
        )
        if not updated:
            raise NotFound(f"Document not found: {document_id}")
        await db.commit()
    _log.info(
        "Extracted metadata for %s: %d keywords, %d topics",
        document_id,
        len(metadata.keywords),
        len(metadata.topics),
    )


async def retry_with_backoff(
    func: Callable[[], Awaitable[T]],
    attempts: int = 3,
    base_delay: float = 1.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Up to `attempts` calls; waits base_delay, 2*base_delay, ... between them. No jitter."""
    delay = base_delay
    attempt = 0
    while True:
        attempt += 1
        try:
            return await func()
        except Exception as e:
            if attempt >= attempts:
                raise
            _log.warning("Attempt %d failed: %s. Retrying in %.1fs...", attempt, e, delay)
            await sleep(delay)
            delay *= 2


async def backfill_all(
    services: AppServices,
    limit: int,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> BackfillSummary:
    async with services.session_maker() as db:
        documents = await conversation_store.list_recent_documents(db, limit)

    s = services.settings
    summary = BackfillSummary()
    for doc in documents:
        if doc.has_metadata:
            continue
        summary.processed += 1
        _log.info("Processing document %s (%s)...", doc.id, doc.filename)
        try:
            await retry_with_backoff(
                lambda: extract_and_save(services, doc.id),
                attempts=s.metadata_retry_attempts,
                base_delay=s.metadata_retry_base_delay,
                sleep=sleep,
            )
        except Exception as e:
            summary.failed += 1
            _log.error("Failed to process %s after retries: %s", doc.id, e)
        else:
            summary.succeeded += 1

    _log.info(
        "Metadata backfill done: processed=%d succeeded=%d failed=%d",
        summary.processed,
        summary.succeeded,
        summary.failed,
    )
    return summary


def _on_task_done(task: asyncio.Task) -> None:
    _background_tasks.discard(task)
    if task.cancelled():
        _log.warning("Metadata extraction task %s was cancelled", task.get_name())
        return
    exc = task.exception()
    if exc is not None:
        _log.error("Metadata extraction failed (%s): %s", task.get_name(), exc)


def spawn_metadata_extraction(services: AppServices, document_id: str) -> asyncio.Task:
    """Fire-and-forget: задача не связана с ответом на загрузку и не повторяется.

    Повторную попытку делает только следующий вызов backfill_all."""
    task = asyncio.create_task(
        extract_and_save(services, document_id),
        name=f"metadata:{document_id}",
    )
    _background_tasks.add(task)
    task.add_done_callback(_on_task_done)
    return task


async def wait_for_background_tasks(timeout: float | None = None) -> None:
    """Дождаться фоновых задач (при остановке приложения и в тестах)."""
    pending = list(_background_tasks)
    if not pending:
        return
    _, not_done = await asyncio.wait(pending, timeout=timeout)
    if not_done:
        _log.warning("%d metadata tasks still running at shutdown", len(not_done))
