"""Documents: raw PDF by id, recent documents with parsed keywords/topics."""
import json
import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from pdfchat.database import get_db
from pdfchat.dependencies import AppServices, get_services
from pdfchat.errors import NotFound, StorageError
from pdfchat.models import Document
from pdfchat.schemas import DocumentListItem, ErrorResponse
from pdfchat.services import conversation_store
from pdfchat.storage.base import BlobStorageError, PdfNotFoundError

_log = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["documents"])

# Больше не отдаём за один запрос; лишнее просто обрезается
MAX_LIST_LIMIT = 1000


def _parse_tags(raw: str | None) -> list[str]:
    """JSON-массив строк из колонки; NULL или мусор дают пустой список."""
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except ValueError:
        return []
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, str)]


def _to_list_item(doc: Document) -> DocumentListItem:
    return DocumentListItem(
        id=doc.id,
        filename=doc.filename,
        keywords=_parse_tags(doc.keywords),
        topics=_parse_tags(doc.topics),
        uploaded_at=doc.uploaded_at,
        created_at=doc.created_at,
        updated_at=doc.updated_at,
    )


@router.get("/documents", response_model=list[DocumentListItem])
async def list_documents(
    limit: int = Query(20, ge=1),
    db: AsyncSession = Depends(get_db),
):
    documents = await conversation_store.list_recent_documents(db, min(limit, MAX_LIST_LIMIT))
    return [_to_list_item(d) for d in documents]


@router.get(
    "/documents/{document_id}",
    responses={404: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def get_document_pdf(
    document_id: str,
    services: AppServices = Depends(get_services),
):
    try:
        data = await services.storage.get_pdf(document_id)
    except PdfNotFoundError as e:
        raise NotFound(f"Document not found: {document_id}") from e
    except BlobStorageError as e:
        raise StorageError(str(e)) from e
    return Response(content=data, media_type="application/pdf")
