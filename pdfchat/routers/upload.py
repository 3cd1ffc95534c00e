"""Upload: POST multipart field "pdf" -> document_id. Metadata extraction runs in the background."""
import json
import logging

from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from pdfchat.database import get_db
from pdfchat.dependencies import AppServices, get_services
from pdfchat.errors import BadRequest, DatabaseError, StorageError
from pdfchat.models import utcnow
from pdfchat.schemas import ErrorResponse, UploadResponse
from pdfchat.services import conversation_store
from pdfchat.services.metadata_service import spawn_metadata_extraction
from pdfchat.storage.base import BlobStorageError, InvalidPdfError

_log = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["upload"])


@router.post(
    "/upload",
    response_model=UploadResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def upload_pdf(
    pdf: UploadFile | None = File(None),
    db: AsyncSession = Depends(get_db),
    services: AppServices = Depends(get_services),
):
    if pdf is None:
        raise BadRequest("No PDF file found")
    filename = pdf.filename or "document.pdf"
    data = await pdf.read()

    try:
        document_id = await services.storage.store_pdf(filename, data)
    except InvalidPdfError as e:
        raise BadRequest(str(e)) from e
    except BlobStorageError as e:
        raise StorageError(str(e)) from e

    try:
        sidecar = {"filename": filename, "size": len(data), "uploaded_at": utcnow().isoformat()}
        await services.storage.store_metadata(document_id, json.dumps(sidecar).encode("utf-8"))
    except BlobStorageError as e:
        # sidecar нужен только для восстановления имени файла, загрузку не валим
        _log.warning("Failed to store sidecar for %s: %s", document_id, e)

    try:
        await conversation_store.create_document(db, document_id, filename)
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        try:
            await services.storage.delete(document_id)
        except BlobStorageError as cleanup_error:
            _log.error("Failed to remove orphan PDF %s: %s", document_id, cleanup_error)
        raise DatabaseError(f"Database error: {e}") from e

    _log.info("Uploaded %s as %s", filename, document_id)
    spawn_metadata_extraction(services, document_id)
    return UploadResponse(document_id=document_id)
