"""Metadata: ручной запуск backfill keywords/topics по последним документам."""
from fastapi import APIRouter, Depends

from pdfchat.dependencies import AppServices, get_services
from pdfchat.schemas import BackfillResponse, ErrorResponse
from pdfchat.services.metadata_service import backfill_all

router = APIRouter(prefix="/api/metadata", tags=["metadata"])


@router.post("/backfill", response_model=BackfillResponse, responses={500: {"model": ErrorResponse}})
async def backfill_metadata(services: AppServices = Depends(get_services)):
    summary = await backfill_all(services, services.settings.backfill_limit)
    return BackfillResponse(
        processed=summary.processed,
        succeeded=summary.succeeded,
        failed=summary.failed,
    )
