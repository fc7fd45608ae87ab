from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool

from app.api.deps import get_pipeline
from app.core.logging import configure_logging
from app.models import DriveOCRRequest, OCRRequest
from app.services.pipeline import DocumentPipeline, OCROutcome

router = APIRouter(prefix="/ocr", tags=["OCR"])

logger = configure_logging(__name__)


def _outcome(outcome: OCROutcome) -> dict:
    body = {
        "success": True,
        "pages": [page.model_dump() for page in outcome.pages],
        "text": outcome.text,
        "customer": outcome.order.customer,
        "po": outcome.order.po,
        "items": [item.model_dump() for item in outcome.order.items],
    }
    if outcome.uploads is not None:
        body["jpegs"] = [result.model_dump(by_alias=True) for result in outcome.uploads]
    return body


@router.post("", summary="Rasterize a document, OCR every page and parse order lines")
async def ocr_document(
    payload: OCRRequest,
    pipeline: DocumentPipeline = Depends(get_pipeline),
) -> dict:
    outcome = await run_in_threadpool(pipeline.ocr_document, payload)
    logger.info("OCR of %s found %s line item(s)", payload.file_name, len(outcome.order.items))
    return _outcome(outcome)


@router.post("/drive", summary="OCR page images already stored in the file store")
async def ocr_drive_pages(
    payload: DriveOCRRequest,
    pipeline: DocumentPipeline = Depends(get_pipeline),
) -> dict:
    outcome = await run_in_threadpool(pipeline.ocr_drive_pages, payload)
    logger.info("OCR of %s stored page(s) found %s line item(s)", len(outcome.pages), len(outcome.order.items))
    return _outcome(outcome)
