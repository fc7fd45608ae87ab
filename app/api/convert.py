from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool

from app.api.deps import get_pipeline
from app.core.logging import configure_logging
from app.models import ConversionRequest
from app.services.pipeline import DocumentPipeline

router = APIRouter(tags=["Conversion"])

logger = configure_logging(__name__)


@router.post("/", summary="Rasterize a document to JPEG pages and upload them to a folder")
async def convert_document(
    payload: ConversionRequest,
    pipeline: DocumentPipeline = Depends(get_pipeline),
) -> dict:
    results = await run_in_threadpool(pipeline.convert, payload)
    logger.debug("Returning %s page reference(s) for %s", len(results), payload.file_name)
    return {
        "success": True,
        "jpegs": [result.model_dump(by_alias=True) for result in results],
    }
