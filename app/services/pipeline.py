from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from app.core.config import Settings, get_settings
from app.core.logging import configure_logging
from app.models import (
    ConversionRequest,
    DriveOCRRequest,
    OCRRequest,
    PageImage,
    PageText,
    ParsedOrder,
    UploadResult,
)
from app.services.conversion_service import ConversionService
from app.services.drive_service import DriveService
from app.services.ocr_service import OCRService, build_provider
from app.services.po_parser import parse_order
from app.services.raster_service import RasterChain
from app.storage.local import LocalStorage
from app.utils.file_utils import base_name
from app.utils.pdf_info import count_pages

logger = configure_logging(__name__)


@dataclass
class OCROutcome:
    pages: List[PageText]
    text: str
    order: ParsedOrder
    uploads: Optional[List[UploadResult]] = field(default=None)


class DocumentPipeline:
    """
    Request-scoped orchestration: normalize, rasterize, upload, OCR, parse.

    Every step runs sequentially. Scratch files live in a workspace that is
    removed when the request finishes, whatever the outcome.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        storage: Optional[LocalStorage] = None,
        converter: Optional[ConversionService] = None,
        chain: Optional[RasterChain] = None,
        drive: Optional[DriveService] = None,
        ocr: Optional[OCRService] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.storage = storage or LocalStorage()
        self.converter = converter or ConversionService(self.settings)
        self.chain = chain or RasterChain.from_settings(self.settings)
        self.drive = drive or DriveService(self.settings)
        self._ocr = ocr

    @property
    def ocr(self) -> OCRService:
        # provider clients are only built when an OCR route is used
        if self._ocr is None:
            self._ocr = OCRService(build_provider(self.settings))
        return self._ocr

    # ------------------------------------------------------------------
    def rasterize(self, data: bytes, filename: str) -> List[PageImage]:
        pdf_bytes = self.converter.to_pdf(data, filename)
        page_count = count_pages(pdf_bytes)
        with self.storage.workspace(base_name(filename)) as workdir:
            return self.chain.rasterize(pdf_bytes, page_count, workdir)

    def convert(self, request: ConversionRequest) -> List[UploadResult]:
        logger.info("Conversion requested for %s", request.file_name)
        images = self.rasterize(request.decoded_bytes(), request.file_name)
        results = self.drive.upload_pages(
            images, request.folder_id, request.access_token, base_name(request.file_name)
        )
        logger.info("Converted %s into %s JPEG(s)", request.file_name, len(results))
        return results

    # ------------------------------------------------------------------
    def _read(self, pages: List[PageText]) -> tuple[str, ParsedOrder]:
        text = self.ocr.aggregate_text(pages)
        return text, parse_order(text)

    def ocr_document(self, request: OCRRequest) -> OCROutcome:
        logger.info("OCR requested for %s", request.file_name)
        images = self.rasterize(request.decoded_bytes(), request.file_name)
        uploads = None
        if request.wants_upload:
            uploads = self.drive.upload_pages(
                images, request.folder_id, request.access_token, base_name(request.file_name)
            )
        pages = self.ocr.extract_pages(images)
        text, order = self._read(pages)
        return OCROutcome(pages=pages, text=text, order=order, uploads=uploads)

    def ocr_drive_pages(self, request: DriveOCRRequest) -> OCROutcome:
        wanted: List[tuple[int, str]] = []
        for position, ref in enumerate(request.jpegs, start=1):
            if not ref.file_id:
                logger.warning("Skipping page entry %s without a fileId", position)
                continue
            wanted.append((ref.page or position, ref.file_id))

        contents = self.drive.download_pages([file_id for _, file_id in wanted], request.access_token)
        images = sorted(
            (PageImage(page=page, content=content) for (page, _), content in zip(wanted, contents)),
            key=lambda image: image.page,
        )

        pages = self.ocr.extract_pages(images)
        text, order = self._read(pages)
        return OCROutcome(pages=pages, text=text, order=order)
