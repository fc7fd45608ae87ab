from __future__ import annotations

import base64
from io import BytesIO
from typing import Optional

from docx import Document as DocxDocument
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from app.core.config import Settings, get_settings
from app.core.errors import InvalidRequestError, NormalizationError
from app.core.logging import configure_logging
from app.services.cloudconvert_service import CloudConvertClient
from app.utils.file_utils import file_extension
from app.utils.pdf_info import looks_like_pdf

logger = configure_logging(__name__)

OFFICE_EXTENSIONS = {".doc", ".docx", ".odt", ".rtf", ".xls", ".xlsx", ".ods", ".csv"}
LOCAL_EXTENSIONS = {".docx"}


class ConversionService:
    """Bring an incoming document into PDF form before rasterization."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[CloudConvertClient] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.client = client or CloudConvertClient(settings=self.settings)

    # ------------------------------------------------------------------
    @staticmethod
    def needs_conversion(filename: str, data: bytes) -> bool:
        extension = file_extension(filename)
        if extension == ".pdf":
            return False
        if extension in OFFICE_EXTENSIONS:
            return True
        if not extension and looks_like_pdf(data):
            return False
        raise InvalidRequestError(f"Unsupported file type: {extension or 'no extension'}")

    def to_pdf(self, data: bytes, filename: str) -> bytes:
        """Return PDF bytes: pass-through for PDFs, conversion for office documents."""
        if not self.needs_conversion(filename, data):
            if not looks_like_pdf(data):
                raise InvalidRequestError("fileData is not a PDF document")
            return data

        extension = file_extension(filename)
        logger.info("Converting %s document to PDF", extension)
        try:
            if not self.settings.cloudconvert_api_key:
                raise NormalizationError("cloudconvert", "CLOUDCONVERT_API_KEY is not configured")
            return self._convert_remote(data, filename)
        except NormalizationError as exc:
            if extension not in LOCAL_EXTENSIONS:
                raise
            logger.warning("Remote conversion unavailable (%s), rendering %s locally", exc.reason, extension)
            return self._docx_to_pdf(data)

    # ------------------------------------------------------------------
    def _convert_remote(self, data: bytes, filename: str) -> bytes:
        tasks = CloudConvertClient.base64_tasks(
            base64.b64encode(data).decode("ascii"), filename, "pdf"
        )
        exported = self.client.run(tasks)
        pdf_bytes = self.client.download(exported[0].url)
        if not looks_like_pdf(pdf_bytes):
            raise NormalizationError("cloudconvert", "converted file is not a PDF")
        return pdf_bytes

    def _docx_to_pdf(self, data: bytes) -> bytes:
        try:
            document = DocxDocument(BytesIO(data))
        except Exception as exc:  # python-docx surfaces zip and xml errors directly
            raise NormalizationError("docx", f"cannot read document: {exc}") from exc

        buffer = BytesIO()
        c = canvas.Canvas(buffer, pagesize=A4)
        width, height = A4
        margin = 40
        y = height - margin

        for paragraph in document.paragraphs:
            for line in self._wrap_text(paragraph.text, max_chars=90) or [""]:
                c.drawString(margin, y, line)
                y -= 20
                if y < margin:
                    c.showPage()
                    y = height - margin

        c.save()
        return buffer.getvalue()

    # ------------------------------------------------------------------
    @staticmethod
    def _wrap_text(text: str, max_chars: int) -> list[str]:
        stripped = (text or "").strip()
        if not stripped:
            return []
        lines: list[str] = []
        current: list[str] = []
        count = 0
        for word in stripped.split():
            extra = len(word) + (1 if current else 0)
            if current and count + extra > max_chars:
                lines.append(" ".join(current))
                current = [word]
                count = len(word)
            else:
                current.append(word)
                count += extra
        if current:
            lines.append(" ".join(current))
        return lines
