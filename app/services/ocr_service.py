import base64
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from google.api_core.exceptions import GoogleAPIError
from google.cloud import vision
from mistralai import Mistral

from app.core.config import Settings, get_settings
from app.core.logging import configure_logging
from app.models import PageImage, PageText

logger = configure_logging(__name__)


class OCRProvider(ABC):
    """Text detection for a single page image; returns "" when nothing is recognized."""

    name = "ocr"

    @abstractmethod
    def detect_text(self, image: PageImage) -> str:
        ...


class VisionOCR(OCRProvider):
    """Google Cloud Vision TEXT_DETECTION through ``ImageAnnotatorClient``."""

    name = "vision"

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[vision.ImageAnnotatorClient] = None,
    ) -> None:
        self.settings = settings or get_settings()
        if client is None:
            if not self.settings.vision_api_key:
                raise ValueError("VISION_API_KEY must be configured for Vision OCR.")
            client = vision.ImageAnnotatorClient(
                client_options={
                    "api_key": self.settings.vision_api_key,
                    "quota_project_id": self.settings.google_cloud_project,
                }
            )
        self.client = client

    def detect_text(self, image: PageImage) -> str:
        try:
            response = self.client.text_detection(
                image=vision.Image(content=image.content),
                timeout=self.settings.http_timeout_seconds,
            )
        except GoogleAPIError as exc:
            logger.warning("Vision OCR failed for page %s: %s", image.page, exc)
            return ""

        if response.error.message:
            logger.warning("Vision OCR error for page %s: %s", image.page, response.error.message)
            return ""
        return response.full_text_annotation.text


class MistralOCR(OCRProvider):
    """Mistral OCR over a data URI image."""

    name = "mistral"

    def __init__(self, settings: Optional[Settings] = None, client: Optional[Mistral] = None) -> None:
        self.settings = settings or get_settings()
        if client is None:
            if not self.settings.mistral_api_key:
                raise ValueError("MISTRAL_API_KEY must be configured for Mistral OCR.")
            client = Mistral(api_key=self.settings.mistral_api_key)
        self.client = client

    def detect_text(self, image: PageImage) -> str:
        b64_data = base64.b64encode(image.content).decode()
        try:
            response = self.client.ocr.process(
                model=self.settings.mistral_ocr_model,
                document={
                    "type": "image_url",
                    "image_url": f"data:{image.content_type};base64,{b64_data}",
                },
                include_image_base64=False,
            )
        except Exception as exc:  # the SDK raises its own hierarchy plus transport errors
            logger.warning("Mistral OCR failed for page %s: %s", image.page, exc)
            return ""

        parts = [getattr(page, "markdown", "").strip() for page in getattr(response, "pages", None) or []]
        return "\n\n".join(part for part in parts if part)


def build_provider(settings: Optional[Settings] = None) -> OCRProvider:
    settings = settings or get_settings()
    if settings.ocr_provider == "mistral":
        return MistralOCR(settings)
    return VisionOCR(settings)


class OCRService:
    def __init__(self, provider: OCRProvider) -> None:
        self.provider = provider

    def extract_pages(self, images: Sequence[PageImage]) -> List[PageText]:
        """Recognize every page in order, one call at a time."""
        pages: List[PageText] = []
        for image in images:
            text = self.provider.detect_text(image).strip()
            logger.info("OCR page %s: %s characters", image.page, len(text))
            pages.append(PageText(page=image.page, text=text))
        return pages

    @staticmethod
    def aggregate_text(pages: Sequence[PageText]) -> str:
        return "".join(f"Page {page.page}:\n{page.text}\n\n" for page in pages if page.text)
