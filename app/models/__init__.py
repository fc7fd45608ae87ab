
from .conversion import Base64Document, ConversionRequest, PageImage, UploadResult
from .ocr import DriveOCRRequest, DrivePageRef, OCRRequest, PageText
from .order import OrderLineItem, ParsedOrder, ParseRequest

__all__ = [
    "Base64Document",
    "ConversionRequest",
    "DriveOCRRequest",
    "DrivePageRef",
    "OCRRequest",
    "OrderLineItem",
    "PageImage",
    "PageText",
    "ParsedOrder",
    "ParseRequest",
    "UploadResult",
]
