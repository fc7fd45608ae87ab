from io import BytesIO

from pypdf import PdfReader

from app.core.errors import ConversionError

PDF_MAGIC = b"%PDF"


def looks_like_pdf(data: bytes) -> bool:
    """PDF headers may be preceded by a little junk; readers accept the first 1 KiB."""
    return PDF_MAGIC in data[:1024]


def count_pages(pdf_bytes: bytes) -> int:
    """Return the number of pages in a PDF, raising ConversionError if it cannot be read."""
    try:
        reader = PdfReader(BytesIO(pdf_bytes))
        page_count = len(reader.pages)
    except Exception as exc:  # pypdf raises a wide range of errors on corrupt input
        raise ConversionError("page-count", f"unreadable PDF: {exc}") from exc
    if page_count < 1:
        raise ConversionError("page-count", "PDF has no pages")
    return page_count
