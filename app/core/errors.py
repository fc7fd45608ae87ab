from __future__ import annotations

from typing import Optional, Sequence, Tuple


class ServiceError(Exception):
    """Base error for failures reported to the caller as JSON."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict:
        return {"success": False, "error": self.message}


class InvalidRequestError(ServiceError):
    status_code = 400


class ConversionError(ServiceError):
    """A single external dependency (strategy, converter, OCR provider) failed."""

    def __init__(self, strategy: str, message: str) -> None:
        super().__init__(f"{strategy}: {message}")
        self.strategy = strategy
        self.reason = message

    def to_payload(self) -> dict:
        payload = super().to_payload()
        payload["strategy"] = self.strategy
        return payload


class NormalizationError(ConversionError):
    pass


class RasterizationError(ConversionError):
    """Every rasterization strategy failed; surfaces the last one's error."""

    def __init__(self, attempts: Sequence[Tuple[str, str]]) -> None:
        self.attempts = list(attempts)
        if self.attempts:
            strategy, reason = self.attempts[-1]
        else:
            strategy, reason = "rasterizer", "no rasterization strategies configured"
        super().__init__(strategy, reason)
        self.message = f"All rasterization strategies failed (last: {strategy}: {reason})"


class UploadError(ServiceError):
    status_code = 502

    def __init__(self, page: Optional[int], message: str) -> None:
        label = f"page {page}" if page is not None else "upload"
        super().__init__(f"Upload failed for {label}: {message}")
        self.page = page

    def to_payload(self) -> dict:
        payload = super().to_payload()
        if self.page is not None:
            payload["page"] = self.page
        return payload
