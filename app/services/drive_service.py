from __future__ import annotations

from io import BytesIO
from typing import Any, Callable, List, Optional, Sequence

import httplib2
from google.auth.exceptions import GoogleAuthError
from google.oauth2.credentials import Credentials
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseDownload, MediaIoBaseUpload

from app.core.config import Settings, get_settings
from app.core.errors import ConversionError, UploadError
from app.core.logging import configure_logging
from app.models import PageImage, UploadResult

logger = configure_logging(__name__)

# raised by the transport below googleapiclient (timeouts, DNS, refused connections)
TRANSPORT_ERRORS = (httplib2.HttpLib2Error, GoogleAuthError, OSError)


def drive_client(access_token: str, timeout: float) -> Any:
    """Drive v3 resource acting with the caller's OAuth access token."""
    http = AuthorizedHttp(Credentials(token=access_token), http=httplib2.Http(timeout=timeout))
    return build("drive", "v3", http=http, cache_discovery=False)


class DriveService:
    """
    Google Drive file store for page images.

    A Drive resource is built per call from the caller's token, so nothing
    authenticated outlives the request that used it.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client_factory: Callable[[str, float], Any] = drive_client,
    ) -> None:
        self.settings = settings or get_settings()
        self.client_factory = client_factory

    def _client(self, access_token: str) -> Any:
        return self.client_factory(access_token, self.settings.http_timeout_seconds)

    # ------------------------------------------------------------------
    def upload(self, drive: Any, image: PageImage, folder_id: str, name: str) -> str:
        """Create one file in ``folder_id`` and return its id."""
        media = MediaIoBaseUpload(BytesIO(image.content), mimetype=image.content_type, resumable=False)
        try:
            created = (
                drive.files()
                .create(
                    body={"name": name, "parents": [folder_id], "mimeType": image.content_type},
                    media_body=media,
                    fields="id",
                    supportsAllDrives=True,
                )
                .execute()
            )
        except HttpError as exc:
            raise UploadError(image.page, f"HTTP {exc.resp.status}: {exc}") from exc
        except TRANSPORT_ERRORS as exc:
            raise UploadError(image.page, str(exc) or type(exc).__name__) from exc

        file_id = (created or {}).get("id")
        if not file_id:
            raise UploadError(image.page, "response did not include a file id")
        return file_id

    def upload_pages(
        self,
        images: Sequence[PageImage],
        folder_id: str,
        access_token: str,
        base_name: str,
    ) -> List[UploadResult]:
        """
        Upload every page in order; all-or-nothing.

        When a page fails, files already created for this call are deleted
        before the UploadError is raised, so callers never see a partial list.
        """
        drive = self._client(access_token)
        results: List[UploadResult] = []
        for image in images:
            name = f"{base_name}-page-{image.page}.jpg"
            try:
                file_id = self.upload(drive, image, folder_id, name)
            except UploadError:
                logger.error("Upload failed for page %s, rolling back %s file(s)", image.page, len(results))
                self._rollback(drive, results)
                raise
            logger.info("Uploaded page %s as %s", image.page, file_id)
            results.append(UploadResult(page=image.page, file_id=file_id))
        return results

    def _rollback(self, drive: Any, results: Sequence[UploadResult]) -> None:
        for result in results:
            try:
                drive.files().delete(fileId=result.file_id, supportsAllDrives=True).execute()
            except HttpError as exc:
                if exc.resp.status != 404:
                    logger.warning("Delete of %s returned HTTP %s", result.file_id, exc.resp.status)
            except TRANSPORT_ERRORS as exc:
                logger.warning("Could not delete %s during rollback: %s", result.file_id, exc)

    # ------------------------------------------------------------------
    def download(self, file_id: str, access_token: str, drive: Any = None) -> bytes:
        drive = drive or self._client(access_token)
        buffer = BytesIO()
        try:
            request = drive.files().get_media(fileId=file_id, supportsAllDrives=True)
            downloader = MediaIoBaseDownload(buffer, request)
            done = False
            while not done:
                _status, done = downloader.next_chunk()
        except HttpError as exc:
            raise ConversionError("drive", f"download of {file_id} returned HTTP {exc.resp.status}") from exc
        except TRANSPORT_ERRORS as exc:
            raise ConversionError("drive", f"download of {file_id} failed: {exc}") from exc
        return buffer.getvalue()

    def download_pages(self, file_ids: Sequence[str], access_token: str) -> List[bytes]:
        drive = self._client(access_token)
        return [self.download(file_id, access_token, drive=drive) for file_id in file_ids]
