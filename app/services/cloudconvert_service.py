from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Optional

import requests

from app.core.config import Settings, get_settings
from app.core.errors import ConversionError, NormalizationError
from app.core.logging import configure_logging

logger = configure_logging(__name__)

TERMINAL_STATES = {"finished", "error"}


@dataclass
class ExportedFile:
    filename: str
    url: str


class CloudConvertClient:
    """
    Minimal client for the CloudConvert v2 job API.

    A job is submitted as a task graph, polled until it reaches a terminal
    state, and its exported files are downloaded by URL. Polling is bounded
    by ``job_max_polls``.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        settings: Optional[Settings] = None,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
        error_cls: type[ConversionError] = NormalizationError,
        label: str = "cloudconvert",
    ) -> None:
        self.settings = settings or get_settings()
        self.api_key = api_key or self.settings.cloudconvert_api_key
        self.session = session or requests.Session()
        self.sleep = sleep
        self.error_cls = error_cls
        self.label = label

    # ------------------------------------------------------------------
    def _fail(self, message: str) -> ConversionError:
        return self.error_cls(self.label, message)

    def _headers(self) -> dict:
        if not self.api_key:
            raise self._fail("CLOUDCONVERT_API_KEY is not configured")
        return {"Authorization": f"Bearer {self.api_key}"}

    def _request(self, method: str, url: str, **kwargs) -> dict:
        """Send one API call and return the ``data`` object of its JSON body."""
        try:
            response = self.session.request(
                method,
                url,
                headers=self._headers(),
                timeout=self.settings.http_timeout_seconds,
                **kwargs,
            )
        except requests.RequestException as exc:
            raise self._fail(f"request to {url} failed: {exc}") from exc
        if response.status_code >= 400:
            raise self._fail(f"HTTP {response.status_code} from {url}: {response.text[:200]}")
        try:
            body = response.json()
        except ValueError as exc:
            raise self._fail(f"non-JSON response from {url}") from exc
        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, dict):
            raise self._fail(f"response from {url} has no data object")
        return data

    # ------------------------------------------------------------------
    def submit(self, tasks: dict) -> str:
        url = f"{self.settings.cloudconvert_api_url}/jobs"
        job_id = self._request("POST", url, json={"tasks": tasks}).get("id")
        if not job_id:
            raise self._fail("job submission returned no id")
        logger.info("Submitted conversion job %s", job_id)
        return job_id

    def status(self, job_id: str) -> dict:
        return self._request("GET", f"{self.settings.cloudconvert_api_url}/jobs/{job_id}")

    def wait(self, job_id: str) -> dict:
        """Poll until ``finished`` or ``error``; give up after ``job_max_polls`` checks."""
        for attempt in range(1, self.settings.job_max_polls + 1):
            job = self.status(job_id)
            state = job.get("status")
            if state in TERMINAL_STATES:
                if state == "error":
                    raise self._fail(f"job {job_id} failed: {self._task_error(job)}")
                return job
            logger.debug("Job %s is %s (poll %s)", job_id, state, attempt)
            if attempt < self.settings.job_max_polls:
                self.sleep(self.settings.job_poll_interval_seconds)
        raise self._fail(
            f"job {job_id} did not finish after {self.settings.job_max_polls} status checks"
        )

    @staticmethod
    def _task_error(job: dict) -> str:
        for task in job.get("tasks") or []:
            if task.get("status") == "error":
                return task.get("message") or task.get("code") or "task error"
        return "unknown error"

    @staticmethod
    def export_files(job: dict) -> list[ExportedFile]:
        files: list[ExportedFile] = []
        for task in job.get("tasks") or []:
            if not str(task.get("operation", "")).startswith("export/"):
                continue
            for item in (task.get("result") or {}).get("files") or []:
                if item.get("url"):
                    files.append(ExportedFile(filename=item.get("filename", ""), url=item["url"]))
        return files

    def download(self, url: str) -> bytes:
        try:
            response = self.session.get(url, timeout=self.settings.http_timeout_seconds)
        except requests.RequestException as exc:
            raise self._fail(f"download failed: {exc}") from exc
        if response.status_code >= 400:
            raise self._fail(f"HTTP {response.status_code} downloading {url}")
        return response.content

    # ------------------------------------------------------------------
    def run(self, tasks: dict) -> list[ExportedFile]:
        """Submit, wait, and return the exported files of a job."""
        job = self.wait(self.submit(tasks))
        files = self.export_files(job)
        if not files:
            raise self._fail("job finished without exported files")
        return files

    @staticmethod
    def base64_tasks(file_b64: str, filename: str, output_format: str, **convert_options) -> dict:
        convert = {"operation": "convert", "input": "import-file", "output_format": output_format}
        convert.update(convert_options)
        return {
            "import-file": {"operation": "import/base64", "file": file_b64, "filename": filename},
            "convert-file": convert,
            "export-file": {"operation": "export/url", "input": "convert-file"},
        }
