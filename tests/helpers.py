import json
from typing import Any, Callable, List, Optional

import fitz  # PyMuPDF
import httplib2
import requests
from googleapiclient.discovery import build

from app.models import PageImage


class FakeResponse:
    def __init__(self, status_code: int = 200, json_data: Any = None, content: bytes = b"", text: str = ""):
        self.status_code = status_code
        self._json = json_data
        self.content = content
        self.text = text or (json.dumps(json_data) if json_data is not None else "")

    def json(self) -> Any:
        if self._json is None:
            raise ValueError("no json body")
        return self._json

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}")


class FakeSession:
    """Records every call and answers from a handler or a queue of responses."""

    def __init__(self, responses: Optional[List[FakeResponse]] = None, handler: Optional[Callable] = None):
        self.responses = list(responses or [])
        self.handler = handler
        self.calls: List[dict] = []

    def request(self, method: str, url: str, **kwargs) -> FakeResponse:
        call = {"method": method.upper(), "url": url, **kwargs}
        self.calls.append(call)
        if isinstance(self.handler, Exception):
            raise self.handler
        if self.handler is not None:
            return self.handler(call)
        if not self.responses:
            raise AssertionError(f"unexpected {method} {url}")
        return self.responses.pop(0)

    def get(self, url: str, **kwargs) -> FakeResponse:
        return self.request("GET", url, **kwargs)

    def post(self, url: str, **kwargs) -> FakeResponse:
        return self.request("POST", url, **kwargs)

    def delete(self, url: str, **kwargs) -> FakeResponse:
        return self.request("DELETE", url, **kwargs)


def build_pdf(page_count: int = 3) -> bytes:
    document = fitz.open()
    for number in range(1, page_count + 1):
        page = document.new_page()
        page.insert_text((72, 72), f"Page {number}")
    data = document.tobytes()
    document.close()
    return data


def jpeg_pages(*pages: int) -> List[PageImage]:
    return [PageImage(page=page, content=b"\xff\xd8jpeg-%d" % page) for page in pages]


class FakeHttp:
    """Stands in for ``httplib2.Http`` under a real googleapiclient resource."""

    def __init__(self, handler: Callable):
        self.handler = handler
        self.calls: List[dict] = []

    def request(self, uri, method="GET", body=None, headers=None, **kwargs):
        call = {"uri": uri, "method": method, "body": body, "headers": dict(headers or {})}
        self.calls.append(call)
        result = self.handler(call)
        if isinstance(result, Exception):
            raise result
        status, content = result
        if isinstance(content, dict):
            content = json.dumps(content).encode("utf-8")
        return httplib2.Response({"status": str(status)}), content

    def factory(self):
        """A ``client_factory`` for DriveService that routes every call here."""

        def build_drive(access_token, timeout):
            return build("drive", "v3", http=self, cache_discovery=False)

        return build_drive
