import base64
import time
from urllib.parse import urlparse

import pytest
from fastapi.testclient import TestClient

import app.main as main
from app.api.deps import get_pipeline
from app.core.lifecycle import AppLifecycle, LifecycleState
from app.services.cloudconvert_service import ExportedFile
from app.services.conversion_service import ConversionService
from app.services.drive_service import DriveService
from app.services.ocr_service import OCRProvider, OCRService
from app.services.pipeline import DocumentPipeline
from app.services.raster_service import PyMuPDFStrategy, RasterChain, RasterStrategy

from .helpers import FakeHttp, build_pdf

ORDER_TEXT = "RIPPLE JUNCTION\nPurchase Order# 132505\nZQBQ10458GZ 001 BLACK 1 GODZILLA CLASSIC KING OF MINI 500 4.25 2125.00"


class BrokenStrategy(RasterStrategy):
    name = "broken"

    def rasterize(self, pdf_bytes, page_count, workdir):
        raise self.fail("renderer crashed")


class StaticProvider(OCRProvider):
    def detect_text(self, image):
        return ORDER_TEXT if image.page == 1 else ""


class RecordingClient:
    def __init__(self, pdf):
        self.pdf = pdf
        self.jobs = []

    def run(self, tasks):
        self.jobs.append(tasks)
        return [ExportedFile("converted.pdf", "https://storage.example/converted.pdf")]

    def download(self, url):
        return self.pdf


def _drive_handler():
    counter = {"n": 0}

    def handler(call):
        if call["method"] == "GET":
            return 200, b"\xff\xd8" + _file_id(call).encode()
        if call["method"] == "DELETE":
            return 204, b""
        counter["n"] += 1
        return 200, {"id": f"file-{counter['n']}"}

    return handler


def _file_id(call):
    return urlparse(call["uri"]).path.rsplit("/", 1)[1]


def _encode(data: bytes) -> str:
    return base64.b64encode(data).decode()


@pytest.fixture
def drive_http():
    return FakeHttp(_drive_handler())


@pytest.fixture
def pipeline(settings, storage, drive_http):
    return DocumentPipeline(
        settings=settings,
        storage=storage,
        converter=ConversionService(settings, client=RecordingClient(build_pdf(2))),
        chain=RasterChain([PyMuPDFStrategy(settings)]),
        drive=DriveService(settings, client_factory=drive_http.factory()),
        ocr=OCRService(StaticProvider()),
    )


@pytest.fixture
def client(pipeline):
    main.app.dependency_overrides[get_pipeline] = lambda: pipeline
    yield TestClient(main.app, raise_server_exceptions=False)
    main.app.dependency_overrides.clear()


def test_root_is_plain_text(client):
    response = client.get("/")

    assert response.status_code == 200
    assert response.text == "PDF to JPEG conversion service is running"


def test_health_reports_initializing_before_startup(client, monkeypatch, settings):
    monkeypatch.setattr(main.app.state, "lifecycle", AppLifecycle(settings))

    response = client.get("/health")

    assert response.status_code == 503
    assert response.json() == {"status": "INITIALIZING"}


def test_health_reports_failed_startup(client, monkeypatch, settings):
    failed = AppLifecycle(settings)
    failed.state = LifecycleState.FAILED
    monkeypatch.setattr(main.app.state, "lifecycle", failed)

    response = client.get("/health")

    assert response.status_code == 503
    assert response.json() == {"status": "FAILED"}


def test_health_ok_once_startup_finished(monkeypatch, settings):
    fresh = AppLifecycle(settings)
    monkeypatch.setattr(main, "lifecycle", fresh)
    monkeypatch.setattr(main.app.state, "lifecycle", fresh)

    with TestClient(main.app) as client:
        for _ in range(50):
            response = client.get("/health")
            if response.status_code == 200:
                break
            time.sleep(0.05)

    assert response.status_code == 200
    assert response.json() == {"status": "OK"}


def test_startup_fails_without_required_keys(monkeypatch):
    monkeypatch.setattr(main.settings, "vision_api_key", None)

    with pytest.raises(RuntimeError, match="VISION_API_KEY"):
        with TestClient(main.app):
            pass


def test_convert_uploads_every_page_in_order(client, pdf_bytes):
    response = client.post(
        "/",
        json={"fileName": "order.pdf", "fileData": _encode(pdf_bytes), "folderId": "folder-1", "accessToken": "tok"},
    )

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "jpegs": [{"page": 1, "fileId": "file-1"}, {"page": 2, "fileId": "file-2"}, {"page": 3, "fileId": "file-3"}],
    }


def test_missing_field_is_rejected_before_processing(client, drive_http):
    response = client.post("/", json={"fileName": "order.pdf", "folderId": "folder-1", "accessToken": "tok"})

    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "Missing required field: fileData"}
    assert drive_http.calls == []


def test_invalid_base64_is_rejected(client):
    response = client.post(
        "/",
        json={"fileName": "order.pdf", "fileData": "***not base64***", "folderId": "f", "accessToken": "t"},
    )

    assert response.status_code == 400
    assert response.json()["success"] is False


def test_malformed_json_is_rejected(client):
    response = client.post("/", content=b"{not json", headers={"Content-Type": "application/json"})

    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "Request body is not valid JSON"}


def test_unsupported_type_is_a_client_error(client):
    response = client.post(
        "/",
        json={"fileName": "tool.exe", "fileData": _encode(b"MZ\x90"), "folderId": "f", "accessToken": "t"},
    )

    assert response.status_code == 400
    assert "Unsupported file type" in response.json()["error"]


def test_exhausted_strategies_report_last_error_without_pages(client, pipeline, drive_http, pdf_bytes):
    pipeline.chain = RasterChain([BrokenStrategy(pipeline.settings)])

    response = client.post(
        "/",
        json={"fileName": "order.pdf", "fileData": _encode(pdf_bytes), "folderId": "f", "accessToken": "t"},
    )

    body = response.json()
    assert response.status_code == 500
    assert body["success"] is False
    assert body["strategy"] == "broken"
    assert "renderer crashed" in body["error"]
    assert "jpegs" not in body
    assert "stack" not in body
    assert drive_http.calls == []


def test_spreadsheet_is_normalized_before_rasterizing(client, pipeline):
    response = client.post(
        "/",
        json={"fileName": "orders.xlsx", "fileData": _encode(b"PK\x03\x04"), "folderId": "f", "accessToken": "t"},
    )

    assert response.status_code == 200
    assert [item["page"] for item in response.json()["jpegs"]] == [1, 2]
    assert len(pipeline.converter.client.jobs) == 1


def test_unexpected_errors_hide_details(client, pipeline, pdf_bytes, monkeypatch):
    def explode(*args, **kwargs):
        raise KeyError("secret internals")

    monkeypatch.setattr(pipeline, "convert", explode)

    response = client.post(
        "/",
        json={"fileName": "order.pdf", "fileData": _encode(pdf_bytes), "folderId": "f", "accessToken": "t"},
    )

    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "Internal server error"}


def test_parse_endpoint(client):
    response = client.post("/parse", json={"text": ORDER_TEXT})

    body = response.json()
    assert response.status_code == 200
    assert body["success"] is True
    assert body["customer"] == "Ripple Junction"
    assert body["po"] == "132505"
    assert body["items"][0]["qty"] == 500
    assert body["items"][0]["total_amount"] == 2125.0


def test_ocr_document_returns_text_and_items(client, pdf_bytes):
    response = client.post("/ocr", json={"fileName": "order.pdf", "fileData": _encode(pdf_bytes)})

    body = response.json()
    assert response.status_code == 200
    assert [page["page"] for page in body["pages"]] == [1, 2, 3]
    assert body["text"] == f"Page 1:\n{ORDER_TEXT}\n\n"
    assert body["items"][0]["style"] == "ZQBQ10458GZ"
    assert "jpegs" not in body


def test_ocr_document_can_also_upload(client, pdf_bytes):
    response = client.post(
        "/ocr",
        json={"fileName": "order.pdf", "fileData": _encode(pdf_bytes), "folderId": "f", "accessToken": "t"},
    )

    assert response.status_code == 200
    assert [item["fileId"] for item in response.json()["jpegs"]] == ["file-1", "file-2", "file-3"]


def test_ocr_upload_needs_both_folder_and_token(client, pdf_bytes):
    response = client.post("/ocr", json={"fileName": "order.pdf", "fileData": _encode(pdf_bytes), "folderId": "f"})

    assert response.status_code == 400


def test_ocr_drive_pages_sorted_by_page(client, drive_http):
    response = client.post(
        "/ocr/drive",
        json={
            "accessToken": "t",
            "jpegs": [{"page": 2, "fileId": "b"}, {"page": 1, "fileId": "a"}, {"page": 3}],
        },
    )

    body = response.json()
    assert response.status_code == 200
    assert [page["page"] for page in body["pages"]] == [1, 2]
    assert body["customer"] == "Ripple Junction"
    downloads = [_file_id(call) for call in drive_http.calls if call["method"] == "GET"]
    assert downloads == ["b", "a"]


def test_each_request_gets_its_own_pipeline():
    first, second = get_pipeline(), get_pipeline()

    assert first is not second
    assert first.converter.client.session is not second.converter.client.session
    assert first.drive is not second.drive
