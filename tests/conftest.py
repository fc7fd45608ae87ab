import os
import tempfile

import pytest

# configuration must exist before app modules build their settings
os.environ.setdefault("VISION_API_KEY", "test-vision-key")
os.environ.setdefault("CLOUDCONVERT_API_KEY", "test-cloudconvert-key")
os.environ.setdefault("STORAGE_DIR", tempfile.mkdtemp(prefix="pdf-to-jpeg-tests-"))

from app.core.config import Settings  # noqa: E402
from app.storage.local import LocalStorage  # noqa: E402

from .helpers import build_pdf  # noqa: E402


@pytest.fixture
def settings(tmp_path_factory) -> Settings:
    value = Settings(
        storage_dir=tmp_path_factory.mktemp("storage"),
        vision_api_key="test-vision-key",
        cloudconvert_api_key="test-cloudconvert-key",
        job_poll_interval_seconds=0,
        job_max_polls=5,
    )
    value.configure_paths()
    return value


@pytest.fixture
def storage(settings) -> LocalStorage:
    return LocalStorage(settings.temp_dir)


@pytest.fixture
def pdf_bytes() -> bytes:
    return build_pdf(3)
