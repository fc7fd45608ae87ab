import shutil
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional
from uuid import uuid4

from app.core.config import get_settings
from app.core.logging import configure_logging

logger = configure_logging(__name__)


class LocalStorage:
    """Request-scoped scratch space on the local filesystem."""

    def __init__(self, base_dir: Optional[Path] = None) -> None:
        settings = get_settings()
        self.temp_dir = Path(base_dir or settings.temp_dir)
        self.temp_dir.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def workspace(self, label: str = "job") -> Iterator[Path]:
        """
        Create a directory unique to one request and remove it on exit.

        The uuid prefix keeps two requests for the same document apart.
        """
        safe_label = "".join(ch for ch in label if ch.isalnum() or ch in "-_")[:40] or "job"
        directory = self.temp_dir / f"{uuid4().hex}-{safe_label}"
        directory.mkdir(parents=True)
        try:
            yield directory
        finally:
            shutil.rmtree(directory, ignore_errors=True)
            logger.debug("Removed workspace %s", directory.name)
