from __future__ import annotations

import base64
import shutil
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

import fitz  # PyMuPDF

from app.core.config import Settings, get_settings
from app.core.errors import ConversionError, RasterizationError
from app.core.logging import configure_logging
from app.models import PageImage
from app.services.cloudconvert_service import CloudConvertClient
from app.utils.file_utils import page_index, sorted_page_files

logger = configure_logging(__name__)


class RasterStrategy(ABC):
    """One way of turning every page of a PDF into a JPEG."""

    name: str = "strategy"

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or get_settings()

    @abstractmethod
    def rasterize(self, pdf_bytes: bytes, page_count: int, workdir: Path) -> List[PageImage]:
        """Render all pages into ``workdir`` (a scratch directory owned by this attempt)."""

    def fail(self, message: str) -> ConversionError:
        return ConversionError(self.name, message)


# ----------------------------------------------------------------------
# Command-line tools
# ----------------------------------------------------------------------
class CommandLineStrategy(RasterStrategy):
    binary: str = ""

    @abstractmethod
    def build_command(self, executable: str, pdf_path: Path, workdir: Path) -> List[str]:
        ...

    def rasterize(self, pdf_bytes: bytes, page_count: int, workdir: Path) -> List[PageImage]:
        executable = shutil.which(self.binary)
        if not executable:
            raise self.fail(f"{self.binary} is not installed")

        pdf_path = workdir / "source.pdf"
        pdf_path.write_bytes(pdf_bytes)
        command = self.build_command(executable, pdf_path, workdir)

        try:
            completed = subprocess.run(
                command,
                capture_output=True,
                timeout=self.settings.subprocess_timeout_seconds,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise self.fail(f"timed out after {exc.timeout}s") from exc
        except OSError as exc:
            raise self.fail(f"could not start {self.binary}: {exc}") from exc

        if completed.returncode != 0:
            stderr = completed.stderr.decode("utf-8", errors="replace").strip()
            raise self.fail(f"exit code {completed.returncode}: {stderr[:300]}")

        return self.collect(workdir.glob("page-*.jpg"))

    def collect(self, paths: Iterable[Path]) -> List[PageImage]:
        files = sorted_page_files(paths)
        if not files:
            raise self.fail("produced no images")
        return [PageImage(page=page_index(path), content=path.read_bytes()) for path in files]


class GhostscriptStrategy(CommandLineStrategy):
    name = "ghostscript"
    binary = "gs"

    def build_command(self, executable: str, pdf_path: Path, workdir: Path) -> List[str]:
        return [
            executable,
            "-dSAFER",
            "-dBATCH",
            "-dNOPAUSE",
            "-dQUIET",
            "-sDEVICE=jpeg",
            f"-r{self.settings.raster_dpi}",
            f"-dJPEGQ={self.settings.jpeg_quality}",
            f"-sOutputFile={workdir / 'page-%d.jpg'}",
            str(pdf_path),
        ]


class PdftoppmStrategy(CommandLineStrategy):
    name = "pdftoppm"
    binary = "pdftoppm"

    def build_command(self, executable: str, pdf_path: Path, workdir: Path) -> List[str]:
        # pdftoppm zero-pads the page suffix (page-01.jpg) depending on page count
        return [
            executable,
            "-jpeg",
            "-r",
            str(self.settings.raster_dpi),
            "-jpegopt",
            f"quality={self.settings.jpeg_quality}",
            str(pdf_path),
            str(workdir / "page"),
        ]


# ----------------------------------------------------------------------
# In-process renderer
# ----------------------------------------------------------------------
class PyMuPDFStrategy(RasterStrategy):
    name = "pymupdf"

    def rasterize(self, pdf_bytes: bytes, page_count: int, workdir: Path) -> List[PageImage]:
        images: List[PageImage] = []
        with fitz.open(stream=pdf_bytes, filetype="pdf") as document:
            for index, page in enumerate(document, start=1):
                pixmap = page.get_pixmap(dpi=self.settings.raster_dpi, alpha=False)
                content = pixmap.tobytes("jpeg", jpg_quality=self.settings.jpeg_quality)
                images.append(PageImage(page=index, content=content))
        return images


# ----------------------------------------------------------------------
# Cloud conversion API
# ----------------------------------------------------------------------
class CloudConvertStrategy(RasterStrategy):
    name = "cloudconvert"

    def __init__(self, settings: Optional[Settings] = None, client: Optional[CloudConvertClient] = None) -> None:
        super().__init__(settings)
        self.client = client or CloudConvertClient(
            settings=self.settings, error_cls=ConversionError, label=self.name
        )

    def rasterize(self, pdf_bytes: bytes, page_count: int, workdir: Path) -> List[PageImage]:
        tasks = CloudConvertClient.base64_tasks(
            base64.b64encode(pdf_bytes).decode("ascii"),
            "document.pdf",
            "jpg",
            input_format="pdf",
            pixel_density=self.settings.raster_dpi,
            quality=self.settings.jpeg_quality,
        )
        exported = self.client.run(tasks)

        # a single-page document is exported without a page suffix
        if len(exported) == 1 and page_count == 1:
            return [PageImage(page=1, content=self.client.download(exported[0].url))]

        try:
            ordered = sorted(exported, key=lambda item: page_index(Path(item.filename)))
        except ValueError as exc:
            raise self.fail(str(exc)) from exc
        return [
            PageImage(page=page_index(Path(item.filename)), content=self.client.download(item.url))
            for item in ordered
        ]


STRATEGY_TYPES = {
    GhostscriptStrategy.name: GhostscriptStrategy,
    PdftoppmStrategy.name: PdftoppmStrategy,
    PyMuPDFStrategy.name: PyMuPDFStrategy,
    CloudConvertStrategy.name: CloudConvertStrategy,
}


# ----------------------------------------------------------------------
# Fallback chain
# ----------------------------------------------------------------------
def check_page_set(images: Sequence[PageImage], page_count: int) -> None:
    """Raise ValueError unless ``images`` are pages 1..page_count in order."""
    if not images:
        raise ValueError("no images produced")
    pages = [image.page for image in images]
    expected = list(range(1, page_count + 1))
    if pages != expected:
        raise ValueError(f"expected pages 1-{page_count}, got {pages[:10]}{'...' if len(pages) > 10 else ''}")
    empty = [image.page for image in images if not image.content]
    if empty:
        raise ValueError(f"empty image for page(s) {empty}")


class RasterChain:
    """
    Ordered list of strategies tried until one yields a complete page set.

    Each strategy gets exactly one attempt in its own scratch directory.
    Output of a failed attempt is discarded whole; results from different
    strategies are never combined.
    """

    def __init__(self, strategies: Sequence[RasterStrategy]) -> None:
        self.strategies = list(strategies)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "RasterChain":
        settings = settings or get_settings()
        return cls([STRATEGY_TYPES[name](settings) for name in settings.raster_strategies])

    @property
    def names(self) -> List[str]:
        return [strategy.name for strategy in self.strategies]

    def rasterize(self, pdf_bytes: bytes, page_count: int, workdir: Path) -> List[PageImage]:
        attempts: List[tuple[str, str]] = []

        for position, strategy in enumerate(self.strategies, start=1):
            attempt_dir = workdir / f"raster-{position}-{strategy.name}"
            attempt_dir.mkdir(parents=True)
            logger.info("Rasterizing %s page(s) with %s", page_count, strategy.name)
            try:
                images = strategy.rasterize(pdf_bytes, page_count, attempt_dir)
                check_page_set(images, page_count)
            except Exception as exc:  # any failure moves on to the next strategy
                reason = exc.reason if isinstance(exc, ConversionError) else str(exc) or type(exc).__name__
                attempts.append((strategy.name, reason))
                logger.warning("Rasterizer %s failed: %s", strategy.name, reason)
                continue
            finally:
                shutil.rmtree(attempt_dir, ignore_errors=True)

            logger.info("Rasterizer %s produced %s page(s)", strategy.name, len(images))
            return images

        logger.error("All rasterizers failed: %s", "; ".join(f"{name}: {why}" for name, why in attempts))
        raise RasterizationError(attempts)
