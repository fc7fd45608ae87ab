import json
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

KNOWN_RASTER_STRATEGIES = ("ghostscript", "pdftoppm", "pymupdf", "cloudconvert")


class Settings(BaseSettings):
    """Application settings, read from the environment and an optional .env file."""

    model_config = SettingsConfigDict(
        env_file=Path(__file__).resolve().parents[2] / ".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "pdf-to-jpeg"
    app_version: str = "0.1.0"
    log_level: str = "INFO"

    base_dir: Path = Field(default_factory=lambda: Path(__file__).resolve().parents[2])
    storage_dir: Optional[Path] = None
    temp_dir: Optional[Path] = None

    # OCR
    ocr_provider: str = "vision"
    vision_api_key: Optional[str] = None
    google_cloud_project: Optional[str] = None
    mistral_api_key: Optional[str] = None
    mistral_ocr_model: str = "mistral-ocr-latest"

    # office conversion / cloud rasterization
    cloudconvert_api_key: Optional[str] = None
    cloudconvert_api_url: str = "https://api.cloudconvert.com/v2"

    # environment lists accept "a,b" or a JSON array
    raster_strategies: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["ghostscript", "pdftoppm", "pymupdf", "cloudconvert"]
    )
    raster_dpi: int = Field(150, ge=36, le=600)
    jpeg_quality: int = Field(85, ge=1, le=100)

    http_timeout_seconds: float = 60.0
    subprocess_timeout_seconds: float = 120.0
    job_poll_interval_seconds: float = 2.0
    job_max_polls: int = Field(90, ge=1)

    startup_delay_seconds: float = 0.0
    expose_stack_traces: bool = False

    allow_origins: Annotated[list[str], NoDecode] = Field(default_factory=lambda: ["*"])

    customer_templates_path: Optional[Path] = None

    @field_validator("raster_strategies", "allow_origins", mode="before")
    @classmethod
    def _split_list(cls, value):
        if isinstance(value, str):
            value = value.strip()
            if value.startswith("["):
                return json.loads(value)
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("raster_strategies")
    @classmethod
    def _check_strategies(cls, value: list[str]) -> list[str]:
        names = [name.strip().lower() for name in value if name.strip()]
        unknown = [name for name in names if name not in KNOWN_RASTER_STRATEGIES]
        if unknown:
            raise ValueError(f"unknown rasterization strategies: {', '.join(unknown)}")
        if not names:
            raise ValueError("at least one rasterization strategy is required")
        return names

    @field_validator("ocr_provider")
    @classmethod
    def _check_ocr_provider(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in ("vision", "mistral"):
            raise ValueError("ocr_provider must be 'vision' or 'mistral'")
        return value

    def configure_paths(self) -> None:
        """Resolve default directories and create them when missing."""
        self.storage_dir = (self.storage_dir or (self.base_dir / "outputs")).resolve()
        self.temp_dir = (self.temp_dir or (self.storage_dir / "tmp")).resolve()

        for directory in (self.storage_dir, self.temp_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def missing_required(self) -> list[str]:
        """Environment keys the configured features need but that are not set."""
        missing: list[str] = []
        if self.ocr_provider == "vision" and not self.vision_api_key:
            missing.append("VISION_API_KEY")
        if self.ocr_provider == "mistral" and not self.mistral_api_key:
            missing.append("MISTRAL_API_KEY")
        if "cloudconvert" in self.raster_strategies and not self.cloudconvert_api_key:
            missing.append("CLOUDCONVERT_API_KEY")
        return missing


@lru_cache()
def get_settings() -> Settings:
    settings = Settings()
    settings.configure_paths()
    return settings
