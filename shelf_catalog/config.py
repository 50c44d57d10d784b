"""Environment-driven configuration for the detection pipeline."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final, List, Optional

from dotenv import load_dotenv

ENV_FILE: Final[str] = ".env"
DEFAULT_LOG_LEVEL: Final[int] = logging.INFO

MAX_IMAGE_BYTES: Final[int] = 10 * 1024 * 1024
MAX_BATCH_SIZE: Final[int] = 50
CLUSTER_THRESHOLD_PX: Final[float] = 100.0
ROW_BAND_PX: Final[float] = 20.0
RETRY_ATTEMPTS: Final[int] = 3
RETRY_BASE_DELAY_SECONDS: Final[float] = 2.0


@dataclass(frozen=True)
class Settings:
    """Aggregate configuration resolved once at process start."""
    llm_priority: List[str] = field(default_factory=lambda: ["gemini", "openai", "ollama"])
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.5-flash"
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    openai_base_url: str = "https://api.openai.com/v1"
    ollama_url: Optional[str] = None
    ollama_model: str = "gemma3:4b"
    ocr_engine: str = "easyocr"
    google_vision_api_key: Optional[str] = None
    ocr_languages: List[str] = field(default_factory=lambda: ["he", "en"])
    simania_enabled: bool = True
    google_books_enabled: bool = False
    google_books_api_key: Optional[str] = None
    provider_timeout_seconds: float = 8.0
    catalog_db_path: Path = Path("shelf_catalog.db")
    detection_timeout_seconds: float = 600.0
    ocr_fallback_to_image_only: bool = False
    log_level: int = DEFAULT_LOG_LEVEL


def load_settings(env_file: Optional[str] = ENV_FILE) -> Settings:
    """Load settings from a .env file and the process environment.

    Variables already present in the environment win over the .env file.
    """
    if env_file:
        load_dotenv(env_file)

    vision_key = os.getenv("GOOGLE_VISION_API_KEY") or None
    default_engine = "google_vision" if vision_key else "easyocr"

    return Settings(
        llm_priority=_split(os.getenv("LLM_BACKEND_PRIORITY", "gemini,openai,ollama")),
        gemini_api_key=os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY") or None,
        gemini_model=os.getenv("GEMINI_MODEL", "gemini-2.5-flash"),
        openai_api_key=os.getenv("OPENAI_API_KEY") or None,
        openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
        openai_base_url=os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1"),
        ollama_url=os.getenv("OLLAMA_URL") or None,
        ollama_model=os.getenv("OLLAMA_MODEL", "gemma3:4b"),
        ocr_engine=os.getenv("OCR_ENGINE", default_engine).strip().lower(),
        google_vision_api_key=vision_key,
        ocr_languages=_split(os.getenv("OCR_LANGUAGES", "he,en")),
        simania_enabled=_flag(os.getenv("SIMANIA_ENABLED"), True),
        google_books_enabled=_flag(os.getenv("GOOGLE_BOOKS_ENABLED"), False),
        google_books_api_key=os.getenv("GOOGLE_BOOKS_API_KEY") or None,
        provider_timeout_seconds=float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "8.0")),
        catalog_db_path=Path(os.getenv("CATALOG_DB_PATH", "shelf_catalog.db")).expanduser(),
        detection_timeout_seconds=float(os.getenv("DETECTION_TIMEOUT_SECONDS", "600")),
        ocr_fallback_to_image_only=_flag(os.getenv("OCR_FALLBACK_TO_IMAGE_ONLY"), False),
        log_level=logging.getLevelName(os.getenv("LOG_LEVEL", "INFO").upper()),
    )


def configure_logging(level: int = DEFAULT_LOG_LEVEL) -> None:
    """Configure the root logger for the application."""
    if not isinstance(level, int):
        level = DEFAULT_LOG_LEVEL
    logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")


def _split(value: str) -> List[str]:
    return [part.strip().lower() for part in value.split(",") if part.strip()]


def _flag(value: Optional[str], default: bool) -> bool:
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")
