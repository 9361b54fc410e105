"""
Centralized configuration management.

Configuration is loaded from:
1. Environment variables
2. .env file (if present)
3. Default values

Usage:
    from gradeshield.config import get_config
    config = get_config()
    print(config.code.ttl_sec)  # 120 unless CODE_TTL_SEC is set
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional


def _load_dotenv(dotenv_path: Optional[Path] = None) -> None:
    """
    Minimal .env loader (no external dependency).

    Supports KEY=VALUE, ignores blank lines and comments (#).
    Does not override existing environment variables.
    """
    if dotenv_path is None:
        dotenv_path = Path(__file__).resolve().parent.parent / ".env"

    if not dotenv_path.exists() or not dotenv_path.is_file():
        return

    for raw_line in dotenv_path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if not key:
            continue
        if os.getenv(key) in (None, ""):
            os.environ[key] = value


# Load .env on module import
_load_dotenv()


def _get_bool_env(key: str, default: bool = False) -> bool:
    """Get boolean from environment variable."""
    value = os.getenv(key, "").strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    return default


def _get_int_env(key: str, default: int) -> int:
    """Get integer from environment variable."""
    value = os.getenv(key, "").strip()
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _get_float_env(key: str, default: Optional[float] = None) -> Optional[float]:
    """Get float from environment variable."""
    value = os.getenv(key, "").strip()
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _get_list_env(key: str) -> List[str]:
    """Get comma-separated list from environment variable."""
    value = os.getenv(key, "")
    return [item.strip() for item in value.split(",") if item.strip()]


def _ocr_space_keys() -> List[str]:
    # OCR_SPACE_API_KEYS takes precedence over numbered OCR_SPACE_API_KEY_<n> vars
    keys = _get_list_env("OCR_SPACE_API_KEYS")
    if keys:
        return keys
    numbered = []
    for i in range(1, 10):
        value = os.getenv(f"OCR_SPACE_API_KEY_{i}", "").strip()
        if value:
            numbered.append(value)
    single = os.getenv("OCR_SPACE_API_KEY", "").strip()
    if single and single not in numbered:
        numbered.insert(0, single)
    return numbered


@dataclass
class OCRConfig:
    """OCR engines configuration (Tesseract + OCR.space)."""
    languages: str = field(default_factory=lambda: os.getenv("OCR_LANGUAGES", "fra+eng"))
    tesseract_path: str = field(default_factory=lambda: os.getenv("TESSERACT_PATH", ""))
    max_width: int = field(default_factory=lambda: _get_int_env("OCR_MAX_WIDTH", 1200))

    ocr_space_url: str = field(
        default_factory=lambda: os.getenv("OCR_SPACE_URL", "https://api.ocr.space/parse/image")
    )
    ocr_space_keys: List[str] = field(default_factory=_ocr_space_keys)
    ocr_space_language: str = field(default_factory=lambda: os.getenv("OCR_SPACE_LANGUAGE", "fre"))
    ocr_space_engine: int = field(default_factory=lambda: _get_int_env("OCR_SPACE_ENGINE", 2))
    timeout_sec: int = field(default_factory=lambda: _get_int_env("OCR_TIMEOUT_SEC", 30))

    @property
    def cloud_enabled(self) -> bool:
        return bool(self.ocr_space_keys)


@dataclass
class VideoConfig:
    """Screen-recording ingestion limits and frame sampling."""
    min_duration_sec: float = field(default_factory=lambda: _get_float_env("VIDEO_MIN_DURATION_SEC", 3.0) or 3.0)
    max_duration_sec: float = field(default_factory=lambda: _get_float_env("VIDEO_MAX_DURATION_SEC", 90.0) or 90.0)
    fps: float = field(default_factory=lambda: _get_float_env("VIDEO_SAMPLE_FPS", 1.0) or 1.0)
    max_frames: int = field(default_factory=lambda: _get_int_env("VIDEO_MAX_FRAMES", 8))
    min_frames: int = field(default_factory=lambda: _get_int_env("VIDEO_MIN_FRAMES", 3))
    max_width: int = field(default_factory=lambda: _get_int_env("VIDEO_MAX_WIDTH", 1200))
    blur_threshold: float = field(default_factory=lambda: _get_float_env("VIDEO_BLUR_THRESHOLD", 100.0) or 100.0)
    max_page_gap_sec: float = field(default_factory=lambda: _get_float_env("VIDEO_MAX_PAGE_GAP_SEC", 1800.0) or 1800.0)


@dataclass
class ScreenshotConfig:
    """Screenshot ingestion limits."""
    min_width: int = field(default_factory=lambda: _get_int_env("SCREENSHOT_MIN_WIDTH", 300))
    min_height: int = field(default_factory=lambda: _get_int_env("SCREENSHOT_MIN_HEIGHT", 200))


@dataclass
class CodeConfig:
    """Single-use verification code settings."""
    prefix: str = field(default_factory=lambda: os.getenv("CODE_PREFIX", "AG-S3-"))
    ttl_sec: int = field(default_factory=lambda: _get_int_env("CODE_TTL_SEC", 120))


@dataclass
class TamperConfig:
    """Tamper detector tuning."""
    ela_quality: int = field(default_factory=lambda: _get_int_env("TAMPER_ELA_QUALITY", 75))
    background_patches: int = field(default_factory=lambda: _get_int_env("TAMPER_BACKGROUND_PATCHES", 8))
    patch_size: int = field(default_factory=lambda: _get_int_env("TAMPER_PATCH_SIZE", 30))
    seed: int = field(default_factory=lambda: _get_int_env("TAMPER_SEED", 1337))


@dataclass
class WorkerConfig:
    """Background verification workers."""
    workers: int = field(default_factory=lambda: _get_int_env("VERIFY_WORKERS", 2))
    job_timeout_sec: float = field(default_factory=lambda: _get_float_env("JOB_TIMEOUT_SEC", 180.0) or 180.0)
    credibility_threshold: int = field(default_factory=lambda: _get_int_env("CREDIBILITY_THRESHOLD", 14))


@dataclass
class DBConfig:
    """Database configuration (PostgreSQL)."""
    host: str = field(default_factory=lambda: os.getenv("DB_HOST", ""))
    port: int = field(default_factory=lambda: _get_int_env("DB_PORT", 5432))
    name: str = field(default_factory=lambda: os.getenv("DB_NAME", ""))
    user: str = field(default_factory=lambda: os.getenv("DB_USER", ""))
    password: str = field(default_factory=lambda: os.getenv("DB_PASSWORD", ""))
    schema: str = field(default_factory=lambda: os.getenv("DB_SCHEMA", "public"))
    ssl_mode: str = field(default_factory=lambda: os.getenv("DB_SSL_MODE", "prefer"))

    @property
    def is_configured(self) -> bool:
        """Check if minimal DB config is present."""
        return bool(self.host and self.name and self.user)


@dataclass
class Config:
    """
    Main application configuration.

    All settings are loaded from environment variables with sensible defaults.
    Set DEBUG=1 in environment to enable debug mode.
    """

    # Base directory (project root)
    base_dir: Path = field(default_factory=lambda: Path(__file__).resolve().parent.parent)

    data_dir: Path = field(default=None)
    logs_dir: Path = field(default=None)

    debug: bool = field(default_factory=lambda: _get_bool_env("DEBUG", False))

    # json | postgres
    storage_backend: str = field(default_factory=lambda: os.getenv("STORAGE_BACKEND", "json").strip().lower())

    ocr: OCRConfig = field(default_factory=OCRConfig)
    video: VideoConfig = field(default_factory=VideoConfig)
    screenshot: ScreenshotConfig = field(default_factory=ScreenshotConfig)
    code: CodeConfig = field(default_factory=CodeConfig)
    tamper: TamperConfig = field(default_factory=TamperConfig)
    worker: WorkerConfig = field(default_factory=WorkerConfig)
    db: DBConfig = field(default_factory=DBConfig)

    def __post_init__(self):
        """Resolve paths after initialization."""
        if self.data_dir is None:
            self.data_dir = self.base_dir / os.getenv("DATA_DIR", "data")
        if self.logs_dir is None:
            self.logs_dir = self.base_dir / os.getenv("LOG_DIR", "logs")

        self.data_dir = Path(self.data_dir)
        self.logs_dir = Path(self.logs_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.logs_dir.mkdir(parents=True, exist_ok=True)

    @property
    def audit_log_path(self) -> Path:
        return self.logs_dir / "verification_audit.jsonl"


# Global config instance (lazily initialized)
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def reset_config() -> None:
    """Reset the global configuration (useful for testing)."""
    global _config
    _config = None
