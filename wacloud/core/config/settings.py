"""
Settings for the wacloud WhatsApp Cloud API adapter.

Values come from environment variables, read once at import time after a
local .env file is loaded. WhatsAppConfig.from_settings() turns them into a
validated configuration.
"""

import os
import tomllib
from pathlib import Path

from dotenv import load_dotenv

# Existing environment variables take precedence over .env values
load_dotenv(".env")

_FALLBACK_VERSION = "0.1.0"
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")
_ENVIRONMENTS = ("DEV", "PROD")


def _read_project_version() -> str:
    """Version declared in the nearest pyproject.toml above this module."""
    here = Path(__file__).resolve()
    for directory in here.parents:
        candidate = directory / "pyproject.toml"
        if not candidate.is_file():
            continue
        try:
            with candidate.open("rb") as fh:
                project = tomllib.load(fh).get("project", {})
        except (OSError, tomllib.TOMLDecodeError):
            continue
        if project.get("version"):
            return project["version"]
    return _FALLBACK_VERSION


def _env_bool(name: str, default: bool) -> bool:
    """Parse a boolean environment variable ("1", "true", "yes", "on")."""
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Environment-backed settings for a single business phone number."""

    def __init__(self):
        # -- general ---------------------------------------------------------
        self.version: str = _read_project_version()
        self.log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()
        self.log_dir: str = os.getenv("LOG_DIR", "./logs")
        self.environment: str = os.getenv("ENVIRONMENT", "DEV").upper()

        # -- Graph API credentials --------------------------------------------
        self.api_version: str = os.getenv("API_VERSION", "v21.0")
        self.base_url: str = os.getenv("BASE_URL", "https://graph.facebook.com/")
        self.wp_access_token: str | None = os.getenv("WP_ACCESS_TOKEN")
        self.wp_phone_id: str | None = os.getenv("WP_PHONE_ID")
        self.wp_bid: str | None = os.getenv("WP_BID")

        # webhook GET handshake and X-Hub-Signature-256 check
        self.whatsapp_app_secret: str | None = os.getenv("WHATSAPP_APP_SECRET")
        self.whatsapp_webhook_verify_token: str | None = os.getenv(
            "WHATSAPP_WEBHOOK_VERIFY_TOKEN"
        )

        # -- delivery ---------------------------------------------------------
        self.api_timeout: float = float(os.getenv("API_TIMEOUT", "30"))
        self.max_retries: int = int(os.getenv("MAX_RETRIES", "3"))
        self.auto_mark_read: bool = _env_bool("AUTO_MARK_READ", True)
        self.auto_process: bool = _env_bool("AUTO_PROCESS", True)
        self.queue_enabled: bool = _env_bool("QUEUE_ENABLED", True)
        self.max_queue_size: int = int(os.getenv("MAX_QUEUE_SIZE", "1000"))
        self.storage_backend: str = os.getenv("STORAGE_BACKEND", "memory")

        # -- HTTP server ------------------------------------------------------
        self.host: str = os.getenv("HOST", "0.0.0.0")
        self.port: int = int(os.getenv("PORT", "8000"))
        self.webhook_path: str = os.getenv("WEBHOOK_PATH", "/webhook")

        self._check()

    def _check(self) -> None:
        if self.log_level not in _LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {list(_LOG_LEVELS)}")
        # unknown environments fall back to DEV
        if self.environment not in _ENVIRONMENTS:
            self.environment = "DEV"
        if self.max_retries < 1:
            raise ValueError("MAX_RETRIES must be at least 1")
        if self.max_queue_size < 1:
            raise ValueError("MAX_QUEUE_SIZE must be at least 1")

    def validate_credentials(self) -> None:
        """Raise ValueError when the access token or phone number id is unset."""
        for name, value in (
            ("WP_ACCESS_TOKEN", self.wp_access_token),
            ("WP_PHONE_ID", self.wp_phone_id),
        ):
            if not value:
                raise ValueError(f"{name} is required")

    @property
    def is_development(self) -> bool:
        return self.environment == "DEV"

    @property
    def is_production(self) -> bool:
        return self.environment == "PROD"


settings = Settings()
