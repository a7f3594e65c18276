"""Configuration module for the notesync client."""

import logging
import os
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from notesync import __version__

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config lives alongside the cache
_USER_ENV = Path.home() / ".notesync" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)

# Named sources for the API base URL, in priority order
API_BASE_ENV_VARS: Tuple[str, ...] = ("NOTESYNC_API_BASE", "NOTESYNC_BACKEND_URL")

CACHE_BACKENDS = ("sqlite", "memory")


def resolve_api_base_url(sources: Tuple[str, ...] = API_BASE_ENV_VARS) -> Optional[str]:
    """Return the first non-empty base URL among the named sources.

    Values are stripped of surrounding whitespace. Returns None when no
    source is set, which puts the client in local-only mode.
    """
    for name in sources:
        value = (os.getenv(name) or "").strip()
        if value:
            return value
    return None


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


class NotesyncConfig(BaseModel):
    """Configuration for the notesync client."""

    # Remote service; None means local-only mode for the session
    api_base_url: Optional[str] = Field(default_factory=resolve_api_base_url)
    request_timeout: float = Field(
        default_factory=lambda: float(os.getenv("NOTESYNC_REQUEST_TIMEOUT", "10"))
    )
    # Durable cache
    cache_backend: str = Field(
        default_factory=lambda: os.getenv("NOTESYNC_CACHE_BACKEND", "sqlite").lower()
    )
    cache_path: Path = Field(
        default_factory=lambda: Path(
            os.getenv(
                "NOTESYNC_CACHE_PATH", str(Path.home() / ".notesync" / "cache.db")
            )
        ).expanduser()
    )
    # Timing (milliseconds)
    save_debounce_ms: int = Field(
        default_factory=lambda: _env_int("NOTESYNC_SAVE_DEBOUNCE_MS", 650)
    )
    saved_display_ms: int = Field(
        default_factory=lambda: _env_int("NOTESYNC_SAVED_DISPLAY_MS", 850)
    )
    synced_display_ms: int = Field(
        default_factory=lambda: _env_int("NOTESYNC_SYNCED_DISPLAY_MS", 900)
    )
    log_level: str = Field(
        default_factory=lambda: os.getenv("NOTESYNC_LOG_LEVEL", "INFO").upper()
    )
    client_version: str = Field(default=__version__)

    @model_validator(mode="after")
    def _validate_settings(self) -> "NotesyncConfig":
        """Reject delays and timeouts that cannot work."""
        for name in ("save_debounce_ms", "saved_display_ms", "synced_display_ms"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0")
        if self.request_timeout <= 0:
            raise ValueError("request_timeout must be > 0")
        if self.cache_backend not in CACHE_BACKENDS:
            raise ValueError(
                f"cache_backend must be one of {', '.join(CACHE_BACKENDS)}"
            )
        if self.api_base_url is not None and not self.api_base_url.strip():
            self.api_base_url = None
        return self

    @property
    def api_configured(self) -> bool:
        """True when a remote base URL is set."""
        return bool(self.api_base_url)

    @property
    def save_debounce_seconds(self) -> float:
        return self.save_debounce_ms / 1000.0

    @property
    def saved_display_seconds(self) -> float:
        return self.saved_display_ms / 1000.0

    @property
    def synced_display_seconds(self) -> float:
        return self.synced_display_ms / 1000.0

    def get_db_url(self) -> str:
        """Get the database URL for the SQLite cache."""
        self.cache_path.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{self.cache_path}"


# Create a global config instance
config = NotesyncConfig()
