"""Data models for the notesync client."""

import datetime
import random
import string
import time
from dataclasses import dataclass
from datetime import timezone
from enum import Enum
from typing import Any, Iterable, List, Optional

from pydantic import BaseModel, Field, field_validator

_BASE36 = string.digits + string.ascii_lowercase

WELCOME_TITLE = "Welcome to Notesync"
WELCOME_CONTENT = (
    "Create notes with a title and content.\n\n"
    "- Select a note to view or edit it\n"
    "- Create a new note at any time\n"
    "- Your notes are cached locally on this machine"
)


def utc_now() -> datetime.datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.datetime.now(timezone.utc)


def ensure_timezone_aware(dt_value: Optional[datetime.datetime]) -> datetime.datetime:
    """Ensure a datetime is timezone-aware, treating naive datetimes as UTC.

    Cached and remote timestamps may come without an offset; they are
    assumed to be UTC so that notes always compare against each other.
    """
    if dt_value is None:
        return utc_now()
    if dt_value.tzinfo is None:
        return dt_value.replace(tzinfo=timezone.utc)
    return dt_value


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_id() -> str:
    """Generate a client-side note id.

    Returns:
        A string in format ``n_<millis>_<suffix>`` where ``millis`` is the
        current epoch time in milliseconds and ``suffix`` is 8 random
        characters, both base36.
    """
    millis = int(time.time() * 1000)
    suffix = "".join(random.choices(_BASE36, k=8))
    return f"n_{_to_base36(millis)}_{suffix}"


class Note(BaseModel):
    """A single note.

    Serialized with camelCase keys (``createdAt``/``updatedAt``); both
    spellings are accepted on input.
    """

    id: str = Field(default_factory=generate_id, description="Unique ID of the note")
    title: str = Field(default="", description="Title of the note")
    content: str = Field(default="", description="Content of the note")
    created_at: datetime.datetime = Field(
        default_factory=utc_now, alias="createdAt", description="Creation time (UTC)"
    )
    updated_at: datetime.datetime = Field(
        default_factory=utc_now, alias="updatedAt", description="Last edit time (UTC)"
    )

    model_config = {"populate_by_name": True, "extra": "ignore", "frozen": True}

    @field_validator("id", mode="before")
    @classmethod
    def validate_id(cls, v: Any) -> str:
        """Coerce the id to a non-empty string."""
        if v is None:
            raise ValueError("Note ID cannot be empty")
        v = str(v).strip()
        if not v:
            raise ValueError("Note ID cannot be empty")
        return v

    @field_validator("title", "content", mode="before")
    @classmethod
    def default_empty_text(cls, v: Any) -> str:
        """Missing text fields become empty strings, never None."""
        if v is None:
            return ""
        return str(v)

    @field_validator("created_at", "updated_at")
    @classmethod
    def validate_timestamps(cls, v: datetime.datetime) -> datetime.datetime:
        return ensure_timezone_aware(v)

    def to_cache_dict(self) -> dict:
        """JSON-ready representation used by the cache and the CLI."""
        return self.model_dump(mode="json", by_alias=True)


def welcome_note(now: Optional[datetime.datetime] = None) -> Note:
    """The note seeded into an empty collection on first run."""
    now = now or utc_now()
    return Note(title=WELCOME_TITLE, content=WELCOME_CONTENT, created_at=now, updated_at=now)


def sort_notes(notes: Iterable[Note]) -> List[Note]:
    """Sort by ``updated_at`` descending; ties keep collection order."""
    # sorted() is stable even with reverse=True
    return sorted(notes, key=lambda n: n.updated_at, reverse=True)


def filter_notes(notes: Iterable[Note], query: str = "") -> List[Note]:
    """Case-insensitive substring search over title and content, sorted."""
    q = (query or "").strip().lower()
    if not q:
        return sort_notes(notes)
    return sort_notes(
        n for n in notes if q in n.title.lower() or q in n.content.lower()
    )


class StatusKind(str, Enum):
    """Remote-sync activity states."""

    IDLE = "idle"
    SYNCING = "syncing"
    SAVING = "saving"
    SAVED = "saved"
    ERROR = "error"


@dataclass(frozen=True)
class Status:
    """The single live sync status, with an optional human-readable message."""

    kind: StatusKind = StatusKind.IDLE
    message: str = ""

    @classmethod
    def idle(cls) -> "Status":
        return cls(StatusKind.IDLE, "")

    @classmethod
    def syncing(cls, message: str = "Syncing...") -> "Status":
        return cls(StatusKind.SYNCING, message)

    @classmethod
    def saving(cls, message: str = "Saving...") -> "Status":
        return cls(StatusKind.SAVING, message)

    @classmethod
    def saved(cls, message: str = "Saved") -> "Status":
        return cls(StatusKind.SAVED, message)

    @classmethod
    def error(cls, message: str) -> "Status":
        return cls(StatusKind.ERROR, message)

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "message": self.message}
