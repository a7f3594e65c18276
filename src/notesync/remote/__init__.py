"""Remote notes service client."""

from notesync.remote.client import (
    NotesApiClient,
    Outcome,
    RemoteResult,
    normalize_note,
)

__all__ = ["NotesApiClient", "Outcome", "RemoteResult", "normalize_note"]
