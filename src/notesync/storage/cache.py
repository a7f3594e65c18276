"""Durable cache for the note collection and the current selection.

Every method is best-effort: failures in the underlying store or in
decoding are logged and swallowed. The cache is an optimization, never a
hard dependency.
"""
import json
import logging
from typing import Iterable, List, Optional

from pydantic import ValidationError

from notesync.models.schema import Note
from notesync.storage.base import KeyValueStore

logger = logging.getLogger(__name__)

NOTES_KEY = "notesync__notes_v1"
SELECTED_KEY = "notesync__selected_id_v1"


class NoteCache:
    """Reads and writes notes and the selected id under fixed, versioned keys."""

    def __init__(
        self,
        store: KeyValueStore,
        notes_key: str = NOTES_KEY,
        selected_key: str = SELECTED_KEY,
    ) -> None:
        self._store = store
        self._notes_key = notes_key
        self._selected_key = selected_key

    @property
    def store(self) -> KeyValueStore:
        return self._store

    def load(self) -> List[Note]:
        """Load the cached collection.

        Returns an empty list when the key is missing, the value is not a
        JSON array, or the store raises. Entries that are not valid notes
        are dropped, and only the first note with a given id is kept.
        """
        try:
            raw = self._store.get_item(self._notes_key)
        except Exception as e:
            logger.warning("Failed to read note cache: %s", e)
            return []
        if not raw:
            return []
        try:
            parsed = json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.warning("Discarding unreadable note cache: %s", e)
            return []
        if not isinstance(parsed, list):
            logger.warning("Discarding note cache with unexpected shape")
            return []

        notes: List[Note] = []
        seen = set()
        for item in parsed:
            if not isinstance(item, dict):
                continue
            try:
                note = Note.model_validate(item)
            except ValidationError as e:
                logger.debug("Skipping invalid cached note: %s", e)
                continue
            if note.id in seen:
                continue
            seen.add(note.id)
            notes.append(note)
        return notes

    def save(self, notes: Iterable[Note]) -> None:
        """Write the whole collection as a JSON array."""
        try:
            payload = json.dumps([n.to_cache_dict() for n in notes])
            self._store.set_item(self._notes_key, payload)
        except Exception as e:
            logger.warning("Failed to write note cache: %s", e)

    def load_selection(self) -> str:
        """Return the cached selected id, or an empty string."""
        try:
            return self._store.get_item(self._selected_key) or ""
        except Exception as e:
            logger.warning("Failed to read cached selection: %s", e)
            return ""

    def save_selection(self, note_id: Optional[str]) -> None:
        """Persist the selected id; an empty value removes the entry."""
        try:
            if note_id:
                self._store.set_item(self._selected_key, note_id)
            else:
                self._store.remove_item(self._selected_key)
        except Exception as e:
            logger.warning("Failed to write cached selection: %s", e)
