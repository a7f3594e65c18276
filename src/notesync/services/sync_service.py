"""Synchronization engine for notes.

Owns the canonical note collection, the selection and the sync status.
Every operation mutates local state optimistically and writes the cache
before any network call starts; the matching remote call then runs on a
single background worker, so remote calls complete in the order they
were issued, and its result is reconciled under the engine lock.

Edits are pushed after a quiet period. Each note has at most one pending
save timer; a new edit replaces it, and switching the selection cancels
it without pushing.
"""

import logging
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional, Set

from notesync.config import NotesyncConfig
from notesync.exceptions import NoteNotFoundError, NotesyncError
from notesync.models.schema import (
    Note,
    Status,
    StatusKind,
    filter_notes,
    sort_notes,
    utc_now,
    welcome_note,
)
from notesync.remote.client import NotesApiClient
from notesync.storage.cache import NoteCache

logger = logging.getLogger(__name__)

NEW_NOTE_TITLE = "Untitled"

TimerFactory = Callable[[float, Callable[[], None]], Any]
Listener = Callable[[str], None]


def _thread_timer(interval: float, function: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(interval, function)
    timer.daemon = True
    return timer


def _done_future() -> Future:
    future: Future = Future()
    future.set_result(None)
    return future


# Note fields a server response may carry back into the local copy
_SERVER_FIELDS = ("title", "content", "created_at", "updated_at")


def _reported_fields(note: Note) -> Dict[str, Any]:
    """The subset of ``_SERVER_FIELDS`` the server actually sent."""
    return {
        name: getattr(note, name)
        for name in _SERVER_FIELDS
        if name in note.model_fields_set
    }


def _error_text(error: Exception, fallback: str) -> str:
    if isinstance(error, NotesyncError):
        return error.message or fallback
    return str(error) or fallback


class NoteSyncService:
    """Keeps notes consistent across memory, the local cache and the remote service."""

    def __init__(
        self,
        cache: NoteCache,
        client: NotesApiClient,
        *,
        save_delay: float = 0.65,
        saved_display: float = 0.85,
        synced_display: float = 0.9,
        executor: Optional[Executor] = None,
        timer_factory: Optional[TimerFactory] = None,
        clock: Callable[[], Any] = utc_now,
    ) -> None:
        self._cache = cache
        self._client = client
        self._save_delay = save_delay
        self._saved_display = saved_display
        self._synced_display = synced_display
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="notesync-remote"
        )
        self._timer_factory = timer_factory or _thread_timer
        self._clock = clock
        self._lock = threading.RLock()

        self._notes: List[Note] = []
        self._selected_id = ""
        self._query = ""
        self._status = Status.idle()
        self._status_generation = 0
        self._status_timer: Optional[Any] = None
        self._dirty = False
        self._save_timers: Dict[str, Any] = {}
        # temporary id -> server id, recorded when a create is reconciled
        self._aliases: Dict[str, str] = {}
        self._pending_creates: Set[str] = set()
        # saves submitted to the worker and not yet started, per note id
        self._queued_saves: Dict[str, int] = {}
        self._started = False
        self._listeners: List[Listener] = []
        self._events: List[str] = []

        self._load()

    @classmethod
    def from_config(
        cls, cfg: NotesyncConfig, cache: NoteCache, client: NotesApiClient, **kwargs
    ) -> "NoteSyncService":
        return cls(
            cache,
            client,
            save_delay=cfg.save_debounce_seconds,
            saved_display=cfg.saved_display_seconds,
            synced_display=cfg.synced_display_seconds,
            **kwargs,
        )

    # =========================================================================
    # Observable state
    # =========================================================================

    @property
    def notes(self) -> List[Note]:
        """The canonical collection in insertion order."""
        with self._lock:
            return list(self._notes)

    def sorted_notes(self) -> List[Note]:
        with self._lock:
            return sort_notes(self._notes)

    def visible_notes(self) -> List[Note]:
        """Notes matching the current query, most recently updated first."""
        with self._lock:
            return filter_notes(self._notes, self._query)

    @property
    def selected_id(self) -> str:
        with self._lock:
            return self._selected_id

    @property
    def selected_note(self) -> Optional[Note]:
        with self._lock:
            idx = self._find_index(self._selected_id)
            return self._notes[idx] if idx is not None else None

    @property
    def status(self) -> Status:
        with self._lock:
            return self._status

    @property
    def is_dirty(self) -> bool:
        with self._lock:
            return self._dirty

    @property
    def query(self) -> str:
        with self._lock:
            return self._query

    @property
    def api_configured(self) -> bool:
        return self._client.is_configured

    @property
    def cache(self) -> NoteCache:
        return self._cache

    @property
    def client(self) -> NotesApiClient:
        return self._client

    def status_label(self) -> str:
        """Short text for a status indicator."""
        status = self.status
        if status.kind is StatusKind.IDLE:
            return "Ready" if self.api_configured else "Local mode"
        return status.message

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener(event)``; returns a function that removes it.

        Events: ``notes``, ``selection``, ``status``, ``query``, ``dirty``,
        ``focus_title``. Listeners run outside the engine lock.
        """
        with self._lock:
            self._listeners.append(listener)

        def remove() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return remove

    # =========================================================================
    # User operations
    # =========================================================================

    def start(self) -> Future:
        """Reconcile with the remote service once per session.

        Remote notes replace the local collection when the service answers.
        An unconfigured or unreachable service leaves the cache authoritative
        and returns to idle without surfacing an error.
        """
        with self._lock:
            if self._started:
                return _done_future()
            self._started = True
            self._set_status(Status.syncing())
            generation = self._status_generation
        self._flush_events()
        return self._executor.submit(self._startup_remote, generation)

    def create(self) -> Future:
        """Add an empty note, select it, and create it remotely."""
        with self._lock:
            self._reset_error()
            now = self._clock()
            local = Note(title=NEW_NOTE_TITLE, content="", created_at=now, updated_at=now)
            self._commit_notes([local] + self._notes, select=local.id)
            self._set_query("")
            self._pending_creates.add(local.id)
            self._queue("focus_title")
        self._flush_events()
        logger.debug("Created local note %s", local.id)
        return self._executor.submit(self._create_remote, local)

    def edit_title(self, title: str) -> None:
        self._edit_selected(title=title)

    def edit_content(self, content: str) -> None:
        self._edit_selected(content=content)

    def save(self, note_id: Optional[str] = None) -> Future:
        """Push a note now, bypassing the quiet period."""
        with self._lock:
            self._reset_error()
            note_id = note_id or self._selected_id
            found = bool(note_id) and self._find_index(note_id) is not None
            if found:
                self._cancel_save_timer(note_id)
        self._flush_events()
        if not found:
            return _done_future()
        return self._submit_save(note_id)

    def select(self, note_id: str) -> None:
        """Change the selection, dropping any pending save of the departing note.

        Raises:
            NoteNotFoundError: If no note has this id.
        """
        with self._lock:
            if self._find_index(note_id) is None:
                raise NoteNotFoundError(note_id)
            self._reset_error()
            if self._selected_id and self._selected_id != note_id:
                self._cancel_save_timer(self._selected_id)
                self._set_dirty(False)
            self._apply_selection(note_id)
        self._flush_events()

    def delete(self, note_id: Optional[str] = None) -> Future:
        """Remove a note now and delete it remotely.

        The caller is responsible for confirming the intent. If the remote
        call fails with a transport failure the note is restored, selected
        again, and the status becomes ``error``.

        Raises:
            NoteNotFoundError: If an explicit ``note_id`` is not in the collection.
        """
        with self._lock:
            target = note_id or self._selected_id
            idx = self._find_index(target) if target else None
            if idx is None:
                if note_id:
                    raise NoteNotFoundError(note_id)
                return _done_future()
            self._reset_error()
            removed = self._notes[idx]
            if self._cancel_save_timer(removed.id) and removed.id == self._selected_id:
                self._set_dirty(False)
            self._commit_notes(self._notes[:idx] + self._notes[idx + 1:])
            self._set_status(Status.saving("Deleting..."))
        self._flush_events()
        return self._executor.submit(self._delete_remote, removed, idx)

    def set_query(self, query: str) -> None:
        with self._lock:
            self._set_query(query)
        self._flush_events()

    def shutdown(self, flush: bool = True) -> None:
        """Cancel timers and, when ``flush`` is set, push pending edits first."""
        with self._lock:
            pending = list(self._save_timers)
            for timer in self._save_timers.values():
                timer.cancel()
            self._save_timers.clear()
            if self._status_timer is not None:
                self._status_timer.cancel()
                self._status_timer = None
        if flush and pending:
            logger.info("Flushing %d pending saves on shutdown", len(pending))
            for note_id in pending:
                self._submit_save(note_id)
        if self._owns_executor:
            self._executor.shutdown(wait=True)
        logger.debug("NoteSyncService shut down")

    # =========================================================================
    # Remote phases (run on the worker)
    # =========================================================================

    def _startup_remote(self, generation: int) -> None:
        try:
            result = self._client.fetch_all()
        except Exception as e:
            logger.error("Startup sync failed: %s", e)
            with self._lock:
                self._set_status(Status.error(_error_text(e, "Failed to sync notes")))
            self._flush_events()
            return

        with self._lock:
            still_syncing = generation == self._status_generation
            if result.has_value:
                fetched: List[Note] = []
                seen: Set[str] = set()
                for note in result.value or []:
                    if note.id not in seen:
                        seen.add(note.id)
                        fetched.append(note)
                in_flight = [
                    n for n in self._notes
                    if n.id in self._pending_creates and n.id not in seen
                ]
                self._commit_notes(in_flight + fetched)
                logger.info("Synced %d notes from remote", len(fetched))
                if still_syncing:
                    self._finish_saved("Synced", self._synced_display)
            else:
                logger.info(
                    "Remote %s at startup; using local cache", result.outcome.value
                )
                if still_syncing:
                    self._set_status(Status.idle())
        self._flush_events()

    def _create_remote(self, local: Note) -> None:
        with self._lock:
            self._begin_saving("Creating...")
        self._flush_events()
        try:
            result = self._client.create(local.title, local.content)
        except Exception as e:
            logger.error("Remote create failed: %s", e)
            with self._lock:
                self._pending_creates.discard(local.id)
                self._set_status(Status.error(_error_text(e, "Failed to create note")))
            self._flush_events()
            return

        with self._lock:
            self._pending_creates.discard(local.id)
            if result.has_value:
                self._reconcile_created(local, result.value)
            self._finish_saved()
        self._flush_events()

    def _save_remote(self, note_id: str) -> None:
        with self._lock:
            note_id = self._resolve(note_id)
            self._release_queued_save(note_id)
            idx = self._find_index(note_id)
            if idx is None:
                logger.debug("Skipping save of missing note %s", note_id)
                return
            sent = self._notes[idx]
            self._begin_saving("Saving...")
        self._flush_events()
        try:
            result = self._client.update(note_id, sent.title, sent.content)
        except Exception as e:
            logger.error("Remote save of %s failed: %s", note_id, e)
            with self._lock:
                self._set_status(Status.error(_error_text(e, "Failed to save")))
            self._flush_events()
            return

        with self._lock:
            if result.has_value:
                self._merge_saved(note_id, sent, result.value)
            # Dirty stays set while a newer save of the selected note is pending
            selected = self._selected_id
            if selected not in self._save_timers and not self._queued_saves.get(selected):
                self._set_dirty(False)
            self._finish_saved()
        self._flush_events()

    def _delete_remote(self, removed: Note, index: int) -> None:
        with self._lock:
            remote_id = self._resolve(removed.id)
        try:
            self._client.delete(remote_id)
        except Exception as e:
            logger.error("Remote delete of %s failed, restoring: %s", remote_id, e)
            with self._lock:
                self._restore(removed, index)
                self._set_status(Status.error(_error_text(e, "Failed to delete note")))
            self._flush_events()
            return

        with self._lock:
            self._finish_saved()
        self._flush_events()

    # =========================================================================
    # Reconciliation (lock held)
    # =========================================================================

    def _reconcile_created(self, local: Note, server: Note) -> None:
        if "id" not in server.model_fields_set:
            # The response carried no id; the synthesized one means nothing
            server = server.model_copy(update={"id": local.id})
        if server.id != local.id:
            self._aliases[local.id] = server.id
        idx = self._find_index(local.id)
        if idx is None:
            logger.debug("Created note %s is gone locally; dropping response", local.id)
            return
        if server.id != local.id and self._find_index(server.id) is not None:
            logger.warning("Server id %s already present; keeping %s", server.id, local.id)
            self._aliases.pop(local.id, None)
            return

        current = self._notes[idx]
        update = _reported_fields(server)
        if (current.title, current.content) != (local.title, local.content):
            # Edited while the create was in flight; the pending save carries the edit
            update.pop("title", None)
            update.pop("content", None)
            if "updated_at" in update:
                update["updated_at"] = max(current.updated_at, update["updated_at"])
        update["id"] = server.id
        adopted = current.model_copy(update=update)
        if server.id != local.id:
            timer = self._save_timers.pop(local.id, None)
            if timer is not None:
                self._save_timers[server.id] = timer
            queued = self._queued_saves.pop(local.id, 0)
            if queued:
                self._queued_saves[server.id] = self._queued_saves.get(server.id, 0) + queued

        notes = list(self._notes)
        notes[idx] = adopted
        select = server.id if self._selected_id == local.id else None
        self._commit_notes(notes, select=select)
        logger.debug("Reconciled note %s -> %s", local.id, server.id)

    def _merge_saved(self, note_id: str, sent: Note, server: Note) -> None:
        idx = self._find_index(note_id)
        if idx is None:
            logger.debug("Saved note %s is gone locally; dropping response", note_id)
            return
        current = self._notes[idx]
        if (current.title, current.content) != (sent.title, sent.content):
            logger.debug("Note %s changed during save; keeping local fields", note_id)
            return
        # Fields missing from the response keep their local values
        update = _reported_fields(server)
        if not update:
            return
        notes = list(self._notes)
        notes[idx] = current.model_copy(update=update)
        self._commit_notes(notes)

    def _restore(self, removed: Note, index: int) -> None:
        note_id = self._resolve(removed.id)
        if self._find_index(note_id) is None:
            restored = removed if note_id == removed.id else removed.model_copy(
                update={"id": note_id}
            )
            notes = list(self._notes)
            notes.insert(min(index, len(notes)), restored)
            self._commit_notes(notes, select=note_id)
        else:
            self._apply_selection(note_id)

    # =========================================================================
    # Internals (lock held)
    # =========================================================================

    def _load(self) -> None:
        notes = self._cache.load()
        if not notes:
            notes = [welcome_note(self._clock())]
            self._cache.save(notes)
            logger.info("Seeded welcome note")
        self._notes = notes
        self._apply_selection(self._cache.load_selection())
        self._events.clear()

    def _edit_selected(self, **patch: str) -> None:
        with self._lock:
            self._reset_error()
            note_id = self._selected_id
            idx = self._find_index(note_id)
            if idx is not None:
                current = self._notes[idx]
                update: Dict[str, Any] = {k: v or "" for k, v in patch.items()}
                update["updated_at"] = max(self._clock(), current.updated_at)
                notes = list(self._notes)
                notes[idx] = current.model_copy(update=update)
                self._commit_notes(notes)
                self._set_dirty(True)
                self._schedule_save(note_id)
        self._flush_events()

    def _find_index(self, note_id: str) -> Optional[int]:
        if not note_id:
            return None
        for i, note in enumerate(self._notes):
            if note.id == note_id:
                return i
        return None

    def _resolve(self, note_id: str) -> str:
        seen = set()
        while note_id in self._aliases and note_id not in seen:
            seen.add(note_id)
            note_id = self._aliases[note_id]
        return note_id

    def _commit_notes(self, notes: List[Note], select: Optional[str] = None) -> None:
        self._notes = notes
        self._cache.save(notes)
        self._queue("notes")
        self._apply_selection(select if select is not None else self._selected_id)

    def _apply_selection(self, candidate: str) -> None:
        if candidate and self._find_index(candidate) is not None:
            new_id = candidate
        elif self._notes:
            new_id = sort_notes(self._notes)[0].id
        else:
            new_id = ""
        if new_id != self._selected_id:
            self._selected_id = new_id
            self._cache.save_selection(new_id)
            self._queue("selection")

    def _set_query(self, query: str) -> None:
        if query != self._query:
            self._query = query
            self._queue("query")

    def _set_dirty(self, dirty: bool) -> None:
        if dirty != self._dirty:
            self._dirty = dirty
            self._queue("dirty")

    def _set_status(self, status: Status, revert_after: Optional[float] = None) -> None:
        if self._status_timer is not None:
            self._status_timer.cancel()
            self._status_timer = None
        self._status = status
        self._status_generation += 1
        self._queue("status")
        if revert_after is not None:
            generation = self._status_generation
            self._status_timer = self._timer_factory(
                revert_after, lambda: self._revert_status(generation)
            )
            self._status_timer.start()

    def _begin_saving(self, message: str) -> None:
        if self._status.kind is not StatusKind.ERROR:
            self._set_status(Status.saving(message))

    def _finish_saved(self, message: str = "Saved", display: Optional[float] = None) -> None:
        # An error stays until the next user operation
        if self._status.kind is StatusKind.ERROR:
            return
        self._set_status(
            Status.saved(message),
            revert_after=self._saved_display if display is None else display,
        )

    def _revert_status(self, generation: int) -> None:
        with self._lock:
            if generation != self._status_generation:
                return
            self._status_timer = None
            if self._status.kind is StatusKind.SAVED:
                self._set_status(Status.idle())
        self._flush_events()

    def _reset_error(self) -> None:
        if self._status.kind is StatusKind.ERROR:
            self._set_status(Status.idle())

    def _schedule_save(self, note_id: str) -> None:
        self._cancel_save_timer(note_id)
        timer = None

        def fire() -> None:
            self._on_save_timer(note_id, timer)

        timer = self._timer_factory(self._save_delay, fire)
        self._save_timers[note_id] = timer
        timer.start()

    def _cancel_save_timer(self, note_id: str) -> bool:
        timer = self._save_timers.pop(note_id, None)
        if timer is None:
            return False
        timer.cancel()
        return True

    def _submit_save(self, note_id: str) -> Future:
        with self._lock:
            key = self._resolve(note_id)
            self._queued_saves[key] = self._queued_saves.get(key, 0) + 1
        return self._executor.submit(self._save_remote, key)

    def _release_queued_save(self, note_id: str) -> None:
        remaining = self._queued_saves.get(note_id, 0) - 1
        if remaining > 0:
            self._queued_saves[note_id] = remaining
        else:
            self._queued_saves.pop(note_id, None)

    def _on_save_timer(self, note_id: str, timer: Any) -> None:
        with self._lock:
            key = self._resolve(note_id)
            if self._save_timers.get(key) is not timer:
                return
            del self._save_timers[key]
        self._submit_save(key)

    # =========================================================================
    # Listener dispatch
    # =========================================================================

    def _queue(self, event: str) -> None:
        if event not in self._events:
            self._events.append(event)

    def _flush_events(self) -> None:
        with self._lock:
            events, self._events = self._events, []
            listeners = list(self._listeners)
        for event in events:
            for listener in listeners:
                try:
                    listener(event)
                except Exception as e:
                    logger.error("Listener failed on %s: %s", event, e)
