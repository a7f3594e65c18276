"""
HTTP client for a remote notes service.

The service shape is not fixed: each operation probes a short list of
candidate paths (and, for updates, methods) and accepts whichever answers.
Responses are normalized into ``Note`` regardless of field naming.

Every operation returns a ``RemoteResult`` instead of raising for expected
outcomes:

- ``unconfigured``: no base URL; nothing is sent over the network.
- ``unavailable``: every candidate answered non-2xx, could not be reached
  (``httpx.TransportError``: connect, timeout, protocol, proxy), or answered
  with a body that cannot be read as the requested result.
- value: the operation succeeded.

Anything else httpx raises (``InvalidURL``, ``DecodingError``,
``TooManyRedirects``, ...) means the exchange itself was malformed. It is
raised as ``TransportFailureError`` and is the only remote failure callers
surface to the user.
"""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Generic, List, Mapping, Optional, Tuple, TypeVar
from urllib.parse import quote

import httpx
from pydantic import TypeAdapter, ValidationError

from notesync.config import NotesyncConfig
from notesync.exceptions import (
    ConfigurationError,
    RemoteRequestError,
    TransportFailureError,
)
from notesync.models.schema import Note, ensure_timezone_aware
from notesync.observability import OUTCOME_UNAVAILABLE, timed_operation

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0

# Candidate collection paths, tried in order
NOTES_PATHS: Tuple[str, ...] = ("/notes", "/api/notes")

# Object fields that may wrap the note array in a list response
LIST_FIELDS: Tuple[str, ...] = ("notes", "items", "data")

_DATETIME = TypeAdapter(datetime.datetime)

T = TypeVar("T")


class Outcome(str, Enum):
    """Tag of a remote call result."""

    UNCONFIGURED = "unconfigured"
    UNAVAILABLE = "unavailable"
    VALUE = "value"


@dataclass(frozen=True)
class RemoteResult(Generic[T]):
    """Tri-state result of a remote operation.

    Attributes:
        outcome: Which of the three states this is.
        value: The payload, only set when ``outcome`` is ``VALUE``.
        error: Last failure message when ``outcome`` is ``UNAVAILABLE``.
    """

    outcome: Outcome
    value: Optional[T] = None
    error: Optional[str] = None

    @classmethod
    def unconfigured(cls) -> "RemoteResult[Any]":
        return cls(Outcome.UNCONFIGURED)

    @classmethod
    def unavailable(cls, error: Optional[str] = None) -> "RemoteResult[Any]":
        return cls(Outcome.UNAVAILABLE, error=error)

    @classmethod
    def of(cls, value: T) -> "RemoteResult[T]":
        return cls(Outcome.VALUE, value=value)

    @property
    def has_value(self) -> bool:
        return self.outcome is Outcome.VALUE


def note_paths(note_id: str) -> Tuple[str, ...]:
    """Candidate item paths for a note id."""
    encoded = quote(str(note_id), safe="")
    return tuple(f"{base}/{encoded}" for base in NOTES_PATHS)


def _first(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return None


def _parse_timestamp(value: Any) -> Optional[datetime.datetime]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return ensure_timezone_aware(_DATETIME.validate_python(value))
    except ValidationError:
        logger.debug("Ignoring unparseable timestamp %r", value)
        return None


def normalize_note(data: Mapping[str, Any]) -> Note:
    """Coerce a response object into a ``Note``.

    camelCase field names win over snake_case and alternate names; unknown
    fields are ignored. Only fields the server actually sent are passed to
    the model, so ``model_fields_set`` tells callers what the response
    carried. A missing id is synthesized locally and missing timestamps
    default to now.
    """
    fields: Dict[str, Any] = {}
    raw_id = _first(data, "id", "noteId", "note_id")
    note_id = str(raw_id).strip() if raw_id is not None else ""
    if note_id:
        fields["id"] = note_id
    title = _first(data, "title")
    if title is not None:
        fields["title"] = title
    content = _first(data, "content", "body")
    if content is not None:
        fields["content"] = content
    created = _parse_timestamp(_first(data, "createdAt", "created_at"))
    if created is not None:
        fields["created_at"] = created
    updated = _parse_timestamp(
        _first(data, "updatedAt", "updated_at", "modifiedAt", "modified_at")
    )
    if updated is not None:
        fields["updated_at"] = updated
    return Note(**fields)


def _extract_note_list(payload: Any) -> Optional[List[Note]]:
    items = None
    if isinstance(payload, list):
        items = payload
    elif isinstance(payload, dict):
        for field in LIST_FIELDS:
            if isinstance(payload.get(field), list):
                items = payload[field]
                break
    if items is None:
        return None
    return [normalize_note(item) for item in items if isinstance(item, dict)]


def _parse_payload(response: httpx.Response) -> Any:
    content_type = response.headers.get("content-type", "")
    if "application/json" in content_type:
        try:
            return response.json()
        except ValueError:
            return None
    return response.text


def _error_message(payload: Any, status: int) -> str:
    if isinstance(payload, dict):
        for key in ("detail", "message"):
            value = payload.get(key)
            if isinstance(value, str) and value:
                return value
    if isinstance(payload, str) and payload:
        return payload
    return f"Request failed: {status}"


class NotesApiClient:
    """Tolerant HTTP client for the notes service."""

    def __init__(
        self,
        base_url: Optional[str],
        *,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        base = (base_url or "").strip().rstrip("/")
        self._base_url: Optional[str] = base or None
        self._client: Optional[httpx.Client] = None
        if self._base_url:
            self._client = httpx.Client(
                base_url=self._base_url,
                headers={"Content-Type": "application/json"},
                timeout=timeout,
                transport=transport,
            )

    @classmethod
    def from_config(cls, cfg: NotesyncConfig) -> "NotesApiClient":
        return cls(cfg.api_base_url, timeout=cfg.request_timeout)

    @property
    def base_url(self) -> Optional[str]:
        return self._base_url

    @property
    def is_configured(self) -> bool:
        return self._client is not None

    def _request(self, method: str, path: str, body: Optional[dict] = None) -> Any:
        """One HTTP exchange; returns the parsed body of a 2xx response.

        Raises:
            ConfigurationError: If the client has no base URL.
            RemoteRequestError: On a non-2xx status.
            httpx.HTTPError, httpx.InvalidURL: Unhandled transport problems.
        """
        if self._client is None:
            raise ConfigurationError(
                "Remote notes service is not configured", config_key="api_base_url"
            )
        response = self._client.request(method, path, json=body)
        payload = _parse_payload(response)
        if not response.is_success:
            raise RemoteRequestError(
                _error_message(payload, response.status_code),
                status=response.status_code,
                method=method,
                path=path,
                payload=payload,
            )
        return payload

    def _exchange(
        self, operation: str, method: str, path: str, body: Optional[dict] = None
    ) -> Tuple[bool, Any, Optional[str]]:
        """Run one candidate request.

        Returns ``(True, payload, None)`` on 2xx and ``(False, None, message)``
        when this candidate is unavailable.
        """
        with timed_operation(operation, method=method, path=path) as op:
            try:
                return True, self._request(method, path, body), None
            except RemoteRequestError as e:
                op["outcome"] = OUTCOME_UNAVAILABLE
                op["error"] = e.message
                logger.info("%s %s answered %d: %s", method, path, e.status, e.message)
                return False, None, e.message
            except httpx.TransportError as e:
                message = str(e) or e.__class__.__name__
                op["outcome"] = OUTCOME_UNAVAILABLE
                op["error"] = message
                logger.info("%s %s unreachable: %s", method, path, message)
                return False, None, message
            except (httpx.HTTPError, httpx.InvalidURL) as e:
                logger.error("%s %s failed: %s", method, path, e)
                raise TransportFailureError(
                    str(e) or f"{operation} failed",
                    operation=operation,
                    original_error=e,
                ) from e

    def fetch_all(self) -> RemoteResult[List[Note]]:
        """GET the full collection."""
        if not self.is_configured:
            return RemoteResult.unconfigured()
        last_error: Optional[str] = None
        for path in NOTES_PATHS:
            ok, payload, error = self._exchange("fetch_all", "GET", path)
            if not ok:
                last_error = error
                continue
            notes = _extract_note_list(payload)
            if notes is None:
                last_error = f"Unexpected response shape from {path}"
                logger.info(last_error)
                continue
            return RemoteResult.of(notes)
        return RemoteResult.unavailable(last_error)

    def create(self, title: str, content: str) -> RemoteResult[Note]:
        """POST a new note; the server's note (and id) is returned."""
        if not self.is_configured:
            return RemoteResult.unconfigured()
        body = {"title": title, "content": content}
        last_error: Optional[str] = None
        for path in NOTES_PATHS:
            ok, payload, error = self._exchange("create", "POST", path, body)
            if not ok:
                last_error = error
                continue
            if isinstance(payload, dict):
                return RemoteResult.of(normalize_note(payload))
            # Accepted, but nothing to reconcile with
            return RemoteResult.unavailable(f"No note in response from {path}")
        return RemoteResult.unavailable(last_error)

    def update(self, note_id: str, title: str, content: str) -> RemoteResult[Note]:
        """PUT, then PATCH, the note's title and content.

        An acknowledgement body such as ``{"ok": true}`` still succeeds; the
        returned note's ``model_fields_set`` is then empty.
        """
        if not self.is_configured:
            return RemoteResult.unconfigured()
        body = {"title": title, "content": content}
        last_error: Optional[str] = None
        for method in ("PUT", "PATCH"):
            for path in note_paths(note_id):
                ok, payload, error = self._exchange("update", method, path, body)
                if not ok:
                    last_error = error
                    continue
                if isinstance(payload, dict):
                    return RemoteResult.of(normalize_note(payload))
                return RemoteResult.unavailable(f"No note in response from {path}")
        return RemoteResult.unavailable(last_error)

    def delete(self, note_id: str) -> RemoteResult[bool]:
        """DELETE the note."""
        if not self.is_configured:
            return RemoteResult.unconfigured()
        last_error: Optional[str] = None
        for path in note_paths(note_id):
            ok, _, error = self._exchange("delete", "DELETE", path)
            if ok:
                return RemoteResult.of(True)
            last_error = error
        return RemoteResult.unavailable(last_error)

    def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            self._client.close()

    def __enter__(self) -> "NotesApiClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
