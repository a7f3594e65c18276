"""Error types for the notesync client.

Every error carries an ``ErrorCode`` and a details mapping, so callers can
report a failure as text or as JSON (``to_dict``).
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Machine-readable error identifiers, grouped by subsystem."""

    # Notes (1xxx)
    NOTE_NOT_FOUND = 1001

    # Local cache (4xxx)
    STORAGE_READ_FAILED = 4001
    STORAGE_WRITE_FAILED = 4002

    # Configuration (6xxx)
    CONFIG_INVALID = 6001

    # Generic (7xxx)
    VALIDATION_FAILED = 7001

    # Remote service (8xxx)
    REMOTE_REQUEST_FAILED = 8001
    REMOTE_TRANSPORT_FAILED = 8002


def _describe(error: Optional[Exception], limit: int = 200) -> Optional[str]:
    if error is None:
        return None
    return str(error)[:limit]


class NotesyncError(Exception):
    """Base class for notesync errors.

    Attributes:
        message: Human-readable text, shown to the user as-is
        code: Machine-readable error code
        details: Extra context; entries whose value is None are dropped
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = {k: v for k, v in (details or {}).items() if v is not None}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": type(self).__name__,
            "code": self.code.value,
            "code_name": self.code.name,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:
        if not self.details:
            return f"[{self.code.name}] {self.message}"
        extra = ", ".join(f"{k}={v}" for k, v in self.details.items())
        return f"[{self.code.name}] {self.message} ({extra})"


class NoteNotFoundError(NotesyncError):
    """No note with the given id is in the collection."""

    def __init__(self, note_id: str):
        super().__init__(
            f"Note with ID '{note_id}' not found",
            code=ErrorCode.NOTE_NOT_FOUND,
            details={"note_id": note_id},
        )
        self.note_id = note_id


class StorageError(NotesyncError):
    """A durable store could not read or write an entry.

    The cache adapter catches these; they never reach the engine.
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        key: Optional[str] = None,
        code: ErrorCode = ErrorCode.STORAGE_READ_FAILED,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            message,
            code=code,
            details={
                "operation": operation,
                "key": key,
                "original_error": _describe(original_error),
            },
        )
        self.operation = operation
        self.key = key
        self.original_error = original_error


class ConfigurationError(NotesyncError):
    """A setting has a value the client cannot work with."""

    def __init__(self, message: str, config_key: Optional[str] = None):
        super().__init__(
            message, code=ErrorCode.CONFIG_INVALID, details={"config_key": config_key}
        )
        self.config_key = config_key


class RemoteRequestError(NotesyncError):
    """A remote call completed with a non-2xx status.

    The message is taken from the response body when it carries one
    (``detail`` or ``message`` field, or plain text), otherwise it is
    ``Request failed: <status>``.
    """

    def __init__(
        self,
        message: str,
        status: int,
        method: Optional[str] = None,
        path: Optional[str] = None,
        payload: Any = None,
    ):
        super().__init__(
            message,
            code=ErrorCode.REMOTE_REQUEST_FAILED,
            details={"status": status, "method": method, "path": path},
        )
        self.status = status
        self.method = method
        self.path = path
        self.payload = payload


class TransportFailureError(NotesyncError):
    """A remote exchange failed in a way that is not a clean outcome.

    Unlike a non-2xx status or an unreachable host (both reported as
    "unavailable"), this escapes the remote client and surfaces as a
    user-visible error.
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            message,
            code=ErrorCode.REMOTE_TRANSPORT_FAILED,
            details={"operation": operation, "original_error": _describe(original_error)},
        )
        self.operation = operation
        self.original_error = original_error
