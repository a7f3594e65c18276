"""Observability utilities for the notesync client.

Provides rotating file logging for the ``notesync`` logger hierarchy and
in-process metrics for remote calls. A remote call ends in one of three
outcomes: ``ok``, ``unavailable`` (non-2xx or unreachable; the client
carries on locally) or ``failed`` (an exception escaped).
"""
import logging
import time
import uuid
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Optional, Union

logger = logging.getLogger(__name__)

DEFAULT_LOG_DIR = Path.home() / ".notesync" / "logs"
LOG_FILE_NAME = "notesync.log"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

OUTCOME_OK = "ok"
OUTCOME_UNAVAILABLE = "unavailable"
OUTCOME_FAILED = "failed"


def configure_logging(
    log_dir: Optional[Union[str, Path]] = None,
    level: int = logging.INFO,
    max_bytes: int = 2 * 1024 * 1024,
    backup_count: int = 3,
    console: bool = True,
) -> Path:
    """Attach a rotating file handler (and optionally a console handler).

    Handlers are added once; calling again only adjusts the level.

    Args:
        log_dir: Directory for the log file. Defaults to ~/.notesync/logs/
        level: Logging level (default: INFO)
        max_bytes: Size at which the file rotates (default: 2 MB)
        backup_count: Number of rotated files kept (default: 3)
        console: Also echo records to stderr

    Returns:
        Path to the log directory
    """
    log_path = Path(log_dir) if log_dir else DEFAULT_LOG_DIR
    log_path.mkdir(parents=True, exist_ok=True)

    package_logger = logging.getLogger("notesync")
    package_logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    handlers = package_logger.handlers
    if not any(isinstance(h, RotatingFileHandler) for h in handlers):
        file_handler = RotatingFileHandler(
            log_path / LOG_FILE_NAME,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        package_logger.addHandler(file_handler)

    has_console = any(
        type(h) is logging.StreamHandler for h in handlers
    )
    if console and not has_console:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        package_logger.addHandler(console_handler)

    for handler in package_logger.handlers:
        handler.setLevel(level)

    package_logger.debug("Logging to %s", log_path / LOG_FILE_NAME)
    return log_path


@dataclass
class OperationMetrics:
    """Counters for one remote operation (fetch_all, create, update, delete)."""
    count: int = 0
    ok_count: int = 0
    unavailable_count: int = 0
    failed_count: int = 0
    total_duration_ms: float = 0.0
    max_duration_ms: float = 0.0
    last_error: Optional[str] = None
    last_error_time: Optional[datetime] = None


class MetricsCollector:
    """Thread-safe per-operation counters for remote calls."""

    def __init__(self) -> None:
        self._metrics: Dict[str, OperationMetrics] = defaultdict(OperationMetrics)
        self._lock = Lock()
        self._start_time = datetime.now(timezone.utc)

    def record_operation(
        self,
        operation: str,
        duration_ms: float,
        outcome: str = OUTCOME_OK,
        error: Optional[str] = None,
    ) -> None:
        """Record one finished call."""
        with self._lock:
            m = self._metrics[operation]
            m.count += 1
            m.total_duration_ms += duration_ms
            m.max_duration_ms = max(m.max_duration_ms, duration_ms)
            if outcome == OUTCOME_OK:
                m.ok_count += 1
                return
            if outcome == OUTCOME_UNAVAILABLE:
                m.unavailable_count += 1
            else:
                m.failed_count += 1
            m.last_error = error
            m.last_error_time = datetime.now(timezone.utc)

    def get_metrics(self) -> Dict[str, Dict[str, Any]]:
        """Snapshot of every operation's counters."""
        with self._lock:
            snapshot = {}
            for op, m in self._metrics.items():
                snapshot[op] = {
                    "count": m.count,
                    "ok_count": m.ok_count,
                    "unavailable_count": m.unavailable_count,
                    "failed_count": m.failed_count,
                    "avg_duration_ms": round(m.total_duration_ms / m.count, 2) if m.count else 0,
                    "max_duration_ms": round(m.max_duration_ms, 2),
                    "last_error": m.last_error,
                    "last_error_time": (
                        m.last_error_time.isoformat() if m.last_error_time else None
                    ),
                }
            return snapshot

    def get_summary(self) -> Dict[str, Any]:
        """Totals across operations since start or the last reset."""
        with self._lock:
            values = list(self._metrics.values())
            total = sum(m.count for m in values)
            ok = sum(m.ok_count for m in values)
            return {
                "uptime_seconds": (datetime.now(timezone.utc) - self._start_time).total_seconds(),
                "total_calls": total,
                "ok": ok,
                "unavailable": sum(m.unavailable_count for m in values),
                "failed": sum(m.failed_count for m in values),
                "availability": ok / total if total else 1.0,
                "operations_tracked": sorted(self._metrics),
            }

    def reset(self) -> None:
        with self._lock:
            self._metrics.clear()
            self._start_time = datetime.now(timezone.utc)


metrics = MetricsCollector()


@contextmanager
def timed_operation(operation: str, **context):
    """Time a remote call and record its outcome.

    Yields a dict. Set ``op["outcome"] = OUTCOME_UNAVAILABLE`` (with
    ``op["error"]``) to record a handled failure; an exception leaving the
    block is recorded as ``failed`` and re-raised.

    Example:
        with timed_operation("fetch_all", path="/notes") as op:
            notes = do_fetch()
            op["result_count"] = len(notes)
    """
    correlation_id = uuid.uuid4().hex[:8]
    info: Dict[str, Any] = {"outcome": OUTCOME_OK}
    ctx = ", ".join(f"{k}={v}" for k, v in context.items())
    logger.debug(f"[{correlation_id}] START {operation} ({ctx})")
    start = time.perf_counter()
    try:
        yield info
    except Exception as e:
        info["outcome"] = OUTCOME_FAILED
        info["error"] = str(e)
        raise
    finally:
        duration_ms = (time.perf_counter() - start) * 1000
        outcome = info.get("outcome", OUTCOME_OK)
        metrics.record_operation(operation, duration_ms, outcome, info.get("error"))
        extra = ", ".join(
            f"{k}={v}" for k, v in info.items() if k not in ("outcome", "error")
        )
        logger.debug(
            f"[{correlation_id}] END {operation} ({duration_ms:.2f}ms) "
            f"[{outcome}{': ' + str(info['error']) if info.get('error') else ''}] {extra}"
        )
