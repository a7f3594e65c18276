"""SQLite-backed key/value store."""
import datetime
import logging
from typing import Optional

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from notesync.exceptions import ErrorCode, StorageError
from notesync.models.db_models import DBCacheEntry, get_session_factory, init_db
from notesync.storage.base import KeyValueStore

logger = logging.getLogger(__name__)


class SqliteStore(KeyValueStore):
    """Persists cache entries in a single SQLite table."""

    def __init__(self, db_url: Optional[str] = None, engine: Optional[Engine] = None) -> None:
        self._engine = engine if engine is not None else init_db(db_url)
        self._owns_engine = engine is None
        self._session_factory = get_session_factory(self._engine)

    def get_item(self, key: str) -> Optional[str]:
        try:
            with self._session_factory() as session:
                entry = session.get(DBCacheEntry, key)
                return entry.value if entry is not None else None
        except SQLAlchemyError as e:
            raise StorageError(
                f"Failed to read cache entry: {e}",
                operation="get_item",
                key=key,
                code=ErrorCode.STORAGE_READ_FAILED,
                original_error=e,
            )

    def set_item(self, key: str, value: str) -> None:
        try:
            with self._session_factory() as session:
                entry = session.get(DBCacheEntry, key)
                if entry is None:
                    session.add(DBCacheEntry(key=key, value=value))
                else:
                    entry.value = value
                    entry.updated_at = datetime.datetime.now()
                session.commit()
        except SQLAlchemyError as e:
            raise StorageError(
                f"Failed to write cache entry: {e}",
                operation="set_item",
                key=key,
                code=ErrorCode.STORAGE_WRITE_FAILED,
                original_error=e,
            )

    def remove_item(self, key: str) -> None:
        try:
            with self._session_factory() as session:
                entry = session.get(DBCacheEntry, key)
                if entry is not None:
                    session.delete(entry)
                    session.commit()
        except SQLAlchemyError as e:
            raise StorageError(
                f"Failed to delete cache entry: {e}",
                operation="remove_item",
                key=key,
                code=ErrorCode.STORAGE_WRITE_FAILED,
                original_error=e,
            )

    def close(self) -> None:
        if self._owns_engine:
            self._engine.dispose()
            logger.debug("SQLite cache engine disposed")
