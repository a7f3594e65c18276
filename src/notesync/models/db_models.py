"""SQLAlchemy database models for the notesync cache."""
import datetime
from typing import Optional

from sqlalchemy import Column, DateTime, String, Text, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from notesync.config import config

# Create base class for SQLAlchemy models
Base = declarative_base()


class DBCacheEntry(Base):
    """One key/value entry of the local cache."""
    __tablename__ = "cache_entries"
    key = Column(String(255), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=datetime.datetime.now, nullable=False)

    def __repr__(self) -> str:
        """Return string representation of the entry."""
        return f"<CacheEntry(key='{self.key}', size={len(self.value or '')})>"


def init_db(db_url: Optional[str] = None) -> Engine:
    """Initialize the cache database.

    Applies the same SQLite settings on every connection:
    - WAL (Write-Ahead Logging) mode for atomic writes
    - NORMAL synchronous mode
    """
    engine = create_engine(db_url or config.get_db_url())

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.close()

    Base.metadata.create_all(engine)
    return engine


def get_session_factory(engine: Engine):
    """Get a session factory for the database."""
    return sessionmaker(bind=engine)
