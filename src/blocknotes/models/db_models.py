"""SQLAlchemy database models for BlockNotes.

All four collections of the persistence port (notes, labels, settings,
syncQueue) share one table keyed by ``(collection, key)``; values are the
JSON documents produced by the pydantic models.
"""
import datetime
from typing import Optional

from sqlalchemy import (Column, DateTime, Index, String, Text, create_engine,
                        event)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from blocknotes.config import BlockNotesConfig, config as default_config

# Create base class for SQLAlchemy models
Base = declarative_base()


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class DBEntry(Base):
    """One stored document in one collection."""
    __tablename__ = "kv_entries"
    collection = Column(String(64), primary_key=True)
    key = Column(String(255), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow,
                        nullable=False)

    __table_args__ = (
        Index("ix_kv_entries_collection", "collection"),
    )

    def __repr__(self) -> str:
        """Return string representation of entry."""
        return f"<Entry(collection='{self.collection}', key='{self.key}')>"


def init_db(cfg: Optional[BlockNotesConfig] = None) -> Engine:
    """Create the engine and schema with hardened SQLite settings.

    File databases get WAL journaling, NORMAL synchronous mode and a small
    QueuePool. In-memory databases use a StaticPool so every session sees
    the same connection (and therefore the same data).
    """
    cfg = cfg or default_config
    url = cfg.get_db_url()

    if cfg.in_memory_db:
        engine = create_engine(
            url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    else:
        # SQLite is single-writer, so a small pool is ideal
        engine = create_engine(
            url,
            poolclass=QueuePool,
            pool_size=5,
            max_overflow=10,
            pool_timeout=30,
            pool_pre_ping=True,
            connect_args={"check_same_thread": False},
        )

        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            # WAL mode: writes go to separate journal, preventing corruption on crash
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.close()

    Base.metadata.create_all(engine)
    return engine


def get_session_factory(engine: Optional[Engine] = None):
    """Get a session factory for the database."""
    if engine is None:
        engine = init_db()
    return sessionmaker(bind=engine, expire_on_commit=False)
