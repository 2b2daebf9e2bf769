"""
Durable local key/value cache backed by SQLite.

Stores the auto-saved snapshot and the onboarding flag between runs.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from sqlalchemy import DateTime, String, Text, create_engine, select
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for cache tables."""


class CacheEntry(Base):
    """
    Simple key/value storage for cached application state.
    """
    __tablename__ = "cache_entries"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )


class KeyValueCache:
    """
    String key/value store on a single SQLite file.

    Args:
        db_path: SQLite file path; parent directories are created as needed
    """

    def __init__(self, db_path: str):
        path = Path(db_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        logger.debug("Opening cache database at %s", path)
        self._init_engine(create_engine(f"sqlite+pysqlite:///{path}", future=True))

    @classmethod
    def in_memory(cls) -> "KeyValueCache":
        """Process-local cache that disappears when closed."""
        cache = cls.__new__(cls)
        cache._init_engine(create_engine(
            "sqlite+pysqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            future=True,
        ))
        return cache

    def _init_engine(self, engine) -> None:
        self.engine = engine
        self.SessionLocal = sessionmaker(
            bind=engine,
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
        )
        Base.metadata.create_all(bind=engine, checkfirst=True)

    def get(self, key: str) -> Optional[str]:
        session = self.SessionLocal()
        try:
            row = session.get(CacheEntry, key)
            return row.value if row else None
        finally:
            session.close()

    def set(self, key: str, value: str) -> None:
        session = self.SessionLocal()
        try:
            row = session.get(CacheEntry, key)
            if row is None:
                session.add(CacheEntry(key=key, value=value))
            else:
                row.value = value
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def delete(self, key: str) -> bool:
        """Remove ``key``; returns False when it was not present."""
        session = self.SessionLocal()
        try:
            row = session.get(CacheEntry, key)
            if row is None:
                return False
            session.delete(row)
            session.commit()
            return True
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def keys(self) -> List[str]:
        session = self.SessionLocal()
        try:
            return list(session.scalars(select(CacheEntry.key).order_by(CacheEntry.key)))
        finally:
            session.close()

    def close(self) -> None:
        self.engine.dispose()
