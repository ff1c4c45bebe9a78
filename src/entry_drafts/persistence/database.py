"""
SQLAlchemy-backed key-value storage for sessions that outlive a single process.

Every key of the session store is one row of ``storage_items``; the registry blob and
the legacy single-draft blob therefore live side by side and are replaced independently.
"""

from __future__ import annotations

import datetime as dt
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import DateTime, MetaData, String, Text, create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from .storage import KeyValueStorage, StorageUnavailableError


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class StoreBase(DeclarativeBase):
    metadata = MetaData(naming_convention={"pk": "pk_%(table_name)s"})


class StorageItem(StoreBase):
    __tablename__ = "storage_items"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[str] = mapped_column(Text)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


def open_store_sessions(database_url: str, echo: bool = False) -> sessionmaker[Session]:
    """Bind a session factory to *database_url*, creating ``storage_items`` if it is missing."""

    engine = create_engine(database_url, echo=echo)
    StoreBase.metadata.create_all(engine)
    return sessionmaker(bind=engine, expire_on_commit=False)


@contextmanager
def store_transaction(sessions: sessionmaker[Session]) -> Iterator[Session]:
    """One storage call, one transaction: committed when the block succeeds, rolled back otherwise."""

    with sessions() as session:
        with session.begin():
            yield session


class SqlStorage(KeyValueStorage):
    """Session store persisted through SQLAlchemy; the schema is created on first access."""

    def __init__(self, database_url: str, echo: bool = False) -> None:
        self.database_url = database_url
        self._echo = echo
        self._sessions: Optional[sessionmaker[Session]] = None

    def get_item(self, key: str) -> Optional[str]:
        try:
            with store_transaction(self._factory()) as session:
                item = session.get(StorageItem, key)
                return item.value if item is not None else None
        except SQLAlchemyError as exc:
            raise StorageUnavailableError(f"Cannot read {key!r}: {exc}") from exc

    def set_item(self, key: str, value: str) -> None:
        try:
            with store_transaction(self._factory()) as session:
                item = session.get(StorageItem, key)
                if item is None:
                    session.add(StorageItem(key=key, value=value))
                else:
                    item.value = value
                    item.updated_at = _utcnow()
        except SQLAlchemyError as exc:
            raise StorageUnavailableError(f"Cannot write {key!r}: {exc}") from exc

    def remove_item(self, key: str) -> None:
        try:
            with store_transaction(self._factory()) as session:
                item = session.get(StorageItem, key)
                if item is not None:
                    session.delete(item)
        except SQLAlchemyError as exc:
            raise StorageUnavailableError(f"Cannot remove {key!r}: {exc}") from exc

    def _factory(self) -> sessionmaker[Session]:
        if self._sessions is None:
            self._sessions = open_store_sessions(self.database_url, echo=self._echo)
        return self._sessions


__all__ = ["SqlStorage", "StorageItem", "StoreBase", "open_store_sessions", "store_transaction"]
