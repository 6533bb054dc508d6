"""Durable key-value storage backends for the persisted client state.

Both backends implement the ``DurableStorage`` protocol: ``get(key)`` and
``set(key, value)`` over strings under a fixed key. Concurrent writers simply
overwrite each other (last write wins).
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, Text
from sqlalchemy.engine import Engine
from sqlmodel import Field, Session, SQLModel, create_engine


class StateRecord(SQLModel, table=True):
    """StateRecord is a named slot holding one serialized state payload."""

    __tablename__ = "state_records"  # type: ignore[assignment]

    key: str = Field(primary_key=True, max_length=255)
    state_value: str = Field(sa_column=Column(Text, nullable=False))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class MemoryStorage:
    """In-process storage, used by tests and one-shot runs."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value


class SqlStorage:
    """SQL-backed storage (SQLite by default) using SQLModel.

    The table is created on first use, so a fresh database file works
    without migrations.
    """

    def __init__(self, url: str = "sqlite:///promptmint_state.db", engine: Optional[Engine] = None):
        self.engine = engine or create_engine(url, echo=False)
        SQLModel.metadata.create_all(self.engine, tables=[StateRecord.__table__])  # type: ignore[attr-defined]

    def get(self, key: str) -> Optional[str]:
        """Retrieve the payload stored under ``key``, or None."""
        with Session(self.engine) as session:
            record = session.get(StateRecord, key)
            return record.state_value if record else None

    def set(self, key: str, value: str) -> None:
        """Insert or overwrite the payload stored under ``key``."""
        with Session(self.engine) as session:
            record = session.get(StateRecord, key)
            if record is None:
                record = StateRecord(key=key, state_value=value)
            else:
                record.state_value = value
                record.updated_at = datetime.now(timezone.utc)
            session.add(record)
            session.commit()

    def delete(self, key: str) -> bool:
        """Delete the slot for ``key`` (idempotent).

        Returns:
            True if key was deleted, False if key did not exist
        """
        with Session(self.engine) as session:
            record = session.get(StateRecord, key)
            if record is None:
                return False
            session.delete(record)
            session.commit()
            return True
