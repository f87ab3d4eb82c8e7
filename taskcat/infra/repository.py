from __future__ import annotations

import asyncio
from typing import Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError

from .db import SessionLocal
from .models import KeyValueModel


class StorageError(Exception):
    """Raised by a storage backend when a read or write cannot be completed."""


class KeyValueStorage(Protocol):
    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str) -> None: ...


class SqlKeyValueStorage:
    """Key/value persistence on a single SQLAlchemy table.

    Sessions are synchronous, so each call runs in a worker thread.
    """

    def __init__(self, session_factory=SessionLocal) -> None:
        self._session_factory = session_factory

    async def get(self, key: str) -> Optional[str]:
        return await asyncio.to_thread(self._get, key)

    async def set(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._set, key, value)

    def _get(self, key: str) -> Optional[str]:
        try:
            with self._session_factory() as session:
                row = session.get(KeyValueModel, key)
                return row.value if row else None
        except SQLAlchemyError as exc:
            raise StorageError(f"failed to read {key!r}") from exc

    def _set(self, key: str, value: str) -> None:
        try:
            with self._session_factory() as session:
                row = session.get(KeyValueModel, key)
                if row:
                    row.value = value
                else:
                    session.add(KeyValueModel(key=key, value=value))
                session.commit()
        except SQLAlchemyError as exc:
            raise StorageError(f"failed to write {key!r}") from exc


class InMemoryKeyValueStorage:
    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        self.data[key] = value
