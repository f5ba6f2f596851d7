"""
Storage Gateway.

Async key/value access to the named collections the quiz engine and the
oracle read and write:

- questions       keyed by "id"
- history         keyed by "id"
- academic_state  keyed by "subject_id"
- profiles        keyed by "user_id"

The SQLAlchemy implementation runs its blocking work on a worker thread via
asyncio.to_thread so callers on the event loop never block on I/O.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from typing import Any, Protocol

from loguru import logger
from sqlalchemy import Engine, delete, func, select
from sqlalchemy.exc import SQLAlchemyError

from src.db.database import create_db_engine, init_db, make_session_factory, session_scope
from src.db.models import Document

QUESTIONS = "questions"
HISTORY = "history"
ACADEMIC_STATE = "academic_state"
PROFILES = "profiles"

KEY_FIELDS: dict[str, str] = {
    QUESTIONS: "id",
    HISTORY: "id",
    ACADEMIC_STATE: "subject_id",
    PROFILES: "user_id",
}


class StorageError(RuntimeError):
    """Raised when the backing store fails."""


class StorageGateway(Protocol):
    """Operations the core consumes from persistent storage."""

    async def connect(self) -> None: ...

    async def get(self, collection: str, key: Any) -> dict[str, Any] | None: ...

    async def put(self, collection: str, record: dict[str, Any]) -> None: ...

    async def get_all(self, collection: str) -> list[dict[str, Any]]: ...

    async def get_random_keys(
        self,
        collection: str,
        index_field: str | None,
        value: Any,
        limit: int,
    ) -> list[Any]: ...


def record_key(collection: str, record: dict[str, Any]) -> str:
    """Extract the storage key of a record for its collection."""
    field_name = KEY_FIELDS.get(collection, "id")
    if record.get(field_name) is None:
        raise StorageError(f"Record for '{collection}' is missing key field '{field_name}'")
    return str(record[field_name])


class SqlStorageGateway:
    """
    SQLAlchemy-backed document store.

    Usage:
        storage = SqlStorageGateway.from_url("sqlite:///oracle.db")
        await storage.connect()
        await storage.put("history", result.to_dict())
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self._session_factory = make_session_factory(engine)
        self._connected = False

    @classmethod
    def from_url(cls, url: str, echo: bool = False) -> SqlStorageGateway:
        return cls(create_db_engine(url, echo=echo))

    # =========================================================================
    # Connection
    # =========================================================================

    async def connect(self) -> None:
        """Create tables on first use (idempotent)."""
        if self._connected:
            return
        await asyncio.to_thread(self._connect_sync)

    def _connect_sync(self) -> None:
        try:
            init_db(self.engine)
        except SQLAlchemyError as exc:
            raise StorageError(f"Could not initialize storage: {exc}") from exc
        self._connected = True
        logger.debug("Storage connected: {}", self.engine.url)

    async def close(self) -> None:
        await asyncio.to_thread(self.engine.dispose)
        self._connected = False

    # =========================================================================
    # Core Operations
    # =========================================================================

    async def get(self, collection: str, key: Any) -> dict[str, Any] | None:
        await self.connect()
        return await asyncio.to_thread(self._get_sync, collection, str(key))

    def _get_sync(self, collection: str, key: str) -> dict[str, Any] | None:
        try:
            with session_scope(self._session_factory) as session:
                doc = session.get(Document, (collection, key))
                return dict(doc.body) if doc else None
        except SQLAlchemyError as exc:
            raise StorageError(f"get {collection}/{key} failed: {exc}") from exc

    async def put(self, collection: str, record: dict[str, Any]) -> None:
        await self.connect()
        await asyncio.to_thread(self._put_many_sync, collection, [record])

    async def bulk_put(self, collection: str, records: Iterable[dict[str, Any]]) -> int:
        """Insert or replace many records in one transaction."""
        await self.connect()
        return await asyncio.to_thread(self._put_many_sync, collection, list(records))

    def _put_many_sync(self, collection: str, records: list[dict[str, Any]]) -> int:
        try:
            with session_scope(self._session_factory) as session:
                for record in records:
                    session.merge(
                        Document(
                            collection=collection,
                            key=record_key(collection, record),
                            body=record,
                        )
                    )
        except SQLAlchemyError as exc:
            raise StorageError(f"put into {collection} failed: {exc}") from exc
        return len(records)

    async def delete(self, collection: str, key: Any) -> None:
        await self.connect()
        await asyncio.to_thread(self._delete_sync, collection, str(key))

    def _delete_sync(self, collection: str, key: str) -> None:
        try:
            with session_scope(self._session_factory) as session:
                session.execute(
                    delete(Document).where(Document.collection == collection, Document.key == key)
                )
        except SQLAlchemyError as exc:
            raise StorageError(f"delete {collection}/{key} failed: {exc}") from exc

    async def get_all(self, collection: str) -> list[dict[str, Any]]:
        await self.connect()
        return await asyncio.to_thread(self._get_all_sync, collection)

    def _get_all_sync(self, collection: str) -> list[dict[str, Any]]:
        try:
            with session_scope(self._session_factory) as session:
                rows = session.scalars(
                    select(Document).where(Document.collection == collection).order_by(Document.key)
                ).all()
                return [dict(row.body) for row in rows]
        except SQLAlchemyError as exc:
            raise StorageError(f"scan of {collection} failed: {exc}") from exc

    async def get_random_keys(
        self,
        collection: str,
        index_field: str | None,
        value: Any,
        limit: int,
    ) -> list[Any]:
        """
        Random sample of keys, optionally filtered by a field value.

        Args:
            collection: Collection name
            index_field: Record field to filter on (None for the whole collection)
            value: Required value of index_field
            limit: Maximum keys returned

        Returns:
            Keys in random order (at most `limit`)
        """
        await self.connect()
        return await asyncio.to_thread(self._random_keys_sync, collection, index_field, value, limit)

    def _random_keys_sync(
        self,
        collection: str,
        index_field: str | None,
        value: Any,
        limit: int,
    ) -> list[str]:
        stmt = select(Document.key).where(Document.collection == collection)
        if index_field:
            stmt = stmt.where(Document.body[index_field].as_string() == str(value))
        stmt = stmt.order_by(func.random()).limit(limit)
        try:
            with session_scope(self._session_factory) as session:
                return list(session.scalars(stmt).all())
        except SQLAlchemyError as exc:
            raise StorageError(f"random sample of {collection} failed: {exc}") from exc
