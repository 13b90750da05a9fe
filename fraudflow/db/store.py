"""
Record store - key-addressable, versioned JSON documents.

Two backends share one async interface:
- MemoryStore: dict-backed, for development and tests
- SqlStore: SQLAlchemy async, one ``ff_records`` table

``put`` is a compare-and-set: the caller passes the version it read
(0 for a record that must not exist yet) and the write fails with
ConcurrencyConflict if someone else wrote in between. Every successful
write is published to the notifier.
"""

import copy
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Protocol

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fraudflow.db.engine import session_scope
from fraudflow.db.models import RecordModel
from fraudflow.errors import ConcurrencyConflict
from fraudflow.services.notifier import Notifier

logger = structlog.get_logger(__name__)

Payload = dict[str, Any]
Predicate = Callable[[Payload], bool]

COLLECTIONS = ("events", "historiques", "alerts", "risques", "cases")


class Store(Protocol):
    async def get(self, collection: str, record_id: str) -> Optional[Payload]: ...

    async def put(
        self, collection: str, record_id: str, payload: Payload, expected_version: int
    ) -> int: ...

    async def list(self, collection: str, predicate: Optional[Predicate] = None) -> list[Payload]: ...


def _conflict(collection: str, record_id: str, expected: int, actual: Optional[int]) -> ConcurrencyConflict:
    logger.warning(
        "store_version_conflict",
        collection=collection,
        record_id=record_id,
        expected=expected,
        actual=actual,
    )
    return ConcurrencyConflict(
        f"{collection} '{record_id}' changed concurrently (expected v{expected}, found v{actual})",
        collection=collection,
        record_id=record_id,
    )


class MemoryStore:
    """In-process store. Each put is atomic with respect to the event loop."""

    def __init__(self, notifier: Optional[Notifier] = None):
        self._data: dict[str, dict[str, tuple[int, Payload]]] = {c: {} for c in COLLECTIONS}
        self._notifier = notifier

    async def get(self, collection: str, record_id: str) -> Optional[Payload]:
        entry = self._data.setdefault(collection, {}).get(record_id)
        if entry is None:
            return None
        version, payload = entry
        return {**copy.deepcopy(payload), "version": version}

    async def put(self, collection: str, record_id: str, payload: Payload, expected_version: int) -> int:
        bucket = self._data.setdefault(collection, {})
        current = bucket.get(record_id)
        current_version = current[0] if current else 0
        if current_version != expected_version:
            raise _conflict(collection, record_id, expected_version, current_version)

        new_version = expected_version + 1
        bucket[record_id] = (new_version, copy.deepcopy(payload))
        _publish(self._notifier, collection, record_id, new_version)
        return new_version

    async def list(self, collection: str, predicate: Optional[Predicate] = None) -> list[Payload]:
        records = [
            {**copy.deepcopy(payload), "version": version}
            for version, payload in self._data.setdefault(collection, {}).values()
        ]
        if predicate is not None:
            records = [r for r in records if predicate(r)]
        return records


class SqlStore:
    """Store backed by the ``ff_records`` table."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        notifier: Optional[Notifier] = None,
    ):
        self._session_factory = session_factory
        self._notifier = notifier

    async def get(self, collection: str, record_id: str) -> Optional[Payload]:
        async with session_scope(self._session_factory) as session:
            row = await session.get(RecordModel, (collection, record_id))
            if row is None:
                return None
            return {**row.payload, "version": row.version}

    async def put(self, collection: str, record_id: str, payload: Payload, expected_version: int) -> int:
        now = datetime.now(timezone.utc)
        new_version = expected_version + 1
        body = {k: v for k, v in payload.items() if k != "version"}

        if expected_version == 0:
            try:
                async with session_scope(self._session_factory) as session:
                    session.add(
                        RecordModel(
                            collection=collection,
                            id=record_id,
                            version=new_version,
                            payload=body,
                            created_at=now,
                            updated_at=now,
                        )
                    )
            except IntegrityError:
                actual = await self._current_version(collection, record_id)
                raise _conflict(collection, record_id, expected_version, actual)
        else:
            async with session_scope(self._session_factory) as session:
                result = await session.execute(
                    update(RecordModel)
                    .where(
                        RecordModel.collection == collection,
                        RecordModel.id == record_id,
                        RecordModel.version == expected_version,
                    )
                    .values(version=new_version, payload=body, updated_at=now)
                )
                updated = result.rowcount
            if updated != 1:
                actual = await self._current_version(collection, record_id)
                raise _conflict(collection, record_id, expected_version, actual)

        _publish(self._notifier, collection, record_id, new_version)
        return new_version

    async def list(self, collection: str, predicate: Optional[Predicate] = None) -> list[Payload]:
        async with session_scope(self._session_factory) as session:
            result = await session.execute(
                select(RecordModel)
                .where(RecordModel.collection == collection)
                .order_by(RecordModel.created_at)
            )
            rows = result.scalars().all()
            records = [{**row.payload, "version": row.version} for row in rows]
        if predicate is not None:
            records = [r for r in records if predicate(r)]
        return records

    async def _current_version(self, collection: str, record_id: str) -> Optional[int]:
        async with session_scope(self._session_factory) as session:
            row = await session.get(RecordModel, (collection, record_id))
            return row.version if row is not None else None


def _publish(notifier: Optional[Notifier], collection: str, record_id: str, version: int) -> None:
    if notifier is None:
        return
    action = "created" if version == 1 else "updated"
    notifier.publish({"type": f"{collection}.{action}", "id": record_id, "version": version})
