"""Key-value record storage used by the review workflow.

Records are plain JSON-compatible dicts grouped in logical collections and
keyed by their ``id`` field. Every write goes through :meth:`apply` so an
operation that touches several collections commits all of it or none of it.
"""
import copy
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dentai.models.record import StoredRecord

logger = logging.getLogger(__name__)

USERS = "users"
IMAGES = "images"
ANALYSES = "analyses"
NOTIFICATIONS = "notifications"

COLLECTIONS = (USERS, IMAGES, ANALYSES, NOTIFICATIONS)


@dataclass
class ChangeSet:
    """Writes to commit together."""

    puts: dict[str, list[dict]] = field(default_factory=dict)
    deletes: dict[str, list[str]] = field(default_factory=dict)

    def put(self, collection: str, record: dict) -> "ChangeSet":
        self.puts.setdefault(collection, []).append(record)
        return self

    def delete(self, collection: str, record_id: str) -> "ChangeSet":
        self.deletes.setdefault(collection, []).append(record_id)
        return self

    def __bool__(self) -> bool:
        return bool(self.puts or self.deletes)


class RecordStore(Protocol):
    async def get(self, collection: str) -> list[dict]:
        ...

    async def find(self, collection: str, record_id: str) -> dict | None:
        ...

    async def put(self, collection: str, records: list[dict]) -> None:
        ...

    async def delete(self, collection: str, record_ids: list[str]) -> None:
        ...

    async def apply(self, changes: ChangeSet) -> None:
        ...


def _check_collection(collection: str) -> None:
    if collection not in COLLECTIONS:
        raise ValueError(f"Unknown collection: {collection}")


def _validate(changes: ChangeSet) -> None:
    for collection in (*changes.puts, *changes.deletes):
        _check_collection(collection)
    for records in changes.puts.values():
        for record in records:
            if "id" not in record:
                raise ValueError("Record without id")


class MemoryRecordStore:
    """Process-local store, mainly for tests and demos."""

    def __init__(self) -> None:
        self._data: dict[str, dict[str, dict]] = {name: {} for name in COLLECTIONS}

    async def get(self, collection: str) -> list[dict]:
        _check_collection(collection)
        return [copy.deepcopy(r) for r in self._data[collection].values()]

    async def find(self, collection: str, record_id: str) -> dict | None:
        _check_collection(collection)
        record = self._data[collection].get(record_id)
        return copy.deepcopy(record) if record is not None else None

    async def put(self, collection: str, records: list[dict]) -> None:
        await self.apply(ChangeSet(puts={collection: records}))

    async def delete(self, collection: str, record_ids: list[str]) -> None:
        await self.apply(ChangeSet(deletes={collection: record_ids}))

    async def apply(self, changes: ChangeSet) -> None:
        # no awaits below, so the commit cannot interleave with another coroutine
        _validate(changes)

        for collection, records in changes.puts.items():
            for record in records:
                self._data[collection][record["id"]] = copy.deepcopy(record)
        for collection, record_ids in changes.deletes.items():
            for record_id in record_ids:
                self._data[collection].pop(record_id, None)


class SqlRecordStore:
    """Store backed by the ``records`` table (one JSON payload per row)."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, collection: str) -> list[dict]:
        _check_collection(collection)
        async with self._session_factory() as session:
            result = await session.execute(
                select(StoredRecord)
                .where(StoredRecord.collection == collection)
                .order_by(StoredRecord.updated_at)
            )
            return [json.loads(row.payload) for row in result.scalars().all()]

    async def find(self, collection: str, record_id: str) -> dict | None:
        _check_collection(collection)
        async with self._session_factory() as session:
            row = await session.get(StoredRecord, (collection, record_id))
            return json.loads(row.payload) if row else None

    async def put(self, collection: str, records: list[dict]) -> None:
        await self.apply(ChangeSet(puts={collection: records}))

    async def delete(self, collection: str, record_ids: list[str]) -> None:
        await self.apply(ChangeSet(deletes={collection: record_ids}))

    async def apply(self, changes: ChangeSet) -> None:
        _validate(changes)

        now = datetime.now(timezone.utc).isoformat()
        async with self._session_factory() as session:
            async with session.begin():
                for collection, records in changes.puts.items():
                    for record in records:
                        await session.merge(StoredRecord(
                            collection=collection,
                            id=record["id"],
                            payload=json.dumps(record),
                            updated_at=now,
                        ))
                for collection, record_ids in changes.deletes.items():
                    if not record_ids:
                        continue
                    await session.execute(
                        delete(StoredRecord).where(
                            StoredRecord.collection == collection,
                            StoredRecord.id.in_(record_ids),
                        )
                    )
        logger.debug(
            "Committed %d puts, %d deletes",
            sum(len(r) for r in changes.puts.values()),
            sum(len(r) for r in changes.deletes.values()),
        )
