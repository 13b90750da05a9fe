"""
Generic async repository over the record store.

Maps a store collection to a pydantic model. Writes go through ``add``
(record must not exist) or ``save`` (compare-and-set against the version
the record was read at); both return the record with its new version.
"""

from typing import Callable, Generic, Optional, Type, TypeVar

from pydantic import BaseModel

from fraudflow.db.store import Store
from fraudflow.errors import RecordNotFound
from fraudflow.schemas.common import utcnow

ModelT = TypeVar("ModelT", bound=BaseModel)


class Repository(Generic[ModelT]):
    def __init__(self, store: Store, collection: str, model: Type[ModelT]):
        self.store = store
        self.collection = collection
        self.model = model

    async def get(self, record_id: str) -> Optional[ModelT]:
        payload = await self.store.get(self.collection, record_id)
        if payload is None:
            return None
        return self.model.model_validate(payload)

    async def require(self, record_id: str) -> ModelT:
        record = await self.get(record_id)
        if record is None:
            raise RecordNotFound(self.collection, record_id)
        return record

    async def add(self, record: ModelT) -> ModelT:
        """Insert a new record. Fails with ConcurrencyConflict if the id exists."""
        version = await self.store.put(
            self.collection, record.id, record.model_dump(mode="json"), expected_version=0
        )
        return record.model_copy(update={"version": version})

    async def save(self, record: ModelT) -> ModelT:
        """Write back a record read at ``record.version``."""
        if "updated_at" in self.model.model_fields:
            record = record.model_copy(update={"updated_at": utcnow()})
        version = await self.store.put(
            self.collection, record.id, record.model_dump(mode="json"), expected_version=record.version
        )
        return record.model_copy(update={"version": version})

    async def list(self, predicate: Optional[Callable[[ModelT], bool]] = None) -> list[ModelT]:
        records = [self.model.model_validate(p) for p in await self.store.list(self.collection)]
        if predicate is not None:
            records = [r for r in records if predicate(r)]
        return sorted(records, key=lambda r: r.created_at)

    async def find_one(self, predicate: Callable[[ModelT], bool]) -> Optional[ModelT]:
        for record in await self.list(predicate):
            return record
        return None

    async def count(self, predicate: Optional[Callable[[ModelT], bool]] = None) -> int:
        return len(await self.list(predicate))
