"""
Event log.

Events are written once and never edited, apart from two one-time fills:
``processed_at`` (by the historique projection) and ``assure_id`` (when the
person behind an anonymous upload is identified).
"""

from typing import Optional

import structlog

from fraudflow.db.repositories.base import Repository
from fraudflow.db.store import Store
from fraudflow.errors import ConsistencyViolation
from fraudflow.schemas.common import utcnow
from fraudflow.schemas.event import Event, EventCategory, EventType

logger = structlog.get_logger(__name__)


class EventLog:
    def __init__(self, store: Store):
        self.repo: Repository[Event] = Repository(store, "events", Event)

    async def record(self, event: Event) -> Event:
        saved = await self.repo.add(event)
        logger.info(
            "event_recorded",
            event_id=saved.id,
            tracking_number=saved.tracking_number,
            type=saved.type,
            assure_id=saved.assure_id,
        )
        return saved

    async def get(self, event_id: str) -> Optional[Event]:
        return await self.repo.get(event_id)

    async def require(self, event_id: str) -> Event:
        return await self.repo.require(event_id)

    async def mark_processed(self, event: Event) -> Event:
        """Set processed_at once. Already-processed events are returned unchanged."""
        if event.is_processed:
            return event
        return await self.repo.save(event.model_copy(update={"processed_at": utcnow()}))

    async def identify_person(self, event_id: str, assure_id: str) -> Event:
        event = await self.repo.require(event_id)
        if event.assure_id == assure_id:
            return event
        if event.assure_id:
            raise ConsistencyViolation(
                f"Event {event_id} is already linked to {event.assure_id}",
                event_id=event_id,
            )
        saved = await self.repo.save(event.model_copy(update={"assure_id": assure_id}))
        logger.info("event_person_identified", event_id=event_id, assure_id=assure_id)
        return saved

    async def pending(self) -> list[Event]:
        return await self.repo.list(lambda e: not e.is_processed)

    async def list(
        self,
        assure_id: Optional[str] = None,
        type: Optional[EventType] = None,
        category: Optional[EventCategory] = None,
        processed: Optional[bool] = None,
    ) -> list[Event]:
        def match(e: Event) -> bool:
            if assure_id is not None and e.assure_id != assure_id:
                return False
            if type is not None and e.type != type:
                return False
            if category is not None and e.category != category:
                return False
            if processed is not None and e.is_processed != processed:
                return False
            return True

        return await self.repo.list(match)
