"""
Events API.

POST /api/v1/events                       - record an event
GET  /api/v1/events                       - list events
GET  /api/v1/events/pending               - events not yet projected
GET  /api/v1/events/{event_id}            - get one event
POST /api/v1/events/{event_id}/process    - project + alert with a known verdict
POST /api/v1/events/{event_id}/identify   - attach the person behind the event
"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from fraudflow.api.deps import get_container
from fraudflow.container import Container
from fraudflow.schemas.event import Event, EventCategory, EventCreate, EventType
from fraudflow.schemas.historique import HistoriqueEntry
from fraudflow.schemas.results import ProcessingResult, QualificationResult
from fraudflow.schemas.verdict import AnalysisVerdict

router = APIRouter(prefix="/api/v1/events", tags=["events"])


class IdentifyRequest(BaseModel):
    assure_id: str
    identified_by: str = "system"


class IdentifyResponse(BaseModel):
    event: Event
    historique: Optional[HistoriqueEntry] = None
    reconciled: list[QualificationResult] = []


@router.post("", response_model=Event, status_code=201)
async def create_event(body: EventCreate, container: Container = Depends(get_container)):
    return await container.events.record(body.to_event())


@router.get("", response_model=list[Event])
async def list_events(
    assure_id: Optional[str] = None,
    type: Optional[EventType] = None,
    category: Optional[EventCategory] = None,
    processed: Optional[bool] = None,
    container: Container = Depends(get_container),
):
    return await container.events.list(assure_id=assure_id, type=type, category=category, processed=processed)


@router.get("/pending", response_model=list[Event])
async def list_pending_events(container: Container = Depends(get_container)):
    return await container.orchestrator.pending_events()


@router.get("/{event_id}", response_model=Event)
async def get_event(event_id: str, container: Container = Depends(get_container)):
    return await container.events.require(event_id)


@router.post("/{event_id}/process", response_model=ProcessingResult)
async def process_event(
    event_id: str,
    verdict: AnalysisVerdict,
    container: Container = Depends(get_container),
):
    return await container.orchestrator.process_event(event_id, verdict)


@router.post("/{event_id}/identify", response_model=IdentifyResponse)
async def identify_person(
    event_id: str,
    body: IdentifyRequest,
    container: Container = Depends(get_container),
):
    """
    Link an event to a person. Confirmed alerts on the event that could not
    reach a risk profile are reconciled right away.
    """
    historique = await container.historiques.identify_person(event_id, body.assure_id, body.identified_by)
    reconciled = await container.qualification.reconcile_event(event_id)
    event = await container.events.require(event_id)
    return IdentifyResponse(event=event, historique=historique, reconciled=reconciled)
