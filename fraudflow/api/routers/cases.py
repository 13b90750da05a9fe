"""
Case (dossier) API.

POST /api/v1/cases                        - open a case from alerts
GET  /api/v1/cases                        - list cases
GET  /api/v1/cases/stats                  - counts and ROI totals
GET  /api/v1/cases/{case_id}              - get one case
POST /api/v1/cases/{case_id}/transfer     - hand over to another team
POST /api/v1/cases/{case_id}/status       - move forward in the status flow
POST /api/v1/cases/{case_id}/decision     - record the investigation decision
POST /api/v1/cases/{case_id}/metrics      - update amounts (ROI is recomputed)
POST /api/v1/cases/{case_id}/alerts       - attach more alerts
POST /api/v1/cases/{case_id}/notes        - add a note
"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from fraudflow.api.deps import get_container
from fraudflow.container import Container
from fraudflow.schemas.case import (
    Case,
    CaseCreate,
    CaseDecision,
    CaseDecisionRequest,
    CaseMetricsUpdate,
    CaseNoteCreate,
    CasePriority,
    CaseStatus,
    CaseStatusUpdate,
    CaseTransfer,
)
from fraudflow.schemas.common import InvestigationTeam

router = APIRouter(prefix="/api/v1/cases", tags=["cases"])


class AddAlertsRequest(BaseModel):
    alert_ids: list[str] = Field(min_length=1)
    by: Optional[str] = None


@router.post("", response_model=Case, status_code=201)
async def create_case(body: CaseCreate, container: Container = Depends(get_container)):
    return await container.cases.create_from_alerts(
        body.alert_ids,
        assign_to=body.assign_to,
        team=body.team,
        created_by=body.created_by,
        creator_team=body.creator_team,
        priority=body.priority,
        notes=body.notes,
        handover_reason=body.handover_reason,
    )


@router.get("", response_model=list[Case])
async def list_cases(
    status: Optional[CaseStatus] = None,
    team: Optional[InvestigationTeam] = None,
    priority: Optional[CasePriority] = None,
    investigator: Optional[str] = None,
    decision: Optional[CaseDecision] = None,
    alert_id: Optional[str] = None,
    container: Container = Depends(get_container),
):
    return await container.cases.list(
        status=status,
        team=team,
        priority=priority,
        investigator=investigator,
        decision=decision,
        alert_id=alert_id,
    )


@router.get("/stats")
async def case_stats(container: Container = Depends(get_container)):
    return await container.cases.stats()


@router.get("/{case_id}", response_model=Case)
async def get_case(case_id: str, container: Container = Depends(get_container)):
    return await container.cases.require(case_id)


@router.post("/{case_id}/transfer", response_model=Case)
async def transfer_case(case_id: str, body: CaseTransfer, container: Container = Depends(get_container)):
    return await container.cases.transfer(
        case_id, body.to_team, body.reason, body.urgency, to=body.to, by=body.by
    )


@router.post("/{case_id}/status", response_model=Case)
async def update_case_status(case_id: str, body: CaseStatusUpdate, container: Container = Depends(get_container)):
    return await container.cases.update_status(case_id, body.status, by=body.by)


@router.post("/{case_id}/decision", response_model=Case)
async def record_case_decision(
    case_id: str, body: CaseDecisionRequest, container: Container = Depends(get_container)
):
    return await container.cases.record_decision(case_id, body.decision, body.reason, by=body.by)


@router.post("/{case_id}/metrics", response_model=Case)
async def update_case_metrics(case_id: str, body: CaseMetricsUpdate, container: Container = Depends(get_container)):
    return await container.cases.update_metrics(
        case_id,
        estimated_loss=body.estimated_loss,
        recovered_amount=body.recovered_amount,
        prevented_amount=body.prevented_amount,
        investigation_cost=body.investigation_cost,
        by=body.by,
    )


@router.post("/{case_id}/alerts", response_model=Case)
async def add_case_alerts(case_id: str, body: AddAlertsRequest, container: Container = Depends(get_container)):
    return await container.cases.add_alerts(case_id, body.alert_ids, by=body.by)


@router.post("/{case_id}/notes", response_model=Case)
async def add_case_note(case_id: str, body: CaseNoteCreate, container: Container = Depends(get_container)):
    return await container.cases.add_note(case_id, body.content, author=body.author)
