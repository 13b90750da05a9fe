"""
Alert API Endpoints.

GET  /api/v1/alerts                          - list alerts (filters)
GET  /api/v1/alerts/{alert_id}               - get one alert
POST /api/v1/alerts/{alert_id}/assign        - assign to an investigator
POST /api/v1/alerts/{alert_id}/investigate   - start the investigation
POST /api/v1/alerts/{alert_id}/transfer      - hand over to another team
GET  /api/v1/alerts/{alert_id}/routing       - suggested team, SLA and escalation path
GET  /api/v1/alerts/{alert_id}/escalation    - would the alert be escalated now
POST /api/v1/alerts/{alert_id}/escalate      - escalate when a trigger fires
POST /api/v1/alerts/{alert_id}/qualify       - human verdict (one-way)
POST /api/v1/alerts/{alert_id}/reconcile     - retry a pending risk update
POST /api/v1/alerts/{alert_id}/close         - close without qualification
POST /api/v1/alerts/{alert_id}/reopen        - back to investigation
POST /api/v1/alerts/{alert_id}/notes         - add a timeline note
"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from fraudflow.alerting.routing import EscalationDecision, RoutingDecision
from fraudflow.api.deps import get_container
from fraudflow.container import Container
from fraudflow.schemas.alert import (
    Alert,
    AlertSeverity,
    AlertStatus,
    AssignRequest,
    Qualification,
    QualifyRequest,
    ReasonRequest,
    TransferRequest,
)
from fraudflow.schemas.common import InvestigationTeam
from fraudflow.schemas.results import QualificationResult

router = APIRouter(prefix="/api/v1/alerts", tags=["alerts"])


class NoteRequest(BaseModel):
    message: str
    author: Optional[str] = None


class InvestigateRequest(BaseModel):
    by: Optional[str] = None


class EscalationResponse(BaseModel):
    decision: EscalationDecision
    alert: Alert


@router.get("", response_model=list[Alert])
async def list_alerts(
    status: Optional[AlertStatus] = None,
    severity: Optional[AlertSeverity] = None,
    team: Optional[InvestigationTeam] = None,
    assigned_to: Optional[str] = None,
    event_id: Optional[str] = None,
    qualification: Optional[Qualification] = None,
    unassigned: Optional[bool] = None,
    overdue: Optional[bool] = None,
    container: Container = Depends(get_container),
):
    return await container.alerts.list(
        status=status,
        severity=severity,
        team=team,
        assigned_to=assigned_to,
        event_id=event_id,
        qualification=qualification,
        unassigned=unassigned,
        overdue=overdue,
    )


@router.get("/{alert_id}", response_model=Alert)
async def get_alert(alert_id: str, container: Container = Depends(get_container)):
    return await container.alerts.require(alert_id)


@router.post("/{alert_id}/assign", response_model=Alert)
async def assign_alert(alert_id: str, body: AssignRequest, container: Container = Depends(get_container)):
    return await container.alerts.assign(alert_id, body.assign_to, body.team, body.assigned_by)


@router.post("/{alert_id}/investigate", response_model=Alert)
async def start_investigation(
    alert_id: str,
    body: Optional[InvestigateRequest] = None,
    container: Container = Depends(get_container),
):
    return await container.alerts.start_investigation(alert_id, by=body.by if body else None)


@router.post("/{alert_id}/transfer", response_model=Alert)
async def transfer_alert(alert_id: str, body: TransferRequest, container: Container = Depends(get_container)):
    return await container.alerts.transfer(
        alert_id, body.to_team, body.reason, body.urgency, to=body.to, by=body.by
    )


@router.get("/{alert_id}/routing", response_model=RoutingDecision)
async def get_alert_routing(alert_id: str, container: Container = Depends(get_container)):
    return await container.routing.route(alert_id)


@router.get("/{alert_id}/escalation", response_model=EscalationDecision)
async def check_escalation(alert_id: str, container: Container = Depends(get_container)):
    return await container.routing.check_escalation(alert_id)


@router.post("/{alert_id}/escalate", response_model=EscalationResponse)
async def escalate_alert(
    alert_id: str,
    body: Optional[InvestigateRequest] = None,
    container: Container = Depends(get_container),
):
    decision, alert = await container.routing.escalate(alert_id, by=body.by if body else None)
    return EscalationResponse(decision=decision, alert=alert)


@router.post("/{alert_id}/qualify", response_model=QualificationResult)
async def qualify_alert(alert_id: str, body: QualifyRequest, container: Container = Depends(get_container)):
    """
    Record the human verdict on an alert.

    A second qualification is a no-op (status=skipped, reason=already_qualified).
    """
    return await container.qualification.qualify(
        alert_id, body.qualification, notes=body.notes, qualified_by=body.qualified_by
    )


@router.post("/{alert_id}/reconcile", response_model=QualificationResult)
async def reconcile_alert(alert_id: str, container: Container = Depends(get_container)):
    return await container.qualification.reconcile_unlinked(alert_id)


@router.post("/{alert_id}/close", response_model=Alert)
async def close_alert(alert_id: str, body: ReasonRequest, container: Container = Depends(get_container)):
    return await container.alerts.close(alert_id, body.reason, by=body.by)


@router.post("/{alert_id}/reopen", response_model=Alert)
async def reopen_alert(alert_id: str, body: ReasonRequest, container: Container = Depends(get_container)):
    return await container.alerts.reopen(alert_id, body.reason, by=body.by)


@router.post("/{alert_id}/notes", response_model=Alert)
async def add_alert_note(alert_id: str, body: NoteRequest, container: Container = Depends(get_container)):
    return await container.alerts.add_note(alert_id, body.message, body.author)
