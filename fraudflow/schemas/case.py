"""
Investigation case (dossier) schemas.

Status flow (forward only):
    open → investigating → pending_review → closed
    open → pending_review

``metrics.total_roi`` and ``metrics.roi_percentage`` are computed from the
stored amounts and are ignored on input.
"""

from datetime import datetime
from enum import StrEnum
from typing import Any, Optional

from pydantic import BaseModel, Field, computed_field

from fraudflow.schemas.common import InvestigationTeam, TransferUrgency, new_id, utcnow


class CaseStatus(StrEnum):
    OPEN = "open"
    INVESTIGATING = "investigating"
    PENDING_REVIEW = "pending_review"
    CLOSED = "closed"


CASE_TRANSITIONS: dict[CaseStatus, frozenset[CaseStatus]] = {
    CaseStatus.OPEN: frozenset({CaseStatus.INVESTIGATING, CaseStatus.PENDING_REVIEW}),
    CaseStatus.INVESTIGATING: frozenset({CaseStatus.PENDING_REVIEW, CaseStatus.CLOSED}),
    CaseStatus.PENDING_REVIEW: frozenset({CaseStatus.CLOSED}),
    CaseStatus.CLOSED: frozenset(),
}


class CasePriority(StrEnum):
    URGENT = "urgent"
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"


class CaseDecision(StrEnum):
    PENDING = "pending"
    FRAUD_CONFIRMED = "fraud_confirmed"
    FRAUD_REJECTED = "fraud_rejected"
    INSUFFICIENT_PROOF = "insufficient_proof"


class TimelineType(StrEnum):
    CREATED = "created"
    ALERT_ADDED = "alert_added"
    ASSIGNED = "assigned"
    TRANSFERRED = "transferred"
    STATUS_CHANGED = "status_changed"
    DECISION_MADE = "decision_made"
    METRICS_UPDATED = "metrics_updated"
    NOTE_ADDED = "note_added"


class Handover(BaseModel):
    from_user: Optional[str] = None
    from_team: InvestigationTeam
    to_user: Optional[str] = None
    to_team: InvestigationTeam
    reason: str
    urgency: TransferUrgency = TransferUrgency.ROUTINE
    timestamp: datetime = Field(default_factory=utcnow)
    metadata: dict[str, Any] = Field(default_factory=dict)


class CaseTimelineEntry(BaseModel):
    id: str = Field(default_factory=lambda: new_id("TL"))
    type: TimelineType
    description: str
    user_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)


class CaseNote(BaseModel):
    id: str = Field(default_factory=lambda: new_id("CN"))
    author: Optional[str] = None
    content: str
    created_at: datetime = Field(default_factory=utcnow)


class CaseMetrics(BaseModel):
    estimated_loss: float = Field(default=0.0, ge=0.0)
    recovered_amount: float = Field(default=0.0, ge=0.0)
    prevented_amount: float = Field(default=0.0, ge=0.0)
    investigation_cost: float = Field(default=0.0, ge=0.0)

    @computed_field
    @property
    def total_roi(self) -> float:
        return self.recovered_amount + self.prevented_amount - self.investigation_cost

    @computed_field
    @property
    def roi_percentage(self) -> float:
        if self.investigation_cost <= 0:
            return 0.0
        return round(self.total_roi / self.investigation_cost * 100, 2)


class Case(BaseModel):
    id: str = Field(default_factory=lambda: new_id("CASE"))
    reference: str
    alerts: list[str] = Field(min_length=1)
    primary_alert_id: str
    status: CaseStatus = CaseStatus.OPEN
    priority: CasePriority = CasePriority.NORMAL

    investigator: Optional[str] = None
    investigation_team: InvestigationTeam = InvestigationTeam.GESTIONNAIRE
    created_by: Optional[str] = None
    handovers: list[Handover] = Field(default_factory=list)

    decision: CaseDecision = CaseDecision.PENDING
    decision_reason: Optional[str] = None
    decision_date: Optional[datetime] = None

    metrics: CaseMetrics = Field(default_factory=CaseMetrics)
    timeline: list[CaseTimelineEntry] = Field(default_factory=list)
    notes: list[CaseNote] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    closed_at: Optional[datetime] = None

    version: int = 0


# ── API request bodies ─────────────────────────────────────────────────


class CaseCreate(BaseModel):
    alert_ids: list[str] = Field(min_length=1)
    assign_to: Optional[str] = None
    team: InvestigationTeam = InvestigationTeam.GESTIONNAIRE
    created_by: Optional[str] = None
    creator_team: InvestigationTeam = InvestigationTeam.GESTIONNAIRE
    priority: Optional[CasePriority] = None
    notes: Optional[str] = None
    handover_reason: Optional[str] = None


class CaseTransfer(BaseModel):
    to_team: InvestigationTeam
    reason: str
    urgency: TransferUrgency = TransferUrgency.ROUTINE
    to: Optional[str] = None
    by: Optional[str] = None


class CaseStatusUpdate(BaseModel):
    status: CaseStatus
    by: Optional[str] = None


class CaseDecisionRequest(BaseModel):
    decision: CaseDecision
    reason: str
    by: Optional[str] = None


class CaseMetricsUpdate(BaseModel):
    estimated_loss: Optional[float] = Field(default=None, ge=0.0)
    recovered_amount: Optional[float] = Field(default=None, ge=0.0)
    prevented_amount: Optional[float] = Field(default=None, ge=0.0)
    investigation_cost: Optional[float] = Field(default=None, ge=0.0)
    by: Optional[str] = None


class CaseNoteCreate(BaseModel):
    content: str
    author: Optional[str] = None
