"""
Alert schemas.

Status flow:
    new → assigned → investigating → qualified | closed

``metadata.qualification`` is set once by the Qualification Gate.
``impacts_risk`` starts false and only becomes true as the side effect of a
successful fraud_confirmed risk update.
"""

from datetime import datetime
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from fraudflow.schemas.common import InvestigationTeam, TransferUrgency, new_id, new_reference, utcnow
from fraudflow.schemas.verdict import Decision, Finding


class AlertSeverity(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AlertStatus(StrEnum):
    NEW = "new"
    ASSIGNED = "assigned"
    INVESTIGATING = "investigating"
    QUALIFIED = "qualified"
    CLOSED = "closed"


OPEN_STATUSES = frozenset({AlertStatus.NEW, AlertStatus.ASSIGNED, AlertStatus.INVESTIGATING})


class Qualification(StrEnum):
    FRAUD_CONFIRMED = "fraud_confirmed"
    FALSE_POSITIVE = "false_positive"
    REQUIRES_INVESTIGATION = "requires_investigation"


class AlertSource(StrEnum):
    DOCUMENT_ANALYSIS = "document_analysis"
    TAMPERING_DETECTION = "tampering_detection"
    MANUAL = "manual"


class AlertNoteType(StrEnum):
    CREATED = "created"
    ASSIGNED = "assigned"
    TRANSFERRED = "transferred"
    INVESTIGATION_STARTED = "investigation_started"
    QUALIFIED = "qualified"
    RISK_UPDATED = "risk_updated"
    CLOSED = "closed"
    REOPENED = "reopened"
    NOTE = "note"


class AlertNote(BaseModel):
    id: str = Field(default_factory=lambda: new_id("NOTE"))
    type: AlertNoteType = AlertNoteType.NOTE
    message: str
    author: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class AlertMetadata(BaseModel):
    model_config = ConfigDict(extra="allow")

    qualification: Optional[Qualification] = None
    qualification_notes: Optional[str] = None
    classifier_decision: Optional[Decision] = None
    document_id: Optional[str] = None
    tampering_overlay_url: Optional[str] = None
    # Denormalised display cache. Person resolution always goes through the Event.
    assure_id: Optional[str] = None


class Alert(BaseModel):
    id: str = Field(default_factory=lambda: new_id("ALT"))
    reference: str = Field(default_factory=lambda: new_reference("ALT"))
    event_id: str
    historique_id: str

    source: AlertSource = AlertSource.DOCUMENT_ANALYSIS
    type: str = "document_fraud"
    rule: str
    title: str
    description: str = ""
    severity: AlertSeverity
    score: float = Field(ge=0.0, le=100.0)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    findings: list[Finding] = Field(default_factory=list)

    status: AlertStatus = AlertStatus.NEW
    metadata: AlertMetadata = Field(default_factory=AlertMetadata)

    impacts_risk: bool = False
    impacted_assure_id: Optional[str] = None
    risk_impact_applied_at: Optional[datetime] = None

    assigned_to: Optional[str] = None
    assigned_team: Optional[InvestigationTeam] = None
    transfer_urgency: Optional[TransferUrgency] = None
    sla_deadline: Optional[datetime] = None
    case_id: Optional[str] = None

    timeline: list[AlertNote] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    qualified_at: Optional[datetime] = None
    qualified_by: Optional[str] = None
    closed_at: Optional[datetime] = None

    version: int = 0

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    @property
    def qualification(self) -> Optional[Qualification]:
        return self.metadata.qualification


# ── API request bodies ─────────────────────────────────────────────────


class AssignRequest(BaseModel):
    assign_to: str
    team: InvestigationTeam = InvestigationTeam.GESTIONNAIRE
    assigned_by: Optional[str] = None


class TransferRequest(BaseModel):
    to_team: InvestigationTeam
    reason: str
    urgency: TransferUrgency = TransferUrgency.ROUTINE
    to: Optional[str] = None
    by: Optional[str] = None


class QualifyRequest(BaseModel):
    qualification: Qualification
    notes: Optional[str] = None
    qualified_by: Optional[str] = None


class ReasonRequest(BaseModel):
    reason: str
    by: Optional[str] = None
