"""
Typed step outcomes.

Every workflow component returns a StepResult instead of raising for
conditions that are part of normal operation. The orchestrator folds the
step results into a ProcessingResult.
"""

from enum import StrEnum
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, Field

from fraudflow.schemas.alert import Alert
from fraudflow.schemas.risque import RiskLevel, Risque

T = TypeVar("T")


class StepStatus(StrEnum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


class SkipReason(StrEnum):
    ALREADY_PROCESSED = "already_processed"
    ALREADY_SYNTHESIZED = "already_synthesized"
    ALREADY_QUALIFIED = "already_qualified"
    UNLINKED_PERSON = "unlinked_person"
    DUPLICATE_ALERT = "duplicate_alert"
    BELOW_THRESHOLD = "below_threshold"
    INVALID_STATE = "invalid_state"
    NOT_APPLICABLE = "not_applicable"


class StepResult(BaseModel, Generic[T]):
    status: StepStatus
    reason: Optional[SkipReason] = None
    record: Optional[T] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, record: T) -> "StepResult[T]":
        return cls(status=StepStatus.SUCCESS, record=record)

    @classmethod
    def skip(cls, reason: SkipReason, record: Optional[T] = None) -> "StepResult[T]":
        return cls(status=StepStatus.SKIPPED, reason=reason, record=record)

    @classmethod
    def fail(cls, error: str) -> "StepResult[T]":
        return cls(status=StepStatus.FAILED, error=error)

    @property
    def succeeded(self) -> bool:
        return self.status == StepStatus.SUCCESS


class ProcessingStatus(StrEnum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


class RiskImpact(BaseModel):
    assure_id: str
    old_score: float
    new_score: float
    old_level: RiskLevel
    new_level: RiskLevel
    reason: str

    @classmethod
    def latest(cls, risque: Risque) -> Optional["RiskImpact"]:
        """Describe the latest escalation of a profile."""
        if not risque.score_history:
            return None
        last = risque.score_history[-1]
        return cls(
            assure_id=risque.assure_id,
            old_score=last.previous_score,
            new_score=last.score,
            old_level=last.previous_level,
            new_level=last.level,
            reason=last.reason,
        )


class ProcessingResult(BaseModel):
    event_id: Optional[str] = None
    historique_id: Optional[str] = None
    alerts_generated: list[str] = Field(default_factory=list)
    risk_impacts: list[RiskImpact] = Field(default_factory=list)
    processing_time_ms: float = 0.0
    status: ProcessingStatus = ProcessingStatus.SUCCESS
    failed_step: Optional[str] = None
    error: Optional[str] = None
    steps: dict[str, StepStatus] = Field(default_factory=dict)


class QualificationResult(BaseModel):
    alert: Alert
    status: StepStatus
    reason: Optional[SkipReason] = None
    risk: Optional[StepResult] = None
    risk_impact: Optional[RiskImpact] = None
