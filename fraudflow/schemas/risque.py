"""
Risk profile (Risque) schemas.

Levels are ordered; each has a floor score. A confirmed fraud never lowers
either the level or the score.
"""

from datetime import datetime
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, Field

from fraudflow.schemas.common import utcnow


class RiskLevel(StrEnum):
    VERY_LOW = "very_low"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    VERY_HIGH = "very_high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return LEVEL_ORDER.index(self)

    @property
    def floor_score(self) -> float:
        return LEVEL_FLOOR_SCORES[self]

    def step_up(self) -> "RiskLevel":
        return LEVEL_ORDER[min(self.rank + 1, len(LEVEL_ORDER) - 1)]


LEVEL_ORDER: list[RiskLevel] = [
    RiskLevel.VERY_LOW,
    RiskLevel.LOW,
    RiskLevel.MEDIUM,
    RiskLevel.HIGH,
    RiskLevel.VERY_HIGH,
    RiskLevel.CRITICAL,
]

LEVEL_FLOOR_SCORES: dict[RiskLevel, float] = {
    RiskLevel.VERY_LOW: 0.0,
    RiskLevel.LOW: 20.0,
    RiskLevel.MEDIUM: 40.0,
    RiskLevel.HIGH: 60.0,
    RiskLevel.VERY_HIGH: 75.0,
    RiskLevel.CRITICAL: 90.0,
}


def level_for_score(score: float) -> RiskLevel:
    """Highest level whose floor the score reaches."""
    for level in reversed(LEVEL_ORDER):
        if score >= LEVEL_FLOOR_SCORES[level]:
            return level
    return RiskLevel.VERY_LOW


def risque_id_for(assure_id: str) -> str:
    return f"RISK-{assure_id}"


class ScoreHistoryEntry(BaseModel):
    timestamp: datetime = Field(default_factory=utcnow)
    score: float
    level: RiskLevel
    previous_score: float
    previous_level: RiskLevel
    reason: str
    triggered_by: str = "alert_qualification"
    alert_id: str
    event_id: Optional[str] = None


class Scoring(BaseModel):
    final_score: float = Field(default=0.0, ge=0.0, le=100.0)
    updated_at: Optional[datetime] = None


class RisqueRelated(BaseModel):
    alerte_ids: list[str] = Field(default_factory=list)


class Risque(BaseModel):
    id: str
    assure_id: str
    level: RiskLevel = RiskLevel.VERY_LOW
    scoring: Scoring = Field(default_factory=Scoring)
    score_history: list[ScoreHistoryEntry] = Field(default_factory=list)
    related_entities: RisqueRelated = Field(default_factory=RisqueRelated)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    version: int = 0

    @classmethod
    def blank(cls, assure_id: str) -> "Risque":
        return cls(id=risque_id_for(assure_id), assure_id=assure_id)
