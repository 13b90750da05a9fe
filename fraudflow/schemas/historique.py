"""
Historique (audit log) schemas.
"""

from datetime import datetime
from enum import StrEnum
from typing import Any, Optional

from pydantic import BaseModel, Field

from fraudflow.schemas.common import new_id, utcnow

UNKNOWN_ASSURE = "unknown"


class HistoriqueCategory(StrEnum):
    COMMERCIAL = "commercial"
    OPERATIONNEL = "operationnel"
    FRAUDE = "fraude"
    SINISTRE = "sinistre"
    COMPLIANCE = "compliance"
    TECHNIQUE = "technique"
    RELATION_CLIENT = "relation_client"


class Impact(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class HistoriqueStatus(StrEnum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ERROR = "error"


class RelatedEntities(BaseModel):
    alerte_ids: list[str] = Field(default_factory=list)
    dossier_ids: list[str] = Field(default_factory=list)
    risque_ids: list[str] = Field(default_factory=list)


class Correction(BaseModel):
    """A recorded change to an entry. The original value is kept."""

    field: str
    old_value: Any = None
    new_value: Any = None
    reason: str
    corrected_by: str = "system"
    corrected_at: datetime = Field(default_factory=utcnow)


class HistoriqueEntry(BaseModel):
    id: str = Field(default_factory=lambda: new_id("HIST"))
    event_id: str
    assure_id: str = UNKNOWN_ASSURE
    event_type: str
    category: HistoriqueCategory
    impact: Impact
    title: str
    description: str = ""
    related_entities: RelatedEntities = Field(default_factory=RelatedEntities)
    corrections: list[Correction] = Field(default_factory=list)
    status: HistoriqueStatus = HistoriqueStatus.ACTIVE

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    version: int = 0

    @property
    def is_identified(self) -> bool:
        return self.assure_id != UNKNOWN_ASSURE
