"""
Event schemas.

An Event is the immutable fact that something happened (a document was
uploaded and analysed, a claim was declared...). Only two fields change
after creation: ``processed_at`` (set once, by the historique projection)
and ``assure_id`` (filled once, when the person is identified).
"""

from datetime import datetime
from enum import StrEnum
from typing import Any, Optional

from pydantic import BaseModel, Field

from fraudflow.schemas.common import Priority, new_id, new_reference, utcnow


class EventType(StrEnum):
    DOCUMENT_UPLOAD = "document_upload"
    DECLARATION_SINISTRE = "declaration_sinistre"
    MODIFICATION_CONTRAT = "modification_contrat"
    PAIEMENT = "paiement"
    DETECTION_FRAUDE = "detection_fraude"
    ANALYSE_DOCUMENT = "analyse_document"


class EventCategory(StrEnum):
    COMMERCIAL = "commercial"
    OPERATIONNEL = "operationnel"
    SINISTRE = "sinistre"
    FRAUDE = "fraude"


class EventSource(StrEnum):
    CLIENT = "client"
    SYSTEM = "system"
    EXTERNAL_API = "external_api"
    FRAUD_DETECTION = "fraud_detection"


class Channel(StrEnum):
    WEB = "web"
    MOBILE = "mobile"
    API = "api"
    UPLOAD = "upload"


class Event(BaseModel):
    id: str = Field(default_factory=lambda: new_id("EVT"))
    tracking_number: str = Field(default_factory=lambda: new_reference("TRK"))
    type: EventType
    category: EventCategory
    priority: Priority = Priority.MEDIUM
    source: EventSource = EventSource.SYSTEM
    channel: Channel = Channel.UPLOAD

    data: dict[str, Any] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)

    assure_id: Optional[str] = None

    occurred_at: datetime = Field(default_factory=utcnow)
    created_at: datetime = Field(default_factory=utcnow)
    processed_at: Optional[datetime] = None

    version: int = 0

    @property
    def is_processed(self) -> bool:
        return self.processed_at is not None

    @property
    def risk_score(self) -> Optional[float]:
        """Risk score (0–1) carried in the event payload, if any."""
        raw = self.data.get("risk_score")
        if raw is None:
            analysis = self.data.get("analysis")
            if isinstance(analysis, dict):
                raw = analysis.get("risk_score")
        try:
            return float(raw) if raw is not None else None
        except (TypeError, ValueError):
            return None

    @property
    def amount(self) -> float:
        try:
            return float(self.data.get("amount") or 0.0)
        except (TypeError, ValueError):
            return 0.0


class EventCreate(BaseModel):
    """Payload for recording an event directly (without a document upload)."""

    type: EventType
    category: EventCategory
    priority: Priority = Priority.MEDIUM
    source: EventSource = EventSource.CLIENT
    channel: Channel = Channel.API
    data: dict[str, Any] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)
    assure_id: Optional[str] = None
    occurred_at: Optional[datetime] = None

    def to_event(self) -> Event:
        values = self.model_dump(exclude_none=True)
        return Event(**values)
