"""
Analysis verdict schemas.

The verdict is what the Scoring Gateway hands back after running the
document classifier (and, for images, the tampering detector).
"""

from enum import StrEnum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class Decision(StrEnum):
    APPROVE = "approve"
    REVIEW = "review"
    REJECT = "reject"


class FindingLevel(StrEnum):
    INFO = "info"
    WARN = "warn"
    FAIL = "fail"


class Finding(BaseModel):
    code: str
    level: FindingLevel = FindingLevel.INFO
    message: str = ""
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class AnalysisVerdict(BaseModel):
    decision: Optional[Decision] = None
    # None only on an error verdict; a missing score is never read as 0.
    risk_score: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    document_id: Optional[str] = None
    document_info: dict[str, Any] = Field(default_factory=dict)
    key_findings: list[Finding] = Field(default_factory=list)
    tampering_overlay_url: Optional[str] = None
    error: Optional[str] = None

    @field_validator("decision", mode="before")
    @classmethod
    def _normalize_decision(cls, value):
        # Some classifier builds answer "accept" instead of "approve".
        if isinstance(value, str):
            value = value.strip().lower()
            if value == "accept":
                return Decision.APPROVE
        return value

    @model_validator(mode="after")
    def _require_score(self) -> "AnalysisVerdict":
        if self.risk_score is None and not self.error:
            raise ValueError("risk_score is required unless the verdict carries an error")
        return self

    @property
    def score_100(self) -> float:
        """Risk score on the 0–100 scale, rounded to absorb float noise."""
        if self.risk_score is None:
            raise ValueError("verdict has no risk score")
        return round(self.risk_score * 100, 6)

    @property
    def has_failing_finding(self) -> bool:
        return any(f.level == FindingLevel.FAIL for f in self.key_findings)


class DocumentUpload(BaseModel):
    """A document submitted for analysis."""

    filename: str
    content: bytes
    content_type: str = "application/octet-stream"
    document_type: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_image(self) -> bool:
        return self.content_type.startswith("image/")
