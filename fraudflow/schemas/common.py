"""
Shared schema helpers: identifiers, timestamps, cross-record enums.
"""

import random
import string
import uuid
from datetime import datetime, timezone
from enum import StrEnum


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:16]}"


def new_reference(prefix: str) -> str:
    """Human-readable reference, e.g. TRK-20260117-4KQ2ZP."""
    suffix = "".join(random.choices(string.ascii_uppercase + string.digits, k=6))
    return f"{prefix}-{utcnow():%Y%m%d}-{suffix}"


class Priority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class InvestigationTeam(StrEnum):
    GESTIONNAIRE = "gestionnaire"
    FRAUDE = "fraude"
    EXPERT = "expert"
    COMPLIANCE = "compliance"


class TransferUrgency(StrEnum):
    IMMEDIATE = "immediate"
    WITHIN_24H = "within_24h"
    WITHIN_WEEK = "within_week"
    ROUTINE = "routine"
