"""
Alert SLA deadlines.

Base deadline is scaled by severity; a transfer with an urgency can only
tighten an existing deadline, never extend it.
"""

from datetime import datetime, timedelta
from typing import Optional

from fraudflow.schemas.alert import AlertSeverity
from fraudflow.schemas.common import TransferUrgency, utcnow

SEVERITY_SLA_MULTIPLIER: dict[AlertSeverity, float] = {
    AlertSeverity.CRITICAL: 0.6,
    AlertSeverity.HIGH: 0.8,
    AlertSeverity.MEDIUM: 1.0,
    AlertSeverity.LOW: 1.2,
}

# None = keep the current deadline
URGENCY_SLA_HOURS: dict[TransferUrgency, Optional[float]] = {
    TransferUrgency.IMMEDIATE: 4.0,
    TransferUrgency.WITHIN_24H: 24.0,
    TransferUrgency.WITHIN_WEEK: 168.0,
    TransferUrgency.ROUTINE: None,
}

URGENCY_COST_MULTIPLIER: dict[TransferUrgency, float] = {
    TransferUrgency.IMMEDIATE: 2.0,
    TransferUrgency.WITHIN_24H: 1.5,
    TransferUrgency.WITHIN_WEEK: 1.2,
    TransferUrgency.ROUTINE: 1.0,
}


def sla_deadline(severity: AlertSeverity, base_hours: float, start: Optional[datetime] = None) -> datetime:
    start = start or utcnow()
    return start + timedelta(hours=base_hours * SEVERITY_SLA_MULTIPLIER[severity])


def transfer_deadline(
    current: Optional[datetime], urgency: TransferUrgency, now: Optional[datetime] = None
) -> Optional[datetime]:
    hours = URGENCY_SLA_HOURS[urgency]
    if hours is None:
        return current
    candidate = (now or utcnow()) + timedelta(hours=hours)
    if current is None:
        return candidate
    return min(current, candidate)


def is_overdue(deadline: Optional[datetime], now: Optional[datetime] = None) -> bool:
    return deadline is not None and (now or utcnow()) > deadline
