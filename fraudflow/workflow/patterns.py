"""
Pattern detection over a person's history.

- detect_patterns: the same kind of historique entry repeated more than
  FREQUENCY_THRESHOLD times inside a rolling window.
- detect_correlations: two alerts on the same person from the same rule,
  raised within CORRELATION_WINDOW of each other.

Read-only. Cancelled entries and alerts qualified as false positives are
not evidence and are ignored.
"""

from collections import defaultdict
from datetime import datetime, timedelta
from enum import StrEnum
from itertools import combinations
from typing import Optional

from pydantic import BaseModel

from fraudflow.schemas.alert import Alert, Qualification
from fraudflow.schemas.common import utcnow
from fraudflow.schemas.historique import HistoriqueCategory, HistoriqueEntry, HistoriqueStatus

PATTERN_WINDOW = timedelta(days=30)
FREQUENCY_THRESHOLD = 5
CORRELATION_WINDOW = timedelta(days=7)
MIN_CORRELATION_STRENGTH = 0.3


class Significance(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class FrequencyPattern(BaseModel):
    assure_id: str
    category: HistoriqueCategory
    event_type: str
    occurrences: int
    window_days: int
    confidence: float
    significance: Significance
    first_seen: datetime
    last_seen: datetime
    historique_ids: list[str]


class AlertCorrelation(BaseModel):
    assure_id: str
    rule: str
    primary_alert_id: str
    correlated_alert_id: str
    days_apart: float
    strength: float


def _significance(occurrences: int) -> Significance:
    if occurrences > 10:
        return Significance.HIGH
    if occurrences > 7:
        return Significance.MEDIUM
    return Significance.LOW


def detect_patterns(
    assure_id: str,
    entries: list[HistoriqueEntry],
    now: Optional[datetime] = None,
    window: timedelta = PATTERN_WINDOW,
    threshold: int = FREQUENCY_THRESHOLD,
) -> list[FrequencyPattern]:
    """Frequency patterns per (category, event_type), most frequent first."""
    since = (now or utcnow()) - window
    groups: dict[tuple[HistoriqueCategory, str], list[HistoriqueEntry]] = defaultdict(list)
    for entry in entries:
        if entry.assure_id != assure_id or entry.status == HistoriqueStatus.CANCELLED:
            continue
        if entry.created_at < since:
            continue
        groups[(entry.category, entry.event_type)].append(entry)

    patterns = []
    for (category, event_type), members in groups.items():
        count = len(members)
        if count <= threshold:
            continue
        members.sort(key=lambda e: e.created_at)
        patterns.append(
            FrequencyPattern(
                assure_id=assure_id,
                category=category,
                event_type=event_type,
                occurrences=count,
                window_days=window.days,
                confidence=min(count / 10, 1.0),
                significance=_significance(count),
                first_seen=members[0].created_at,
                last_seen=members[-1].created_at,
                historique_ids=[e.id for e in members],
            )
        )
    return sorted(patterns, key=lambda p: (-p.occurrences, p.category, p.event_type))


def detect_correlations(
    assure_id: str,
    alerts: list[Alert],
    window: timedelta = CORRELATION_WINDOW,
) -> list[AlertCorrelation]:
    """Pairs of same-rule alerts close in time; strength decays with the gap."""
    evidence = sorted(
        (a for a in alerts if a.qualification != Qualification.FALSE_POSITIVE),
        key=lambda a: a.created_at,
    )
    window_days = window.total_seconds() / 86400

    correlations = []
    for first, second in combinations(evidence, 2):
        if first.rule != second.rule:
            continue
        days = (second.created_at - first.created_at).total_seconds() / 86400
        if days > window_days:
            continue
        correlations.append(
            AlertCorrelation(
                assure_id=assure_id,
                rule=first.rule,
                primary_alert_id=first.id,
                correlated_alert_id=second.id,
                days_apart=round(days, 2),
                strength=round(max(MIN_CORRELATION_STRENGTH, 1 - days / window_days), 2),
            )
        )
    return sorted(correlations, key=lambda c: -c.strength)
