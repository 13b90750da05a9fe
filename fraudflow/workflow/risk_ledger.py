"""
Risk Ledger - per-person risk profiles.

The only writer of risk level, score and score history, and only for alerts
a human qualified as fraud_confirmed. Rules:

- target level: critical alert → very_high; high alert or score > 80 → high;
  otherwise medium
- new level = max(target, one step above current), capped at critical
- new score = max(current score, floor score of the new level)
- exactly one score_history entry per confirmed alert

Appends for the same person are serialized; the same alert never escalates
a profile twice.
"""

from typing import Optional

import structlog

from fraudflow.db.repositories.base import Repository
from fraudflow.db.store import Store
from fraudflow.schemas.alert import Alert, AlertSeverity
from fraudflow.schemas.common import utcnow
from fraudflow.schemas.event import Event
from fraudflow.schemas.results import SkipReason, StepResult
from fraudflow.schemas.risque import (
    RiskLevel,
    Risque,
    ScoreHistoryEntry,
    Scoring,
    risque_id_for,
)
from fraudflow.services.locks import KeyedLock

logger = structlog.get_logger(__name__)


def target_level(alert: Alert) -> RiskLevel:
    if alert.severity == AlertSeverity.CRITICAL:
        return RiskLevel.VERY_HIGH
    if alert.severity == AlertSeverity.HIGH or alert.score > 80:
        return RiskLevel.HIGH
    return RiskLevel.MEDIUM


def escalate(current: RiskLevel, target: RiskLevel) -> RiskLevel:
    stepped = current.step_up()
    return target if target.rank >= stepped.rank else stepped


class RiskLedger:
    """Implements RiskUpdatePort."""

    def __init__(self, store: Store):
        self.repo: Repository[Risque] = Repository(store, "risques", Risque)
        self._locks = KeyedLock("risk-person")

    async def confirm_fraud(self, person_id: str, alert: Alert, event: Event) -> StepResult[Risque]:
        async with self._locks.hold(person_id):
            profile = await self.repo.get(risque_id_for(person_id))
            is_new = profile is None
            if profile is None:
                profile = Risque.blank(person_id)

            if alert.id in profile.related_entities.alerte_ids:
                logger.info("risk_update_duplicate", assure_id=person_id, alert_id=alert.id)
                return StepResult.skip(SkipReason.DUPLICATE_ALERT, profile)

            old_level = profile.level
            old_score = profile.scoring.final_score
            new_level = escalate(old_level, target_level(alert))
            new_score = max(old_score, new_level.floor_score)
            now = utcnow()

            entry = ScoreHistoryEntry(
                timestamp=now,
                score=new_score,
                level=new_level,
                previous_score=old_score,
                previous_level=old_level,
                reason=f"Fraud confirmed via alert {alert.reference} on event {event.tracking_number}",
                alert_id=alert.id,
                event_id=event.id,
            )
            related = profile.related_entities.model_copy(
                update={"alerte_ids": [*profile.related_entities.alerte_ids, alert.id]}
            )
            updated = profile.model_copy(
                update={
                    "level": new_level,
                    "scoring": Scoring(final_score=new_score, updated_at=now),
                    "score_history": [*profile.score_history, entry],
                    "related_entities": related,
                }
            )
            saved = await self.repo.add(updated) if is_new else await self.repo.save(updated)

        logger.info(
            "risk_profile_escalated",
            assure_id=person_id,
            alert_id=alert.id,
            old_level=old_level,
            new_level=new_level,
            old_score=old_score,
            new_score=new_score,
        )
        return StepResult.ok(saved)

    # ── Reads ──────────────────────────────────────────────────────────

    async def get_for_person(self, person_id: str) -> Optional[Risque]:
        return await self.repo.get(risque_id_for(person_id))

    async def get(self, risque_id: str) -> Optional[Risque]:
        return await self.repo.get(risque_id)

    async def list(self, level: Optional[RiskLevel] = None) -> list[Risque]:
        profiles = await self.repo.list(lambda r: level is None or r.level == level)
        return sorted(profiles, key=lambda r: r.scoring.final_score, reverse=True)
