"""
Alert Synthesizer - turns an analysed event into an alert when the risk
score crosses the configured thresholds.

Threshold partition on s = round(risk_score * 100, 6):
    s >= fraud_threshold                  → critical, or high when the classifier
                                            approved and no finding failed
    suspicion_min <= s < fraud_threshold  → medium
    s < suspicion_min                     → no alert

Alert ids are derived from (event id, rule), so re-running the synthesis for
the same event never produces a second alert.
"""

import hashlib
from typing import Optional

import structlog

from fraudflow.alerting.sla import sla_deadline
from fraudflow.config import Thresholds
from fraudflow.db.repositories.base import Repository
from fraudflow.db.store import Store
from fraudflow.errors import ConcurrencyConflict, ConsistencyViolation, VerdictError
from fraudflow.schemas.alert import Alert, AlertMetadata, AlertNote, AlertNoteType, AlertSeverity
from fraudflow.schemas.event import Event
from fraudflow.schemas.historique import HistoriqueEntry
from fraudflow.schemas.results import SkipReason, StepResult
from fraudflow.schemas.verdict import AnalysisVerdict, Decision
from fraudflow.workflow.historique import HistoriqueProjector

logger = structlog.get_logger(__name__)

RULE_DOCUMENT_RISK = "document_risk_threshold"


def alert_id_for(event_id: str, rule: str) -> str:
    digest = hashlib.sha1(f"{event_id}:{rule}".encode()).hexdigest()[:16]
    return f"ALT-{digest}"


def severity_for(verdict: AnalysisVerdict, thresholds: Thresholds) -> Optional[AlertSeverity]:
    """Alert severity for a verdict, or None when no alert is warranted."""
    s = verdict.score_100
    if s >= thresholds.fraud_threshold:
        if verdict.decision == Decision.APPROVE and not verdict.has_failing_finding:
            return AlertSeverity.HIGH
        return AlertSeverity.CRITICAL
    if s >= thresholds.suspicion_min:
        return AlertSeverity.MEDIUM
    return None


def _title(severity: AlertSeverity, event: Event) -> str:
    if severity == AlertSeverity.CRITICAL:
        return f"Probable document fraud ({event.tracking_number})"
    if severity == AlertSeverity.HIGH:
        return f"High-risk document ({event.tracking_number})"
    return f"Suspicious document ({event.tracking_number})"


class AlertSynthesizer:
    def __init__(
        self,
        store: Store,
        historiques: HistoriqueProjector,
        thresholds: Thresholds,
        sla_base_hours: float = 24.0,
    ):
        self.repo: Repository[Alert] = Repository(store, "alerts", Alert)
        self.historiques = historiques
        self.thresholds = thresholds
        self.sla_base_hours = sla_base_hours

    async def synthesize(
        self,
        event: Event,
        historique: HistoriqueEntry,
        verdict: AnalysisVerdict,
        thresholds: Optional[Thresholds] = None,
    ) -> StepResult[Alert]:
        if verdict.error:
            raise VerdictError(f"Verdict for event {event.id} carries an error: {verdict.error}", event_id=event.id)
        if verdict.risk_score is None:
            raise VerdictError(f"Verdict for event {event.id} has no risk score", event_id=event.id)
        if historique.event_id != event.id:
            raise ConsistencyViolation(
                f"Historique {historique.id} belongs to event {historique.event_id}, not {event.id}",
                event_id=event.id,
                historique_id=historique.id,
            )

        thresholds = thresholds or self.thresholds
        severity = severity_for(verdict, thresholds)
        if severity is None:
            logger.debug(
                "alert_below_threshold",
                event_id=event.id,
                score=verdict.score_100,
                suspicion_min=thresholds.suspicion_min,
            )
            return StepResult.skip(SkipReason.BELOW_THRESHOLD)

        alert_id = alert_id_for(event.id, RULE_DOCUMENT_RISK)
        existing = await self.repo.get(alert_id)
        if existing is not None:
            await self.historiques.link(historique.id, alerte_id=existing.id)
            return StepResult.skip(SkipReason.ALREADY_SYNTHESIZED, existing)

        alert = Alert(
            id=alert_id,
            event_id=event.id,
            historique_id=historique.id,
            rule=RULE_DOCUMENT_RISK,
            title=_title(severity, event),
            description="; ".join(f.message for f in verdict.key_findings if f.message),
            severity=severity,
            score=min(verdict.score_100, 100.0),
            confidence=verdict.confidence if verdict.confidence is not None else verdict.risk_score,
            findings=verdict.key_findings,
            metadata=AlertMetadata(
                classifier_decision=verdict.decision,
                document_id=verdict.document_id,
                tampering_overlay_url=verdict.tampering_overlay_url,
                assure_id=event.assure_id,
                tracking_number=event.tracking_number,
            ),
            sla_deadline=sla_deadline(severity, self.sla_base_hours),
            timeline=[AlertNote(type=AlertNoteType.CREATED, message=f"Alert raised at score {verdict.score_100}")],
        )
        try:
            alert = await self.repo.add(alert)
        except ConcurrencyConflict:
            existing = await self.repo.require(alert_id)
            return StepResult.skip(SkipReason.ALREADY_SYNTHESIZED, existing)

        await self.historiques.link(historique.id, alerte_id=alert.id)

        logger.info(
            "alert_triggered",
            alert_id=alert.id,
            event_id=event.id,
            severity=severity,
            score=alert.score,
            fraud_threshold=thresholds.fraud_threshold,
        )
        return StepResult.ok(alert)
