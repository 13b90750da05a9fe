"""
Read-side views: person overview and workflow statistics.

Nothing here writes. Alerts are attributed to a person through their event,
never through the alert's cached ``metadata.assure_id``.
"""

from typing import Any

from fraudflow.alerting.service import AlertService, sla_breached
from fraudflow.schemas.alert import Alert, AlertSeverity, AlertStatus, Qualification
from fraudflow.schemas.common import utcnow
from fraudflow.schemas.risque import LEVEL_ORDER
from fraudflow.workflow.cases import CaseAggregator
from fraudflow.workflow.events import EventLog
from fraudflow.workflow.historique import HistoriqueProjector
from fraudflow.workflow.patterns import detect_correlations, detect_patterns
from fraudflow.workflow.risk_ledger import RiskLedger


def _rate(numerator: int, denominator: int) -> float:
    return round(numerator / denominator * 100, 2) if denominator else 0.0


class WorkflowInsights:
    def __init__(
        self,
        events: EventLog,
        historiques: HistoriqueProjector,
        alerts: AlertService,
        ledger: RiskLedger,
        cases: CaseAggregator,
    ):
        self.events = events
        self.historiques = historiques
        self.alerts = alerts
        self.ledger = ledger
        self.cases = cases

    async def _person_alerts(self, events) -> list[Alert]:
        event_ids = {e.id for e in events}
        return [a for a in await self.alerts.list() if a.event_id in event_ids]

    async def person_overview(self, person_id: str) -> dict[str, Any]:
        events = await self.events.list(assure_id=person_id)
        alerts = await self._person_alerts(events)
        alert_ids = {a.id for a in alerts}
        cases = [c for c in await self.cases.list() if alert_ids.intersection(c.alerts)]
        historiques = await self.historiques.list(assure_id=person_id)
        risque = await self.ledger.get_for_person(person_id)

        return {
            "assure_id": person_id,
            "risque": risque,
            "events": events,
            "historiques": historiques,
            "alerts": alerts,
            "cases": cases,
            "summary": {
                "events": len(events),
                "alerts": len(alerts),
                "open_alerts": sum(1 for a in alerts if a.is_open),
                "confirmed_frauds": sum(1 for a in alerts if a.qualification == Qualification.FRAUD_CONFIRMED),
                "cases": len(cases),
                "risk_level": risque.level if risque else None,
                "risk_score": risque.scoring.final_score if risque else None,
            },
        }

    async def patterns(self, person_id: str) -> dict[str, Any]:
        """Repeated activity and correlated alerts for one person."""
        historiques = await self.historiques.list(assure_id=person_id)
        alerts = await self._person_alerts(await self.events.list(assure_id=person_id))
        return {
            "assure_id": person_id,
            "patterns": detect_patterns(person_id, historiques),
            "correlations": detect_correlations(person_id, alerts),
        }

    async def stats(self) -> dict[str, Any]:
        events = await self.events.list()
        alerts = await self.alerts.list()
        risques = await self.ledger.list()
        now = utcnow()

        processed = sum(1 for e in events if e.is_processed)
        qualified = [a for a in alerts if a.qualification is not None]
        confirmed = sum(1 for a in qualified if a.qualification == Qualification.FRAUD_CONFIRMED)
        false_positives = sum(1 for a in qualified if a.qualification == Qualification.FALSE_POSITIVE)

        by_level = {level.value: 0 for level in LEVEL_ORDER}
        for r in risques:
            by_level[r.level] += 1

        return {
            "events": {
                "total": len(events),
                "processed": processed,
                "pending": len(events) - processed,
            },
            "alerts": {
                "total": len(alerts),
                "by_status": {s.value: sum(1 for a in alerts if a.status == s) for s in AlertStatus},
                "by_severity": {s.value: sum(1 for a in alerts if a.severity == s) for s in AlertSeverity},
                "confirmed": confirmed,
                "false_positives": false_positives,
                "investigating": sum(1 for a in alerts if a.status == AlertStatus.INVESTIGATING),
                "overdue": sum(1 for a in alerts if sla_breached(a, now)),
                "impacting_risk": sum(1 for a in alerts if a.impacts_risk),
            },
            "alert_rate": _rate(len(alerts), processed),
            "confirmation_rate": _rate(confirmed, len(qualified)),
            "risques": {"total": len(risques), "by_level": by_level},
            "cases": await self.cases.stats(),
        }
