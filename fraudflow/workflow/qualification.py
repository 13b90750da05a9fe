"""
Qualification Gate - the human verdict on an alert.

A qualification is written once (unset → set) under the alert's lock and a
version check. Only fraud_confirmed reaches the risk ledger, and only when
the person can be resolved through the alert's event; the alert's own
``metadata.assure_id`` is never trusted for that.

``impacts_risk`` is set on the alert only after the ledger update succeeded.
"""

from typing import Optional

import structlog

from fraudflow.db.repositories.base import Repository
from fraudflow.db.store import Store
from fraudflow.errors import FraudFlowError
from fraudflow.schemas.alert import Alert, AlertNote, AlertNoteType, AlertStatus, Qualification
from fraudflow.schemas.common import utcnow
from fraudflow.schemas.results import QualificationResult, RiskImpact, SkipReason, StepResult, StepStatus
from fraudflow.schemas.risque import risque_id_for
from fraudflow.services.locks import KeyedLock
from fraudflow.workflow.events import EventLog
from fraudflow.workflow.historique import HistoriqueProjector
from fraudflow.workflow.ports import RiskUpdatePort

logger = structlog.get_logger(__name__)


class QualificationGate:
    def __init__(
        self,
        store: Store,
        events: EventLog,
        risk: RiskUpdatePort,
        locks: Optional[KeyedLock] = None,
        historiques: Optional[HistoriqueProjector] = None,
    ):
        self.repo: Repository[Alert] = Repository(store, "alerts", Alert)
        self.events = events
        self.risk = risk
        self.locks = locks or KeyedLock("alert")
        self.historiques = historiques

    async def qualify(
        self,
        alert_id: str,
        qualification: Qualification,
        notes: Optional[str] = None,
        qualified_by: Optional[str] = None,
    ) -> QualificationResult:
        async with self.locks.hold(alert_id):
            alert = await self.repo.require(alert_id)

            if alert.qualification is not None:
                logger.info("alert_already_qualified", alert_id=alert_id, qualification=alert.qualification)
                return QualificationResult(alert=alert, status=StepStatus.SKIPPED, reason=SkipReason.ALREADY_QUALIFIED)
            if not alert.is_open:
                logger.warning("alert_qualify_invalid_state", alert_id=alert_id, status=alert.status)
                return QualificationResult(alert=alert, status=StepStatus.SKIPPED, reason=SkipReason.INVALID_STATE)

            metadata = alert.metadata.model_copy(
                update={"qualification": qualification, "qualification_notes": notes}
            )
            message = f"Qualified as {qualification}" + (f": {notes}" if notes else "")
            alert = await self.repo.save(
                alert.model_copy(
                    update={
                        "status": AlertStatus.QUALIFIED,
                        "metadata": metadata,
                        "qualified_at": utcnow(),
                        "qualified_by": qualified_by,
                        "timeline": [
                            *alert.timeline,
                            AlertNote(type=AlertNoteType.QUALIFIED, message=message, author=qualified_by),
                        ],
                    }
                )
            )
            logger.info("alert_qualified", alert_id=alert_id, qualification=qualification, by=qualified_by)

            if qualification != Qualification.FRAUD_CONFIRMED:
                return QualificationResult(alert=alert, status=StepStatus.SUCCESS)

            alert, risk = await self._apply_risk(alert)

        return QualificationResult(
            alert=alert,
            status=StepStatus.SUCCESS,
            risk=risk,
            risk_impact=RiskImpact.latest(risk.record) if risk.succeeded else None,
        )

    async def reconcile_unlinked(self, alert_id: str) -> QualificationResult:
        """
        Retry the risk update of a confirmed alert whose person was unknown
        when it was qualified.
        """
        async with self.locks.hold(alert_id):
            alert = await self.repo.require(alert_id)
            if alert.qualification != Qualification.FRAUD_CONFIRMED or alert.impacts_risk:
                return QualificationResult(alert=alert, status=StepStatus.SKIPPED, reason=SkipReason.NOT_APPLICABLE)
            alert, risk = await self._apply_risk(alert)

        return QualificationResult(
            alert=alert,
            status=risk.status,
            reason=risk.reason,
            risk=risk,
            risk_impact=RiskImpact.latest(risk.record) if risk.succeeded else None,
        )

    async def reconcile_event(self, event_id: str) -> list[QualificationResult]:
        """Reconcile every confirmed-but-unapplied alert raised on an event."""
        alerts = await self.repo.list(
            lambda a: a.event_id == event_id
            and a.qualification == Qualification.FRAUD_CONFIRMED
            and not a.impacts_risk
        )
        return [await self.reconcile_unlinked(alert.id) for alert in alerts]

    async def pending_risk_updates(self) -> list[Alert]:
        """Confirmed alerts that have not reached a risk profile yet."""
        return await self.repo.list(
            lambda a: a.qualification == Qualification.FRAUD_CONFIRMED and not a.impacts_risk
        )

    async def _apply_risk(self, alert: Alert) -> tuple[Alert, StepResult]:
        event = await self.events.get(alert.event_id)
        person_id = event.assure_id if event is not None else None
        if not person_id:
            logger.warning("risk_update_unlinked_person", alert_id=alert.id, event_id=alert.event_id)
            return alert, StepResult.skip(SkipReason.UNLINKED_PERSON)

        try:
            risk = await self.risk.confirm_fraud(person_id, alert, event)
        except FraudFlowError as exc:
            logger.error("risk_update_failed", alert_id=alert.id, assure_id=person_id, error=str(exc))
            return alert, StepResult.fail(str(exc))

        # A duplicate means the ledger already holds this alert: the flag is
        # still owed to the alert.
        if risk.status == StepStatus.FAILED:
            return alert, risk

        metadata = alert.metadata.model_copy(update={"assure_id": person_id})
        alert = await self.repo.save(
            alert.model_copy(
                update={
                    "impacts_risk": True,
                    "impacted_assure_id": person_id,
                    "risk_impact_applied_at": utcnow(),
                    "metadata": metadata,
                    "timeline": [
                        *alert.timeline,
                        AlertNote(type=AlertNoteType.RISK_UPDATED, message=f"Risk profile of {person_id} escalated"),
                    ],
                }
            )
        )
        if self.historiques is not None:
            await self.historiques.link(alert.historique_id, risque_id=risque_id_for(person_id))
        return alert, risk
