"""
Alert workflow - assignment, transfer, investigation, closing, listing.

Qualification is not here: it lives in the Qualification Gate, which shares
this service's per-alert lock.
"""

from datetime import datetime
from typing import Callable, Optional

import structlog

from fraudflow.alerting.sla import is_overdue, transfer_deadline
from fraudflow.db.repositories.base import Repository
from fraudflow.db.store import Store
from fraudflow.errors import InvalidTransition
from fraudflow.schemas.alert import (
    Alert,
    AlertNote,
    AlertNoteType,
    AlertSeverity,
    AlertStatus,
    Qualification,
)
from fraudflow.schemas.common import InvestigationTeam, TransferUrgency, utcnow
from fraudflow.services.locks import KeyedLock

logger = structlog.get_logger(__name__)


class AlertService:
    def __init__(self, store: Store, locks: Optional[KeyedLock] = None):
        self.repo: Repository[Alert] = Repository(store, "alerts", Alert)
        self.locks = locks or KeyedLock("alert")

    # ── Reads ──────────────────────────────────────────────────────────

    async def get(self, alert_id: str) -> Optional[Alert]:
        return await self.repo.get(alert_id)

    async def require(self, alert_id: str) -> Alert:
        return await self.repo.require(alert_id)

    async def list(
        self,
        status: Optional[AlertStatus] = None,
        severity: Optional[AlertSeverity] = None,
        team: Optional[InvestigationTeam] = None,
        assigned_to: Optional[str] = None,
        event_id: Optional[str] = None,
        qualification: Optional[Qualification] = None,
        unassigned: Optional[bool] = None,
        overdue: Optional[bool] = None,
    ) -> list[Alert]:
        now = utcnow()

        def match(a: Alert) -> bool:
            if status is not None and a.status != status:
                return False
            if severity is not None and a.severity != severity:
                return False
            if team is not None and a.assigned_team != team:
                return False
            if assigned_to is not None and a.assigned_to != assigned_to:
                return False
            if event_id is not None and a.event_id != event_id:
                return False
            if qualification is not None and a.qualification != qualification:
                return False
            if unassigned is not None and (a.assigned_to is None) != unassigned:
                return False
            if overdue is not None and sla_breached(a, now) != overdue:
                return False
            return True

        alerts = await self.repo.list(match)
        return sorted(alerts, key=lambda a: a.created_at, reverse=True)

    # ── Workflow ───────────────────────────────────────────────────────

    async def assign(
        self,
        alert_id: str,
        assign_to: str,
        team: InvestigationTeam = InvestigationTeam.GESTIONNAIRE,
        assigned_by: Optional[str] = None,
    ) -> Alert:
        def mutate(alert: Alert) -> dict:
            if alert.status not in (AlertStatus.NEW, AlertStatus.ASSIGNED):
                raise InvalidTransition(f"Cannot assign alert {alert.id} in status {alert.status}")
            return {
                "status": AlertStatus.ASSIGNED,
                "assigned_to": assign_to,
                "assigned_team": team,
                "timeline": [
                    *alert.timeline,
                    AlertNote(
                        type=AlertNoteType.ASSIGNED,
                        message=f"Assigned to {assign_to} ({team})",
                        author=assigned_by,
                    ),
                ],
            }

        alert = await self._update(alert_id, mutate)
        logger.info("alert_assigned", alert_id=alert_id, assign_to=assign_to, team=team)
        return alert

    async def start_investigation(self, alert_id: str, by: Optional[str] = None) -> Alert:
        def mutate(alert: Alert) -> dict:
            if alert.status != AlertStatus.ASSIGNED:
                raise InvalidTransition(
                    f"Alert {alert.id} must be assigned before investigation (is {alert.status})"
                )
            return {
                "status": AlertStatus.INVESTIGATING,
                "timeline": [
                    *alert.timeline,
                    AlertNote(type=AlertNoteType.INVESTIGATION_STARTED, message="Investigation started", author=by),
                ],
            }

        alert = await self._update(alert_id, mutate)
        logger.info("alert_investigation_started", alert_id=alert_id)
        return alert

    async def transfer(
        self,
        alert_id: str,
        to_team: InvestigationTeam,
        reason: str,
        urgency: TransferUrgency = TransferUrgency.ROUTINE,
        to: Optional[str] = None,
        by: Optional[str] = None,
    ) -> Alert:
        """Hand an open alert over to another team; urgency can tighten the SLA."""

        def mutate(alert: Alert) -> dict:
            if not alert.is_open:
                raise InvalidTransition(f"Cannot transfer alert {alert.id} in status {alert.status}")
            from_team = alert.assigned_team or InvestigationTeam.GESTIONNAIRE
            status = alert.status
            if status == AlertStatus.NEW and to:
                status = AlertStatus.ASSIGNED
            return {
                "status": status,
                "assigned_team": to_team,
                "assigned_to": to,
                "transfer_urgency": urgency,
                "sla_deadline": transfer_deadline(alert.sla_deadline, urgency),
                "timeline": [
                    *alert.timeline,
                    AlertNote(
                        type=AlertNoteType.TRANSFERRED,
                        message=f"Transferred {from_team} → {to_team} ({urgency}): {reason}",
                        author=by,
                    ),
                ],
            }

        alert = await self._update(alert_id, mutate)
        logger.info("alert_transferred", alert_id=alert_id, to_team=to_team, urgency=urgency)
        return alert

    async def close(self, alert_id: str, reason: str, by: Optional[str] = None) -> Alert:
        def mutate(alert: Alert) -> dict:
            if not alert.is_open:
                raise InvalidTransition(f"Alert {alert.id} is already {alert.status}")
            return {
                "status": AlertStatus.CLOSED,
                "closed_at": utcnow(),
                "timeline": [
                    *alert.timeline,
                    AlertNote(type=AlertNoteType.CLOSED, message=f"Closed: {reason}", author=by),
                ],
            }

        alert = await self._update(alert_id, mutate)
        logger.info("alert_closed", alert_id=alert_id)
        return alert

    async def reopen(self, alert_id: str, reason: str, by: Optional[str] = None) -> Alert:
        """
        Put a qualified or closed alert back under investigation.

        The qualification is kept as it was; the reopening is a timeline note.
        """

        def mutate(alert: Alert) -> dict:
            if alert.is_open:
                raise InvalidTransition(f"Alert {alert.id} is still open ({alert.status})")
            return {
                "status": AlertStatus.INVESTIGATING,
                "closed_at": None,
                "timeline": [
                    *alert.timeline,
                    AlertNote(type=AlertNoteType.REOPENED, message=f"Reopened: {reason}", author=by),
                ],
            }

        alert = await self._update(alert_id, mutate)
        logger.info("alert_reopened", alert_id=alert_id, qualification=alert.qualification)
        return alert

    async def add_note(self, alert_id: str, message: str, author: Optional[str] = None) -> Alert:
        return await self._update(
            alert_id,
            lambda alert: {"timeline": [*alert.timeline, AlertNote(message=message, author=author)]},
        )

    async def attach_case(self, alert_id: str, case_id: str) -> Alert:
        return await self._update(alert_id, lambda alert: {"case_id": case_id})

    async def _update(self, alert_id: str, mutate: Callable[[Alert], dict]) -> Alert:
        async with self.locks.hold(alert_id):
            alert = await self.repo.require(alert_id)
            changes = mutate(alert)
            return await self.repo.save(alert.model_copy(update=changes))


def sla_breached(alert: Alert, now: Optional[datetime] = None) -> bool:
    return alert.is_open and is_overdue(alert.sla_deadline, now)
