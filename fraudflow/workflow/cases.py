"""
Case Aggregator - investigation cases (dossiers) built from alerts.

A case groups one or more alerts, tracks which team holds it and every
handover between teams, and carries the financial metrics of the
investigation. A handover is recorded only when the case crosses a team
boundary; moving it between two people of the same team is an assignment.

Read-modify-write on a case is serialized per case id.
"""

from __future__ import annotations

from typing import Any, Callable, Optional

import structlog

from fraudflow.alerting.service import AlertService
from fraudflow.alerting.sla import URGENCY_COST_MULTIPLIER
from fraudflow.db.repositories.base import Repository
from fraudflow.db.store import Store
from fraudflow.errors import InvalidTransition, ValidationFailure
from fraudflow.schemas.alert import Alert, AlertSeverity
from fraudflow.schemas.case import (
    CASE_TRANSITIONS,
    Case,
    CaseDecision,
    CaseMetrics,
    CaseNote,
    CasePriority,
    CaseStatus,
    CaseTimelineEntry,
    Handover,
    TimelineType,
)
from fraudflow.schemas.common import InvestigationTeam, TransferUrgency, utcnow
from fraudflow.services.locks import KeyedLock
from fraudflow.workflow.events import EventLog
from fraudflow.workflow.historique import HistoriqueProjector

logger = structlog.get_logger(__name__)


def _priority_for(alerts: list[Alert]) -> CasePriority:
    if any(a.severity in (AlertSeverity.CRITICAL, AlertSeverity.HIGH) for a in alerts):
        return CasePriority.URGENT
    return CasePriority.NORMAL


def _handover_tags(tags: list[str], from_team: InvestigationTeam, to_team: InvestigationTeam) -> list[str]:
    result = list(tags)
    for tag in ("handover", f"from-{from_team}-to-{to_team}"):
        if tag not in result:
            result.append(tag)
    return result


class CaseAggregator:
    def __init__(
        self,
        store: Store,
        alerts: AlertService,
        events: EventLog,
        historiques: HistoriqueProjector,
    ):
        self.repo: Repository[Case] = Repository(store, "cases", Case)
        self.alerts = alerts
        self.events = events
        self.historiques = historiques
        self._locks = KeyedLock("case")

    # ── Creation ───────────────────────────────────────────────────────

    async def create_from_alerts(
        self,
        alert_ids: list[str],
        assign_to: Optional[str] = None,
        team: InvestigationTeam = InvestigationTeam.GESTIONNAIRE,
        created_by: Optional[str] = None,
        creator_team: InvestigationTeam = InvestigationTeam.GESTIONNAIRE,
        priority: Optional[CasePriority] = None,
        notes: Optional[str] = None,
        handover_reason: Optional[str] = None,
    ) -> Case:
        alert_ids = list(dict.fromkeys(alert_ids))
        if not alert_ids:
            raise ValidationFailure("A case needs at least one alert")

        alerts = [await self.alerts.require(alert_id) for alert_id in alert_ids]
        primary = max(alerts, key=lambda a: a.score)

        estimated_loss = 0.0
        for event_id in dict.fromkeys(a.event_id for a in alerts):
            event = await self.events.get(event_id)
            if event is not None:
                estimated_loss += event.amount

        now = utcnow()
        timeline = [
            CaseTimelineEntry(
                type=TimelineType.CREATED,
                description=f"Case opened from {len(alerts)} alert(s)",
                user_id=created_by,
                timestamp=now,
            )
        ]
        if assign_to:
            timeline.append(
                CaseTimelineEntry(
                    type=TimelineType.ASSIGNED,
                    description=f"Assigned to {assign_to} ({team})",
                    user_id=created_by,
                    timestamp=now,
                )
            )

        handovers: list[Handover] = []
        tags: list[str] = []
        if team != creator_team:
            handovers.append(
                Handover(
                    from_user=created_by,
                    from_team=creator_team,
                    to_user=assign_to,
                    to_team=team,
                    reason=handover_reason or "Escalated at case creation",
                    timestamp=now,
                )
            )
            tags = _handover_tags(tags, creator_team, team)

        async with self._locks.hold("__reference__"):
            reference = await self._next_reference()
            case = Case(
                reference=reference,
                alerts=alert_ids,
                primary_alert_id=primary.id,
                priority=priority or _priority_for(alerts),
                investigator=assign_to,
                investigation_team=team,
                created_by=created_by,
                handovers=handovers,
                metrics=CaseMetrics(estimated_loss=estimated_loss),
                timeline=timeline,
                notes=[CaseNote(author=created_by, content=notes)] if notes else [],
                tags=tags,
                created_at=now,
                updated_at=now,
            )
            case = await self.repo.add(case)

        for alert in alerts:
            await self.alerts.attach_case(alert.id, case.id)
            await self.historiques.link(alert.historique_id, dossier_id=case.id)

        logger.info(
            "case_created",
            case_id=case.id,
            reference=case.reference,
            alerts=len(alerts),
            team=team,
            handover=bool(handovers),
        )
        return case

    async def _next_reference(self) -> str:
        year = utcnow().year
        prefix = f"CASE-{year}-"
        existing = await self.repo.count(lambda c: c.reference.startswith(prefix))
        return f"{prefix}{existing + 1:04d}"

    # ── Reads ──────────────────────────────────────────────────────────

    async def get(self, case_id: str) -> Optional[Case]:
        return await self.repo.get(case_id)

    async def require(self, case_id: str) -> Case:
        return await self.repo.require(case_id)

    async def list(
        self,
        status: Optional[CaseStatus] = None,
        team: Optional[InvestigationTeam] = None,
        priority: Optional[CasePriority] = None,
        investigator: Optional[str] = None,
        decision: Optional[CaseDecision] = None,
        alert_id: Optional[str] = None,
    ) -> list[Case]:
        def match(c: Case) -> bool:
            return (
                (status is None or c.status == status)
                and (team is None or c.investigation_team == team)
                and (priority is None or c.priority == priority)
                and (investigator is None or c.investigator == investigator)
                and (decision is None or c.decision == decision)
                and (alert_id is None or alert_id in c.alerts)
            )

        cases = await self.repo.list(match)
        return sorted(cases, key=lambda c: c.created_at, reverse=True)

    async def stats(self) -> dict[str, Any]:
        cases = await self.repo.list()
        by_status = {status.value: 0 for status in CaseStatus}
        for case in cases:
            by_status[case.status] += 1
        total_cost = sum(c.metrics.investigation_cost for c in cases)
        total_roi = sum(c.metrics.total_roi for c in cases)
        return {
            "total": len(cases),
            "by_status": by_status,
            "confirmed_fraud": sum(1 for c in cases if c.decision == CaseDecision.FRAUD_CONFIRMED),
            "handovers": sum(len(c.handovers) for c in cases),
            "estimated_loss": sum(c.metrics.estimated_loss for c in cases),
            "recovered_amount": sum(c.metrics.recovered_amount for c in cases),
            "prevented_amount": sum(c.metrics.prevented_amount for c in cases),
            "investigation_cost": total_cost,
            "total_roi": total_roi,
            "roi_percentage": round(total_roi / total_cost * 100, 2) if total_cost > 0 else 0.0,
        }

    # ── Workflow ───────────────────────────────────────────────────────

    async def transfer(
        self,
        case_id: str,
        to_team: InvestigationTeam,
        reason: str,
        urgency: TransferUrgency = TransferUrgency.ROUTINE,
        to: Optional[str] = None,
        by: Optional[str] = None,
    ) -> Case:
        def mutate(case: Case) -> dict:
            _require_open(case)
            now = utcnow()
            changes: dict[str, Any] = {"investigation_team": to_team, "investigator": to}
            if to_team == case.investigation_team:
                changes["timeline"] = [
                    *case.timeline,
                    CaseTimelineEntry(
                        type=TimelineType.ASSIGNED,
                        description=f"Reassigned to {to or 'unassigned'} within {to_team}: {reason}",
                        user_id=by,
                        timestamp=now,
                    ),
                ]
                return changes

            handover = Handover(
                from_user=case.investigator,
                from_team=case.investigation_team,
                to_user=to,
                to_team=to_team,
                reason=reason,
                urgency=urgency,
                timestamp=now,
                metadata={"cost_multiplier": URGENCY_COST_MULTIPLIER[urgency], "by": by},
            )
            changes["handovers"] = [*case.handovers, handover]
            changes["tags"] = _handover_tags(case.tags, case.investigation_team, to_team)
            changes["timeline"] = [
                *case.timeline,
                CaseTimelineEntry(
                    type=TimelineType.TRANSFERRED,
                    description=f"Transferred {case.investigation_team} → {to_team} ({urgency}): {reason}",
                    user_id=by,
                    timestamp=now,
                ),
            ]
            return changes

        case = await self._update(case_id, mutate)
        logger.info("case_transferred", case_id=case_id, to_team=to_team, urgency=urgency)
        return case

    async def assign(self, case_id: str, investigator: str, by: Optional[str] = None) -> Case:
        def mutate(case: Case) -> dict:
            _require_open(case)
            return {
                "investigator": investigator,
                "timeline": [
                    *case.timeline,
                    CaseTimelineEntry(
                        type=TimelineType.ASSIGNED,
                        description=f"Assigned to {investigator}",
                        user_id=by,
                    ),
                ],
            }

        return await self._update(case_id, mutate)

    async def update_status(self, case_id: str, status: CaseStatus, by: Optional[str] = None) -> Case:
        def mutate(case: Case) -> dict:
            if status not in CASE_TRANSITIONS[case.status]:
                raise InvalidTransition(f"Case {case.reference}: {case.status} → {status} is not allowed")
            if status == CaseStatus.CLOSED and case.decision == CaseDecision.PENDING:
                raise InvalidTransition(f"Case {case.reference} cannot be closed without a decision")
            changes: dict[str, Any] = {
                "status": status,
                "timeline": [
                    *case.timeline,
                    CaseTimelineEntry(
                        type=TimelineType.STATUS_CHANGED,
                        description=f"Status {case.status} → {status}",
                        user_id=by,
                    ),
                ],
            }
            if status == CaseStatus.CLOSED:
                changes["closed_at"] = utcnow()
            return changes

        case = await self._update(case_id, mutate)
        logger.info("case_status_changed", case_id=case_id, status=status)
        return case

    async def record_decision(
        self, case_id: str, decision: CaseDecision, reason: str, by: Optional[str] = None
    ) -> Case:
        if decision == CaseDecision.PENDING:
            raise ValidationFailure("A decision cannot be reset to pending")

        def mutate(case: Case) -> dict:
            _require_open(case)
            now = utcnow()
            return {
                "decision": decision,
                "decision_reason": reason,
                "decision_date": now,
                "timeline": [
                    *case.timeline,
                    CaseTimelineEntry(
                        type=TimelineType.DECISION_MADE,
                        description=f"Decision: {decision} ({reason})",
                        user_id=by,
                        timestamp=now,
                    ),
                ],
            }

        case = await self._update(case_id, mutate)
        logger.info("case_decision_recorded", case_id=case_id, decision=decision)
        return case

    async def update_metrics(
        self,
        case_id: str,
        estimated_loss: Optional[float] = None,
        recovered_amount: Optional[float] = None,
        prevented_amount: Optional[float] = None,
        investigation_cost: Optional[float] = None,
        by: Optional[str] = None,
    ) -> Case:
        amounts = {
            "estimated_loss": estimated_loss,
            "recovered_amount": recovered_amount,
            "prevented_amount": prevented_amount,
            "investigation_cost": investigation_cost,
        }
        amounts = {k: v for k, v in amounts.items() if v is not None}
        if any(v < 0 for v in amounts.values()):
            raise ValidationFailure("Case amounts cannot be negative")

        def mutate(case: Case) -> dict:
            metrics = CaseMetrics(
                **{**case.metrics.model_dump(exclude={"total_roi", "roi_percentage"}), **amounts}
            )
            return {
                "metrics": metrics,
                "timeline": [
                    *case.timeline,
                    CaseTimelineEntry(
                        type=TimelineType.METRICS_UPDATED,
                        description=f"Metrics updated, ROI {metrics.total_roi:.2f}",
                        user_id=by,
                    ),
                ],
            }

        case = await self._update(case_id, mutate)
        logger.info("case_metrics_updated", case_id=case_id, total_roi=case.metrics.total_roi)
        return case

    async def add_alerts(self, case_id: str, alert_ids: list[str], by: Optional[str] = None) -> Case:
        alerts = [await self.alerts.require(alert_id) for alert_id in dict.fromkeys(alert_ids)]

        def mutate(case: Case) -> dict:
            _require_open(case)
            new_ids = [a.id for a in alerts if a.id not in case.alerts]
            if not new_ids:
                return {}
            return {
                "alerts": [*case.alerts, *new_ids],
                "timeline": [
                    *case.timeline,
                    CaseTimelineEntry(
                        type=TimelineType.ALERT_ADDED,
                        description=f"Added alert(s) {', '.join(new_ids)}",
                        user_id=by,
                    ),
                ],
            }

        case = await self._update(case_id, mutate)
        for alert in alerts:
            await self.alerts.attach_case(alert.id, case.id)
            await self.historiques.link(alert.historique_id, dossier_id=case.id)
        return case

    async def add_note(self, case_id: str, content: str, author: Optional[str] = None) -> Case:
        def mutate(case: Case) -> dict:
            return {
                "notes": [*case.notes, CaseNote(author=author, content=content)],
                "timeline": [
                    *case.timeline,
                    CaseTimelineEntry(type=TimelineType.NOTE_ADDED, description="Note added", user_id=author),
                ],
            }

        return await self._update(case_id, mutate)

    async def _update(self, case_id: str, mutate: Callable[[Case], dict]) -> Case:
        async with self._locks.hold(case_id):
            case = await self.repo.require(case_id)
            changes = mutate(case)
            if not changes:
                return case
            return await self.repo.save(case.model_copy(update=changes))


def _require_open(case: Case) -> None:
    if case.status == CaseStatus.CLOSED:
        raise InvalidTransition(f"Case {case.reference} is closed")
