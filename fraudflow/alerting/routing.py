"""
Alert routing and escalation.

``route_alert`` suggests a team for an alert from its severity, score and
classifier confidence. It never assigns anything.

``evaluate_escalation`` decides whether an open alert should move one step
up its escalation path: the SLA is breached or about to be, or a critical
alert has sat unassigned. AlertRouter applies the move through
``AlertService.transfer`` so the per-alert lock, the timeline note and the
SLA tightening rules all apply as for a manual transfer.
"""

from datetime import datetime, timedelta
from typing import Optional

import structlog
from pydantic import BaseModel, Field

from fraudflow.alerting.service import AlertService
from fraudflow.alerting.sla import SEVERITY_SLA_MULTIPLIER
from fraudflow.schemas.alert import Alert, AlertSeverity
from fraudflow.schemas.common import InvestigationTeam, Priority, TransferUrgency, utcnow

logger = structlog.get_logger(__name__)

CRITICAL_SCORE = 90.0
HIGH_SCORE = 75.0
LOW_CONFIDENCE = 0.6
SLA_WARNING_HOURS = 6.0
UNASSIGNED_CRITICAL_AFTER = timedelta(hours=1)

COMPLEXITY_ORDER = [Priority.LOW, Priority.MEDIUM, Priority.HIGH, Priority.CRITICAL]


# ============================================================================
# SCHEMAS
# ============================================================================


class RoutingPolicy(BaseModel):
    complexity: Priority
    primary_team: InvestigationTeam
    escalation_path: list[InvestigationTeam]
    sla_multiplier: float = Field(gt=0)
    priority_boost: int = Field(default=0, ge=0, le=2)


class RoutingDecision(BaseModel):
    alert_id: str
    team: InvestigationTeam
    complexity: Priority
    escalation_path: list[InvestigationTeam]
    sla_hours: float
    requires_approval: bool
    priority_boost: int
    reasons: list[str] = Field(default_factory=list)


class EscalationDecision(BaseModel):
    alert_id: str
    should_escalate: bool
    reason: str
    escalate_to: Optional[InvestigationTeam] = None
    urgency: Optional[TransferUrgency] = None
    hours_remaining: Optional[float] = None


DEFAULT_POLICIES: dict[Priority, RoutingPolicy] = {
    Priority.LOW: RoutingPolicy(
        complexity=Priority.LOW,
        primary_team=InvestigationTeam.GESTIONNAIRE,
        escalation_path=[InvestigationTeam.GESTIONNAIRE, InvestigationTeam.FRAUDE],
        sla_multiplier=0.8,
    ),
    Priority.MEDIUM: RoutingPolicy(
        complexity=Priority.MEDIUM,
        primary_team=InvestigationTeam.FRAUDE,
        escalation_path=[InvestigationTeam.FRAUDE, InvestigationTeam.EXPERT],
        sla_multiplier=1.0,
    ),
    Priority.HIGH: RoutingPolicy(
        complexity=Priority.HIGH,
        primary_team=InvestigationTeam.FRAUDE,
        escalation_path=[InvestigationTeam.FRAUDE, InvestigationTeam.EXPERT, InvestigationTeam.COMPLIANCE],
        sla_multiplier=1.3,
        priority_boost=1,
    ),
    Priority.CRITICAL: RoutingPolicy(
        complexity=Priority.CRITICAL,
        primary_team=InvestigationTeam.EXPERT,
        escalation_path=[InvestigationTeam.EXPERT, InvestigationTeam.COMPLIANCE],
        sla_multiplier=1.6,
        priority_boost=2,
    ),
}


# ============================================================================
# ROUTING
# ============================================================================


def assess_complexity(alert: Alert) -> tuple[Priority, list[str]]:
    """
    Severity sets the starting level, a high score raises it, and a low
    classifier confidence adds one more step.
    """
    rank = COMPLEXITY_ORDER.index(Priority(alert.severity.value))
    reasons = [f"severity {alert.severity}"]

    if alert.score >= CRITICAL_SCORE and rank < 3:
        rank = 3
        reasons.append(f"score {alert.score:.0f} >= {CRITICAL_SCORE:.0f}")
    elif alert.score >= HIGH_SCORE and rank < 2:
        rank = 2
        reasons.append(f"score {alert.score:.0f} >= {HIGH_SCORE:.0f}")

    if alert.confidence < LOW_CONFIDENCE and rank < 3:
        rank += 1
        reasons.append(f"confidence {alert.confidence:.2f} < {LOW_CONFIDENCE}")

    return COMPLEXITY_ORDER[rank], reasons


def route_alert(alert: Alert, sla_base_hours: float = 24.0) -> RoutingDecision:
    complexity, reasons = assess_complexity(alert)
    policy = DEFAULT_POLICIES[complexity]
    sla_hours = sla_base_hours * policy.sla_multiplier * SEVERITY_SLA_MULTIPLIER[alert.severity]
    return RoutingDecision(
        alert_id=alert.id,
        team=policy.primary_team,
        complexity=complexity,
        escalation_path=list(policy.escalation_path),
        sla_hours=round(sla_hours, 1),
        requires_approval=complexity == Priority.CRITICAL,
        priority_boost=policy.priority_boost,
        reasons=reasons,
    )


# ============================================================================
# ESCALATION
# ============================================================================


def _next_team(path: list[InvestigationTeam], current: Optional[InvestigationTeam]) -> Optional[InvestigationTeam]:
    if current is None or current not in path:
        return path[0]
    step = path.index(current) + 1
    return path[step] if step < len(path) else None


def evaluate_escalation(alert: Alert, now: Optional[datetime] = None) -> EscalationDecision:
    now = now or utcnow()
    if not alert.is_open:
        return EscalationDecision(alert_id=alert.id, should_escalate=False, reason=f"Alert is {alert.status}")

    remaining = None
    if alert.sla_deadline is not None:
        remaining = round((alert.sla_deadline - now).total_seconds() / 3600, 2)

    if remaining is not None and remaining < 0:
        trigger, urgency = f"SLA breached {-remaining:.1f}h ago", TransferUrgency.IMMEDIATE
    elif remaining is not None and remaining < SLA_WARNING_HOURS:
        trigger, urgency = f"SLA due in {remaining:.1f}h", TransferUrgency.WITHIN_24H
    elif (
        alert.severity == AlertSeverity.CRITICAL
        and alert.assigned_to is None
        and now - alert.created_at >= UNASSIGNED_CRITICAL_AFTER
    ):
        trigger, urgency = "Critical alert still unassigned", TransferUrgency.IMMEDIATE
    else:
        return EscalationDecision(
            alert_id=alert.id, should_escalate=False, reason="No escalation trigger", hours_remaining=remaining
        )

    complexity, _ = assess_complexity(alert)
    target = _next_team(DEFAULT_POLICIES[complexity].escalation_path, alert.assigned_team)
    if target is None:
        return EscalationDecision(
            alert_id=alert.id,
            should_escalate=False,
            reason=f"{trigger}; {alert.assigned_team} is the last escalation step",
            hours_remaining=remaining,
        )
    return EscalationDecision(
        alert_id=alert.id,
        should_escalate=True,
        reason=trigger,
        escalate_to=target,
        urgency=urgency,
        hours_remaining=remaining,
    )


class AlertRouter:
    def __init__(self, alerts: AlertService, sla_base_hours: float = 24.0):
        self.alerts = alerts
        self.sla_base_hours = sla_base_hours

    async def route(self, alert_id: str) -> RoutingDecision:
        return route_alert(await self.alerts.require(alert_id), self.sla_base_hours)

    async def check_escalation(self, alert_id: str) -> EscalationDecision:
        return evaluate_escalation(await self.alerts.require(alert_id))

    async def escalate(self, alert_id: str, by: Optional[str] = None) -> tuple[EscalationDecision, Alert]:
        """Evaluate and, when triggered, transfer the alert to the next team."""
        alert = await self.alerts.require(alert_id)
        decision = evaluate_escalation(alert)
        if not decision.should_escalate:
            return decision, alert

        alert = await self.alerts.transfer(
            alert_id,
            decision.escalate_to,
            f"Escalation: {decision.reason}",
            urgency=decision.urgency,
            by=by,
        )
        logger.warning(
            "alert_escalated",
            alert_id=alert_id,
            to_team=decision.escalate_to,
            urgency=decision.urgency,
            reason=decision.reason,
        )
        return decision, alert
