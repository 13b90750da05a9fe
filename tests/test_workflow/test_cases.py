"""
Tests for the Case Aggregator.

Covers:
- Case creation from alerts (reference, priority, estimated loss, links)
- Handovers only across team boundaries
- Forward-only status flow and decisions
- ROI metrics and aggregate statistics
- Method signatures resolve against builtins despite the `list` method
"""

import inspect
import typing

import pytest

from fraudflow.errors import InvalidTransition, RecordNotFound, ValidationFailure
from fraudflow.schemas.case import (
    CaseDecision,
    CaseMetrics,
    CasePriority,
    CaseStatus,
    TimelineType,
)
from fraudflow.schemas.common import InvestigationTeam, TransferUrgency, utcnow
from fraudflow.workflow.cases import CaseAggregator


class TestCreateCase:
    @pytest.mark.asyncio
    async def test_create_from_alerts(self, container, raise_alert):
        high = await raise_alert(0.9, data={"amount": 1500.0})
        medium = await raise_alert(0.6, data={"amount": 500.0})

        case = await container.cases.create_from_alerts(
            [medium.id, high.id, medium.id], assign_to="agent-1", created_by="lead", notes="same garage"
        )

        assert case.reference == f"CASE-{utcnow().year}-0001"
        assert case.alerts == [medium.id, high.id]
        assert case.primary_alert_id == high.id
        assert case.priority == CasePriority.URGENT
        assert case.status == CaseStatus.OPEN
        assert case.decision == CaseDecision.PENDING
        assert case.metrics.estimated_loss == 2000.0
        assert case.handovers == []
        assert [t.type for t in case.timeline] == [TimelineType.CREATED, TimelineType.ASSIGNED]
        assert case.notes[0].content == "same garage"

        assert (await container.alerts.require(high.id)).case_id == case.id
        entry = await container.historiques.require(high.historique_id)
        assert entry.related_entities.dossier_ids == [case.id]

    @pytest.mark.asyncio
    async def test_references_increment(self, container, raise_alert):
        alert = await raise_alert()
        first = await container.cases.create_from_alerts([alert.id])
        second = await container.cases.create_from_alerts([alert.id])
        assert first.reference.endswith("-0001")
        assert second.reference.endswith("-0002")

    @pytest.mark.asyncio
    async def test_medium_alerts_give_normal_priority(self, container, raise_alert):
        alert = await raise_alert(0.55)
        case = await container.cases.create_from_alerts([alert.id])
        assert case.priority == CasePriority.NORMAL

    @pytest.mark.asyncio
    async def test_explicit_priority(self, container, raise_alert):
        alert = await raise_alert(0.95)
        case = await container.cases.create_from_alerts([alert.id], priority=CasePriority.LOW)
        assert case.priority == CasePriority.LOW

    @pytest.mark.asyncio
    async def test_cross_team_creation_records_handover(self, container, raise_alert):
        alert = await raise_alert()
        case = await container.cases.create_from_alerts(
            [alert.id],
            assign_to="fraud-1",
            team=InvestigationTeam.FRAUDE,
            created_by="gest-1",
            creator_team=InvestigationTeam.GESTIONNAIRE,
            handover_reason="forged invoice",
        )
        assert len(case.handovers) == 1
        handover = case.handovers[0]
        assert handover.from_team == InvestigationTeam.GESTIONNAIRE
        assert handover.to_team == InvestigationTeam.FRAUDE
        assert handover.reason == "forged invoice"
        assert "handover" in case.tags
        assert "from-gestionnaire-to-fraude" in case.tags

    @pytest.mark.asyncio
    async def test_empty_alert_list(self, container):
        with pytest.raises(ValidationFailure):
            await container.cases.create_from_alerts([])

    @pytest.mark.asyncio
    async def test_unknown_alert(self, container):
        with pytest.raises(RecordNotFound):
            await container.cases.create_from_alerts(["ALT-missing"])
        assert await container.cases.list() == []


class TestTransfer:
    @pytest.mark.asyncio
    async def test_same_team_is_reassignment(self, container, raise_alert):
        alert = await raise_alert()
        case = await container.cases.create_from_alerts([alert.id], assign_to="agent-1")
        moved = await container.cases.transfer(
            case.id, InvestigationTeam.GESTIONNAIRE, "holiday cover", to="agent-2"
        )
        assert moved.investigator == "agent-2"
        assert moved.handovers == []
        assert moved.timeline[-1].type == TimelineType.ASSIGNED

    @pytest.mark.asyncio
    async def test_cross_team_transfer(self, container, raise_alert):
        alert = await raise_alert()
        case = await container.cases.create_from_alerts([alert.id], assign_to="agent-1")
        moved = await container.cases.transfer(
            case.id, InvestigationTeam.EXPERT, "needs appraisal", TransferUrgency.IMMEDIATE, to="expert-1", by="agent-1"
        )
        assert moved.investigation_team == InvestigationTeam.EXPERT
        handover = moved.handovers[-1]
        assert handover.from_user == "agent-1"
        assert handover.to_user == "expert-1"
        assert handover.metadata["cost_multiplier"] == 2.0
        assert moved.timeline[-1].type == TimelineType.TRANSFERRED

        back = await container.cases.transfer(case.id, InvestigationTeam.GESTIONNAIRE, "appraisal done")
        assert len(back.handovers) == 2
        assert back.tags.count("handover") == 1

    @pytest.mark.asyncio
    async def test_closed_case_cannot_move(self, container, raise_alert):
        alert = await raise_alert()
        case = await container.cases.create_from_alerts([alert.id])
        await container.cases.update_status(case.id, CaseStatus.INVESTIGATING)
        await container.cases.record_decision(case.id, CaseDecision.FRAUD_REJECTED, "documents genuine")
        await container.cases.update_status(case.id, CaseStatus.CLOSED)

        with pytest.raises(InvalidTransition):
            await container.cases.transfer(case.id, InvestigationTeam.FRAUDE, "too late")
        with pytest.raises(InvalidTransition):
            await container.cases.assign(case.id, "agent-9")


class TestStatusAndDecision:
    @pytest.mark.asyncio
    async def test_forward_flow(self, container, raise_alert):
        alert = await raise_alert()
        case = await container.cases.create_from_alerts([alert.id])
        case = await container.cases.update_status(case.id, CaseStatus.INVESTIGATING)
        case = await container.cases.update_status(case.id, CaseStatus.PENDING_REVIEW)
        case = await container.cases.record_decision(case.id, CaseDecision.FRAUD_CONFIRMED, "forged stamp")
        case = await container.cases.update_status(case.id, CaseStatus.CLOSED, by="lead")

        assert case.status == CaseStatus.CLOSED
        assert case.closed_at is not None
        assert case.decision_reason == "forged stamp"
        assert case.decision_date is not None

    @pytest.mark.asyncio
    async def test_no_backward_moves(self, container, raise_alert):
        alert = await raise_alert()
        case = await container.cases.create_from_alerts([alert.id])
        await container.cases.update_status(case.id, CaseStatus.PENDING_REVIEW)
        with pytest.raises(InvalidTransition):
            await container.cases.update_status(case.id, CaseStatus.INVESTIGATING)
        with pytest.raises(InvalidTransition):
            await container.cases.update_status(case.id, CaseStatus.OPEN)

    @pytest.mark.asyncio
    async def test_close_requires_decision(self, container, raise_alert):
        alert = await raise_alert()
        case = await container.cases.create_from_alerts([alert.id])
        await container.cases.update_status(case.id, CaseStatus.INVESTIGATING)
        with pytest.raises(InvalidTransition):
            await container.cases.update_status(case.id, CaseStatus.CLOSED)

    @pytest.mark.asyncio
    async def test_pending_is_not_a_decision(self, container, raise_alert):
        alert = await raise_alert()
        case = await container.cases.create_from_alerts([alert.id])
        with pytest.raises(ValidationFailure):
            await container.cases.record_decision(case.id, CaseDecision.PENDING, "undo")


class TestMetrics:
    def test_roi_computation(self):
        metrics = CaseMetrics(recovered_amount=3000, prevented_amount=2000, investigation_cost=1000)
        assert metrics.total_roi == 4000
        assert metrics.roi_percentage == 400.0
        assert CaseMetrics(recovered_amount=10).roi_percentage == 0.0

    def test_negative_amounts_rejected(self):
        with pytest.raises(ValueError):
            CaseMetrics(investigation_cost=-1)

    @pytest.mark.asyncio
    async def test_partial_update_keeps_other_amounts(self, container, raise_alert):
        alert = await raise_alert(data={"amount": 800.0})
        case = await container.cases.create_from_alerts([alert.id])
        case = await container.cases.update_metrics(case.id, recovered_amount=500, investigation_cost=250)
        case = await container.cases.update_metrics(case.id, prevented_amount=300)

        assert case.metrics.estimated_loss == 800.0
        assert case.metrics.recovered_amount == 500
        assert case.metrics.total_roi == 550
        assert case.metrics.roi_percentage == 220.0

        stored = await container.cases.require(case.id)
        assert stored.metrics.total_roi == 550

    @pytest.mark.asyncio
    async def test_negative_update_rejected(self, container, raise_alert):
        alert = await raise_alert()
        case = await container.cases.create_from_alerts([alert.id])
        with pytest.raises(ValidationFailure):
            await container.cases.update_metrics(case.id, recovered_amount=-5)

    @pytest.mark.asyncio
    async def test_stats(self, container, raise_alert):
        a1 = await raise_alert()
        a2 = await raise_alert(0.6)
        c1 = await container.cases.create_from_alerts([a1.id], team=InvestigationTeam.FRAUDE)
        await container.cases.create_from_alerts([a2.id])
        await container.cases.update_metrics(c1.id, recovered_amount=900, investigation_cost=300)
        await container.cases.record_decision(c1.id, CaseDecision.FRAUD_CONFIRMED, "confirmed")

        stats = await container.cases.stats()
        assert stats["total"] == 2
        assert stats["by_status"]["open"] == 2
        assert stats["confirmed_fraud"] == 1
        assert stats["handovers"] == 1
        assert stats["total_roi"] == 600
        assert stats["roi_percentage"] == 200.0


class TestAlertsAndNotes:
    @pytest.mark.asyncio
    async def test_add_alerts(self, container, raise_alert):
        first = await raise_alert()
        second = await raise_alert()
        case = await container.cases.create_from_alerts([first.id])
        case = await container.cases.add_alerts(case.id, [first.id, second.id])

        assert case.alerts == [first.id, second.id]
        assert case.timeline[-1].type == TimelineType.ALERT_ADDED
        assert (await container.alerts.require(second.id)).case_id == case.id
        assert [c.id for c in await container.cases.list(alert_id=second.id)] == [case.id]

    @pytest.mark.asyncio
    async def test_add_note(self, container, raise_alert):
        alert = await raise_alert()
        case = await container.cases.create_from_alerts([alert.id])
        case = await container.cases.add_note(case.id, "Garage refused the visit", author="agent-1")
        assert case.notes[-1].content == "Garage refused the visit"
        assert case.timeline[-1].type == TimelineType.NOTE_ADDED

    @pytest.mark.asyncio
    async def test_list_filters(self, container, raise_alert):
        alert = await raise_alert()
        fraud = await container.cases.create_from_alerts([alert.id], team=InvestigationTeam.FRAUDE, assign_to="f-1")
        await container.cases.create_from_alerts([alert.id])

        assert [c.id for c in await container.cases.list(team=InvestigationTeam.FRAUDE)] == [fraud.id]
        assert [c.id for c in await container.cases.list(investigator="f-1")] == [fraud.id]
        assert len(await container.cases.list(status=CaseStatus.OPEN)) == 2


class TestSignatures:
    def test_list_method_does_not_shadow_builtin(self):
        hints = typing.get_type_hints(CaseAggregator.add_alerts)
        assert hints["alert_ids"] == list[str]

    def test_every_method_annotation_resolves(self):
        for name, member in inspect.getmembers(CaseAggregator, inspect.isfunction):
            typing.get_type_hints(member)
