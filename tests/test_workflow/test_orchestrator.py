"""
End-to-end workflow scenarios through the Workflow Orchestrator.

Scenarios:
A. Clean document: event + historique, no alert
B. Suspicious document: medium alert, later qualified false positive
C. Confirmed fraud: critical alert escalates the person's risk profile
D. Anonymous upload: fraud confirmed before the person is known, reconciled later
E. Classifier outage: event stays pending, retry completes the pipeline
"""

import pytest

from conftest import make_verdict
from fraudflow.errors import ConcurrencyConflict, RecordNotFound
from fraudflow.schemas.alert import AlertSeverity, Qualification
from fraudflow.schemas.event import Channel, EventType
from fraudflow.schemas.historique import UNKNOWN_ASSURE, HistoriqueCategory, Impact
from fraudflow.schemas.results import ProcessingStatus, StepStatus
from fraudflow.schemas.risque import RiskLevel
from fraudflow.schemas.verdict import AnalysisVerdict, DocumentUpload
from fraudflow.workflow.orchestrator import event_from_upload


class TestEventFromUpload:
    def test_metadata_split(self, pdf_document):
        event = event_from_upload(
            pdf_document,
            {"assure_id": "ASS-1", "amount": 950.0, "policyNumber": "POL-7", "channel": "web", "agent": "a-1"},
        )
        assert event.type == EventType.DOCUMENT_UPLOAD
        assert event.assure_id == "ASS-1"
        assert event.channel == Channel.WEB
        assert event.data["filename"] == "facture.pdf"
        assert event.data["documentType"] == "invoice"
        assert event.data["policyNumber"] == "POL-7"
        assert event.amount == 950.0
        assert event.metadata == {"agent": "a-1"}

    def test_blank_person_is_unknown(self, pdf_document):
        assert event_from_upload(pdf_document, {"assure_id": ""}).assure_id is None


class TestScenarios:
    @pytest.mark.asyncio
    async def test_a_clean_document(self, container, scoring, pdf_document):
        scoring.risk_score = 0.12
        result = await container.orchestrator.process_document(pdf_document, {"assure_id": "ASS-1"})

        assert result.status == ProcessingStatus.SUCCESS
        assert result.alerts_generated == []
        assert result.steps == {
            "event": StepStatus.SUCCESS,
            "analysis": StepStatus.SUCCESS,
            "historique": StepStatus.SUCCESS,
            "alert": StepStatus.SKIPPED,
        }
        assert result.processing_time_ms >= 0

        event = await container.events.require(result.event_id)
        assert event.is_processed
        entry = await container.historiques.require(result.historique_id)
        assert entry.event_id == event.id
        assert entry.impact == Impact.LOW

    @pytest.mark.asyncio
    async def test_b_suspicious_document(self, container, scoring, pdf_document):
        scoring.risk_score = 0.62
        result = await container.orchestrator.process_document(pdf_document, {"assure_id": "ASS-2"})

        assert result.status == ProcessingStatus.SUCCESS
        assert len(result.alerts_generated) == 1
        alert = await container.alerts.require(result.alerts_generated[0])
        assert alert.severity == AlertSeverity.MEDIUM
        entry = await container.historiques.require(result.historique_id)
        assert entry.category == HistoriqueCategory.FRAUDE
        assert entry.impact == Impact.HIGH
        assert entry.related_entities.alerte_ids == [alert.id]

        qualified = await container.qualification.qualify(alert.id, Qualification.FALSE_POSITIVE)
        assert qualified.alert.impacts_risk is False
        assert await container.ledger.get_for_person("ASS-2") is None

    @pytest.mark.asyncio
    async def test_c_confirmed_fraud(self, container, scoring, image_document):
        scoring.risk_score = 0.93
        scoring.decision = "reject"
        result = await container.orchestrator.process_document(image_document, {"assure_id": "ASS-3"})

        alert = await container.alerts.require(result.alerts_generated[0])
        assert alert.severity == AlertSeverity.CRITICAL
        assert alert.metadata.tampering_overlay_url is not None

        qualified = await container.qualification.qualify(alert.id, Qualification.FRAUD_CONFIRMED, qualified_by="agent")
        assert qualified.risk_impact.new_level == RiskLevel.VERY_HIGH
        assert qualified.risk_impact.new_score == 75.0

        overview = await container.insights.person_overview("ASS-3")
        assert overview["summary"]["confirmed_frauds"] == 1
        assert overview["summary"]["risk_level"] == RiskLevel.VERY_HIGH

    @pytest.mark.asyncio
    async def test_d_anonymous_upload_reconciled(self, container, scoring, pdf_document):
        scoring.risk_score = 0.88
        result = await container.orchestrator.process_document(pdf_document)
        alert_id = result.alerts_generated[0]
        entry = await container.historiques.require(result.historique_id)
        assert entry.assure_id == UNKNOWN_ASSURE

        qualified = await container.qualification.qualify(alert_id, Qualification.FRAUD_CONFIRMED)
        assert qualified.alert.impacts_risk is False
        assert [a.id for a in await container.qualification.pending_risk_updates()] == [alert_id]

        await container.historiques.identify_person(result.event_id, "ASS-4", identified_by="agent")
        reconciled = await container.qualification.reconcile_event(result.event_id)

        assert reconciled[0].alert.impacts_risk is True
        assert (await container.ledger.get_for_person("ASS-4")).level == RiskLevel.HIGH
        entry = await container.historiques.require(result.historique_id)
        assert entry.assure_id == "ASS-4"
        assert entry.corrections[0].old_value == UNKNOWN_ASSURE

    @pytest.mark.asyncio
    async def test_e_classifier_outage_then_retry(self, container, scoring, pdf_document):
        scoring.status = 503
        failed = await container.orchestrator.process_document(pdf_document, {"assure_id": "ASS-5"})

        assert failed.status == ProcessingStatus.FAILED
        assert failed.failed_step == "analysis"
        assert failed.steps["analysis"] == StepStatus.FAILED
        assert failed.historique_id is None
        pending = await container.orchestrator.pending_events()
        assert [e.id for e in pending] == [failed.event_id]
        assert await container.historiques.list() == []

        scoring.status = 200
        scoring.risk_score = 0.9
        retried = await container.orchestrator.retry(failed.event_id, pdf_document)

        assert retried.status == ProcessingStatus.SUCCESS
        assert retried.event_id == failed.event_id
        assert len(retried.alerts_generated) == 1
        assert await container.orchestrator.pending_events() == []

        again = await container.orchestrator.retry(failed.event_id, pdf_document)
        assert again.steps["historique"] == StepStatus.SKIPPED
        assert again.steps["alert"] == StepStatus.SKIPPED
        assert again.alerts_generated == retried.alerts_generated
        assert len(await container.alerts.list()) == 1


class TestFailureModes:
    @pytest.mark.asyncio
    async def test_verdict_error_fails_analysis(self, container, scoring, pdf_document):
        scoring.body = {"error": "unreadable PDF"}
        result = await container.orchestrator.process_document(pdf_document)
        assert result.status == ProcessingStatus.FAILED
        assert result.failed_step == "analysis"
        assert "unreadable PDF" in result.error
        assert not (await container.events.require(result.event_id)).is_processed

    @pytest.mark.asyncio
    async def test_alert_failure_is_partial(self, container, scoring, pdf_document):
        class BrokenSynthesizer:
            async def synthesize(self, event, historique, verdict, thresholds=None):
                raise ConcurrencyConflict("alert store busy")

        container.orchestrator.synthesizer = BrokenSynthesizer()
        scoring.risk_score = 0.9
        result = await container.orchestrator.process_document(pdf_document)

        assert result.status == ProcessingStatus.PARTIAL
        assert result.failed_step == "alert"
        assert result.steps["historique"] == StepStatus.SUCCESS
        assert result.historique_id is not None
        assert (await container.events.require(result.event_id)).is_processed

    @pytest.mark.asyncio
    async def test_process_event_with_known_verdict(self, container, record_event):
        event = await record_event(assure_id="ASS-6")
        result = await container.orchestrator.process_event(event.id, make_verdict(0.7))
        assert result.status == ProcessingStatus.SUCCESS
        assert result.steps["analysis"] == StepStatus.SKIPPED
        assert len(result.alerts_generated) == 1

        errored = await container.orchestrator.process_event(event.id, make_verdict(0.7, error="bad"))
        assert errored.status == ProcessingStatus.FAILED

    @pytest.mark.asyncio
    async def test_unscored_verdict_is_rejected(self, container, record_event):
        event = await record_event(assure_id="ASS-6")
        unscored = AnalysisVerdict.model_construct(decision="approve", risk_score=None, error=None, key_findings=[])
        result = await container.orchestrator.process_event(event.id, unscored)

        assert result.status == ProcessingStatus.FAILED
        assert result.failed_step == "analysis"
        assert "no risk score" in result.error
        assert result.historique_id is None
        assert await container.historiques.list() == []
        assert [e.id for e in await container.orchestrator.pending_events()] == [event.id]

    @pytest.mark.asyncio
    async def test_unknown_event(self, container, pdf_document):
        with pytest.raises(RecordNotFound):
            await container.orchestrator.retry("EVT-missing", pdf_document)


class TestInsights:
    @pytest.mark.asyncio
    async def test_stats(self, container, scoring):
        for score in (0.1, 0.6, 0.9):
            scoring.risk_score = score
            await container.orchestrator.process_document(
                DocumentUpload(filename=f"doc-{score}.pdf", content=b"%PDF", content_type="application/pdf"),
                {"assure_id": "ASS-7"},
            )
        alerts = await container.alerts.list()
        await container.qualification.qualify(alerts[0].id, Qualification.FRAUD_CONFIRMED)
        await container.qualification.qualify(alerts[1].id, Qualification.FALSE_POSITIVE)

        stats = await container.insights.stats()
        assert stats["events"] == {"total": 3, "processed": 3, "pending": 0}
        assert stats["alerts"]["total"] == 2
        assert stats["alerts"]["confirmed"] == 1
        assert stats["alerts"]["impacting_risk"] == 1
        assert stats["alert_rate"] == 66.67
        assert stats["confirmation_rate"] == 50.0
        assert stats["risques"]["total"] == 1
