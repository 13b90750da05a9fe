"""
Workflow Orchestrator - upload → analysis → event → historique → alert.

A best-effort sequential saga; every step reports its own outcome:
1. Record the Event (unprocessed). It is durable before anything else runs.
2. Score the document (classifier + tampering detector, concurrently).
   Classifier failure → status=failed, failed_step=analysis; the Event
   stays pending and can be retried.
3. Project the Historique entry. Once started it is shielded from
   cancellation so the entry and the processed stamp land together.
4. Synthesize an Alert if the score crosses the thresholds.

A failure after the projection makes the result ``partial``. Every step is
idempotent, so ``retry`` simply re-runs the pipeline for the same Event.
"""

import asyncio
import time
from typing import Any, Optional

import structlog

from fraudflow.alerting.synthesizer import AlertSynthesizer
from fraudflow.errors import FraudFlowError
from fraudflow.schemas.common import Priority
from fraudflow.schemas.event import Channel, Event, EventCategory, EventSource, EventType
from fraudflow.schemas.results import ProcessingResult, ProcessingStatus, StepStatus
from fraudflow.schemas.verdict import AnalysisVerdict, DocumentUpload
from fraudflow.services.scoring_gateway import ScoringGateway
from fraudflow.workflow.events import EventLog
from fraudflow.workflow.historique import HistoriqueProjector

logger = structlog.get_logger(__name__)

# Upload metadata keys copied into the event payload.
DOCUMENT_DATA_KEYS = ("sinisterNumber", "policyNumber", "amount", "description", "documentType")


def event_from_upload(document: DocumentUpload, metadata: Optional[dict[str, Any]] = None) -> Event:
    metadata = dict(metadata or {})
    data: dict[str, Any] = {
        "filename": document.filename,
        "contentType": document.content_type,
        "size": len(document.content),
    }
    if document.document_type:
        data["documentType"] = document.document_type
    for key in DOCUMENT_DATA_KEYS:
        if key in metadata:
            data[key] = metadata.pop(key)

    return Event(
        type=EventType.DOCUMENT_UPLOAD,
        category=EventCategory.OPERATIONNEL,
        priority=Priority.MEDIUM,
        source=EventSource.CLIENT,
        channel=Channel(metadata.pop("channel", Channel.UPLOAD)),
        assure_id=metadata.pop("assure_id", None) or None,
        data=data,
        metadata=metadata,
    )


def _verdict_problem(verdict: AnalysisVerdict) -> Optional[str]:
    if verdict.error:
        return f"Verdict error: {verdict.error}"
    if verdict.risk_score is None:
        return "Verdict has no risk score"
    return None


class WorkflowOrchestrator:
    def __init__(
        self,
        events: EventLog,
        historiques: HistoriqueProjector,
        synthesizer: AlertSynthesizer,
        gateway: ScoringGateway,
    ):
        self.events = events
        self.historiques = historiques
        self.synthesizer = synthesizer
        self.gateway = gateway

    async def process_document(
        self, document: DocumentUpload, metadata: Optional[dict[str, Any]] = None
    ) -> ProcessingResult:
        started = time.perf_counter()
        event = await self.events.record(event_from_upload(document, metadata))
        result = ProcessingResult(event_id=event.id, steps={"event": StepStatus.SUCCESS})
        return await self._analyze_and_project(event, document, result, started)

    async def process_event(self, event_id: str, verdict: AnalysisVerdict) -> ProcessingResult:
        """Run projection and alerting for an existing event with a known verdict."""
        started = time.perf_counter()
        event = await self.events.require(event_id)
        result = ProcessingResult(event_id=event.id, steps={"event": StepStatus.SKIPPED})
        problem = _verdict_problem(verdict)
        if problem:
            logger.error("workflow_verdict_rejected", event_id=event.id, error=problem)
            return self._finish(result, started, ProcessingStatus.FAILED, "analysis", problem)
        result.steps["analysis"] = StepStatus.SKIPPED
        return await self._project_and_alert(event, verdict, result, started)

    async def retry(self, event_id: str, document: DocumentUpload) -> ProcessingResult:
        """Re-run the whole pipeline for an event; already-done steps are skipped."""
        started = time.perf_counter()
        event = await self.events.require(event_id)
        result = ProcessingResult(event_id=event.id, steps={"event": StepStatus.SKIPPED})
        logger.info("workflow_retry", event_id=event.id, processed=event.is_processed)
        return await self._analyze_and_project(event, document, result, started)

    async def pending_events(self) -> list[Event]:
        return await self.events.pending()

    # ── Steps ──────────────────────────────────────────────────────────

    async def _analyze_and_project(
        self, event: Event, document: DocumentUpload, result: ProcessingResult, started: float
    ) -> ProcessingResult:
        try:
            verdict = await self.gateway.analyze(document)
        except FraudFlowError as exc:
            logger.error("workflow_analysis_failed", event_id=event.id, error=str(exc))
            return self._finish(result, started, ProcessingStatus.FAILED, "analysis", str(exc))
        except asyncio.CancelledError:
            logger.warning("workflow_analysis_cancelled", event_id=event.id)
            raise

        problem = _verdict_problem(verdict)
        if problem:
            logger.error("workflow_analysis_failed", event_id=event.id, error=problem)
            return self._finish(result, started, ProcessingStatus.FAILED, "analysis", problem)
        result.steps["analysis"] = StepStatus.SUCCESS
        return await self._project_and_alert(event, verdict, result, started)

    async def _project_and_alert(
        self, event: Event, verdict: AnalysisVerdict, result: ProcessingResult, started: float
    ) -> ProcessingResult:
        try:
            projection = await asyncio.shield(self.historiques.project(event, risk_score=verdict.risk_score))
        except FraudFlowError as exc:
            logger.error("workflow_projection_failed", event_id=event.id, error=str(exc))
            return self._finish(result, started, ProcessingStatus.FAILED, "historique", str(exc))

        result.steps["historique"] = projection.status
        entry = projection.record
        if entry is None:
            return self._finish(
                result, started, ProcessingStatus.FAILED, "historique",
                f"Event {event.id} is processed but has no historique entry",
            )
        result.historique_id = entry.id

        try:
            current = await self.events.require(event.id)
            alert_step = await self.synthesizer.synthesize(current, entry, verdict)
        except FraudFlowError as exc:
            logger.error("workflow_alert_failed", event_id=event.id, error=str(exc))
            result.steps["alert"] = StepStatus.FAILED
            return self._finish(result, started, ProcessingStatus.PARTIAL, "alert", str(exc))

        result.steps["alert"] = alert_step.status
        if alert_step.record is not None:
            result.alerts_generated.append(alert_step.record.id)

        return self._finish(result, started, ProcessingStatus.SUCCESS)

    def _finish(
        self,
        result: ProcessingResult,
        started: float,
        status: ProcessingStatus,
        failed_step: Optional[str] = None,
        error: Optional[str] = None,
    ) -> ProcessingResult:
        result.status = status
        result.failed_step = failed_step
        result.error = error
        if failed_step and failed_step not in result.steps:
            result.steps[failed_step] = StepStatus.FAILED
        result.processing_time_ms = round((time.perf_counter() - started) * 1000, 2)
        logger.info(
            "workflow_processed",
            event_id=result.event_id,
            status=status,
            failed_step=failed_step,
            alerts=len(result.alerts_generated),
            processing_time_ms=result.processing_time_ms,
        )
        return result
