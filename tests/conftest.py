"""
Test fixtures for FraudFlow tests.

Provides:
- Settings with fast, deterministic external-service config
- A programmable fake classifier / tampering detector (httpx.MockTransport)
- A fully wired Container on a MemoryStore
- An aiosqlite in-memory engine for SqlStore tests
- Event and verdict factories
"""

from typing import Any, Optional

import httpx
import pytest
import pytest_asyncio

from fraudflow.config import Settings, load_settings
from fraudflow.container import Container
from fraudflow.db.engine import build_engine, build_session_factory, init_db
from fraudflow.db.store import MemoryStore
from fraudflow.schemas.alert import Alert
from fraudflow.schemas.common import Priority
from fraudflow.schemas.event import Event, EventCategory, EventType
from fraudflow.schemas.verdict import AnalysisVerdict, DocumentUpload
from fraudflow.services.notifier import Notifier
from fraudflow.services.scoring_gateway import ScoringGateway

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"
CLASSIFIER_URL = "http://classifier.test"
TAMPERING_URL = "http://tampering.test/predict_tampering"
OVERLAY_URL = "http://tampering.test/file/overlay.png"


class FakeScoringServices:
    """
    Stand-in for the classifier and tampering detector.

    Tests set ``risk_score``, ``decision``, ``findings`` or ``status`` before
    triggering an analysis; every request is counted.
    """

    def __init__(self):
        self.risk_score: float = 0.2
        self.decision: str = "approve"
        self.findings: list[dict] = []
        self.status: int = 200
        self.body: Optional[Any] = None
        self.tampering_status: int = 200
        self.classifier_calls = 0
        self.tampering_calls = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == "classifier.test" and request.url.path == "/analyze":
            self.classifier_calls += 1
            if self.status != 200:
                return httpx.Response(self.status, json={"detail": "classifier failure"})
            if self.body is not None:
                return httpx.Response(200, json=self.body)
            return httpx.Response(
                200,
                json={
                    "decision": self.decision,
                    "risk_score": self.risk_score,
                    "confidence": 0.9,
                    "document_id": "DOC-001",
                    "document_info": {"pages": 1},
                    "key_findings": self.findings,
                },
            )
        if request.url.host == "tampering.test":
            self.tampering_calls += 1
            if self.tampering_status != 200:
                return httpx.Response(self.tampering_status)
            return httpx.Response(
                200,
                json={"data": [{"url": "original.png"}, {"url": "mask.png"}, {"url": OVERLAY_URL}]},
            )
        return httpx.Response(404)


@pytest.fixture
def app_settings() -> Settings:
    return load_settings(
        classifier_url=CLASSIFIER_URL,
        tampering_url=TAMPERING_URL,
        classifier_retry_attempts=0,
        classifier_retry_base_delay=0.0,
        tampering_timeout_seconds=2.0,
        max_upload_bytes=64 * 1024,
        store_backend="memory",
        log_format="console",
    )


@pytest.fixture
def scoring() -> FakeScoringServices:
    return FakeScoringServices()


@pytest_asyncio.fixture
async def http_client(scoring):
    client = httpx.AsyncClient(transport=httpx.MockTransport(scoring.handler))
    yield client
    await client.aclose()


@pytest.fixture
def notifier() -> Notifier:
    return Notifier()


@pytest.fixture
def container(app_settings, http_client, notifier) -> Container:
    """A fully wired container on a MemoryStore."""
    return Container(
        app_settings,
        store=MemoryStore(notifier),
        notifier=notifier,
        gateway=ScoringGateway.from_settings(app_settings, client=http_client),
    )


@pytest_asyncio.fixture
async def sql_engine():
    engine = build_engine(TEST_DB_URL)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def sql_session_factory(sql_engine):
    return build_session_factory(sql_engine)


# ── Factories ────────────────────────────────────────────────────────────


@pytest.fixture
def record_event(container):
    """Record an event in the container's event log."""

    async def _record(**overrides) -> Event:
        values: dict[str, Any] = {
            "type": EventType.DOCUMENT_UPLOAD,
            "category": EventCategory.OPERATIONNEL,
            "priority": Priority.MEDIUM,
            "data": {"filename": "facture.pdf", "amount": 1200.0},
        }
        values.update(overrides)
        return await container.events.record(Event(**values))

    return _record


def make_verdict(
    risk_score: float,
    decision: str = "review",
    findings: Optional[list[dict]] = None,
    error: Optional[str] = None,
) -> AnalysisVerdict:
    return AnalysisVerdict(
        decision=decision,
        risk_score=risk_score,
        confidence=0.8,
        document_id="DOC-001",
        key_findings=findings or [],
        error=error,
    )


@pytest.fixture
def verdict():
    return make_verdict


@pytest.fixture
def pdf_document() -> DocumentUpload:
    return DocumentUpload(
        filename="facture.pdf",
        content=b"%PDF-1.4 fake",
        content_type="application/pdf",
        document_type="invoice",
    )


@pytest.fixture
def image_document() -> DocumentUpload:
    return DocumentUpload(
        filename="constat.jpg",
        content=b"\xff\xd8\xff fake jpeg",
        content_type="image/jpeg",
    )


@pytest.fixture
def raise_alert(container, record_event):
    """Record an event, project it and synthesize its alert."""

    async def _raise(
        risk_score: float = 0.9,
        decision: str = "review",
        findings: Optional[list[dict]] = None,
        **event_overrides,
    ) -> Alert:
        event = await record_event(**event_overrides)
        historique = (await container.historiques.project(event, risk_score=risk_score)).record
        result = await container.synthesizer.synthesize(
            event, historique, make_verdict(risk_score, decision, findings)
        )
        assert result.record is not None, f"no alert at risk score {risk_score}"
        return result.record

    return _raise
