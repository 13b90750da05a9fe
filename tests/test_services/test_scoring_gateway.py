"""
Tests for the Scoring Gateway.

The classifier and tampering detector are faked with httpx.MockTransport
(see conftest.FakeScoringServices).
"""

import httpx
import pytest
from pydantic import ValidationError

from conftest import CLASSIFIER_URL, OVERLAY_URL, TAMPERING_URL
from fraudflow.errors import (
    CircuitOpenError,
    ClassifierError,
    ClassifierUnavailableError,
    TamperingDetectionError,
)
from fraudflow.schemas.verdict import AnalysisVerdict, Decision, FindingLevel
from fraudflow.services.resilience import CircuitBreaker
from fraudflow.services.scoring_gateway import ScoringGateway, extract_overlay, parse_verdict


@pytest.fixture
def gateway(http_client):
    return ScoringGateway(
        classifier_url=CLASSIFIER_URL,
        tampering_url=TAMPERING_URL,
        retry_attempts=0,
        retry_base_delay=0.0,
        client=http_client,
    )


# ============================================================================
# RESPONSE PARSING
# ============================================================================


class TestParseVerdict:
    def test_plain_body(self):
        verdict = parse_verdict(
            {
                "decision": "review",
                "risk_score": 0.72,
                "key_findings": [{"code": "AMOUNT_MISMATCH", "level": "fail", "message": "Totals differ"}],
            }
        )
        assert verdict.decision == Decision.REVIEW
        assert verdict.score_100 == 72.0
        assert verdict.key_findings[0].level == FindingLevel.FAIL
        assert verdict.has_failing_finding

    def test_wrapped_body(self):
        verdict = parse_verdict({"data": {"decision": "reject", "risk_score": 0.95}})
        assert verdict.decision == Decision.REJECT

    def test_accept_is_read_as_approve(self):
        verdict = parse_verdict({"decision": "Accept", "risk_score": 0.1})
        assert verdict.decision == Decision.APPROVE

    def test_error_field_is_kept(self):
        verdict = parse_verdict({"error": "unreadable file", "document_id": "DOC-9"})
        assert verdict.error == "unreadable file"
        assert verdict.document_id == "DOC-9"

    def test_missing_risk_score(self):
        with pytest.raises(ClassifierError):
            parse_verdict({"decision": "approve"})

    def test_out_of_range_score(self):
        with pytest.raises(ClassifierError):
            parse_verdict({"decision": "approve", "risk_score": 1.7})

    def test_non_object_body(self):
        with pytest.raises(ClassifierError):
            parse_verdict(["approve", 0.2])

    def test_score_100_absorbs_float_noise(self):
        assert parse_verdict({"risk_score": 0.85}).score_100 == 85.0

    def test_null_risk_score(self):
        with pytest.raises(ClassifierError):
            parse_verdict({"decision": "approve", "risk_score": None})


class TestVerdictModel:
    def test_score_is_required(self):
        with pytest.raises(ValidationError):
            AnalysisVerdict.model_validate({})
        with pytest.raises(ValidationError):
            AnalysisVerdict(decision="approve")

    def test_error_verdict_needs_no_score(self):
        verdict = AnalysisVerdict(error="corrupt file")
        assert verdict.risk_score is None
        with pytest.raises(ValueError):
            verdict.score_100


class TestExtractOverlay:
    def test_dict_output(self):
        assert extract_overlay({"data": [{}, {}, {"url": "o.png"}]}) == "o.png"

    def test_string_output(self):
        assert extract_overlay({"data": ["a", "b", "/file/o.png"]}) == "/file/o.png"

    def test_too_few_outputs(self):
        with pytest.raises(TamperingDetectionError):
            extract_overlay({"data": [{"url": "a"}]})

    def test_overlay_without_url(self):
        with pytest.raises(TamperingDetectionError):
            extract_overlay({"data": [{}, {}, {"path": "x"}]})


# ============================================================================
# GATEWAY CALLS
# ============================================================================


class TestAnalyze:
    @pytest.mark.asyncio
    async def test_pdf_skips_tampering(self, gateway, scoring, pdf_document):
        scoring.risk_score = 0.42
        verdict = await gateway.analyze(pdf_document)
        assert verdict.risk_score == 0.42
        assert verdict.tampering_overlay_url is None
        assert scoring.classifier_calls == 1
        assert scoring.tampering_calls == 0

    @pytest.mark.asyncio
    async def test_image_gets_overlay(self, gateway, scoring, image_document):
        verdict = await gateway.analyze(image_document)
        assert verdict.tampering_overlay_url == OVERLAY_URL
        assert scoring.tampering_calls == 1

    @pytest.mark.asyncio
    async def test_tampering_failure_is_not_fatal(self, gateway, scoring, image_document):
        scoring.tampering_status = 500
        scoring.risk_score = 0.6
        verdict = await gateway.analyze(image_document)
        assert verdict.risk_score == 0.6
        assert verdict.tampering_overlay_url is None

    @pytest.mark.asyncio
    async def test_tampering_disabled(self, http_client, scoring, image_document):
        gateway = ScoringGateway(classifier_url=CLASSIFIER_URL, retry_attempts=0, client=http_client)
        await gateway.analyze(image_document)
        assert scoring.tampering_calls == 0

    @pytest.mark.asyncio
    async def test_server_error_is_unavailable(self, gateway, scoring, pdf_document):
        scoring.status = 503
        with pytest.raises(ClassifierUnavailableError) as exc_info:
            await gateway.analyze(pdf_document)
        assert exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self, http_client, scoring, pdf_document):
        scoring.status = 415
        gateway = ScoringGateway(
            classifier_url=CLASSIFIER_URL, retry_attempts=3, retry_base_delay=0.0, client=http_client
        )
        with pytest.raises(ClassifierError) as exc_info:
            await gateway.analyze(pdf_document)
        assert not exc_info.value.retryable
        assert scoring.classifier_calls == 1

    @pytest.mark.asyncio
    async def test_server_error_is_retried(self, http_client, scoring, pdf_document):
        scoring.status = 502
        gateway = ScoringGateway(
            classifier_url=CLASSIFIER_URL, retry_attempts=2, retry_base_delay=0.0, client=http_client
        )
        with pytest.raises(ClassifierUnavailableError):
            await gateway.analyze(pdf_document)
        assert scoring.classifier_calls == 3

    @pytest.mark.asyncio
    async def test_transport_error(self, pdf_document):
        def unreachable(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(unreachable)) as client:
            gateway = ScoringGateway(classifier_url=CLASSIFIER_URL, retry_attempts=0, client=client)
            with pytest.raises(ClassifierUnavailableError):
                await gateway.analyze(pdf_document)

    @pytest.mark.asyncio
    async def test_invalid_json(self, pdf_document):
        def garbage(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"<html>oops</html>")

        async with httpx.AsyncClient(transport=httpx.MockTransport(garbage)) as client:
            gateway = ScoringGateway(classifier_url=CLASSIFIER_URL, retry_attempts=0, client=client)
            with pytest.raises(ClassifierError):
                await gateway.analyze(pdf_document)

    @pytest.mark.asyncio
    async def test_breaker_opens_on_repeated_outage(self, http_client, scoring, pdf_document):
        scoring.status = 500
        gateway = ScoringGateway(
            classifier_url=CLASSIFIER_URL,
            retry_attempts=0,
            client=http_client,
            breaker=CircuitBreaker(
                "classifier-test",
                failure_threshold=2,
                recovery_timeout=60.0,
                count_if=lambda exc: getattr(exc, "retryable", False),
            ),
        )
        for _ in range(2):
            with pytest.raises(ClassifierUnavailableError):
                await gateway.analyze(pdf_document)
        with pytest.raises(CircuitOpenError):
            await gateway.analyze(pdf_document)
        assert scoring.classifier_calls == 2

    @pytest.mark.asyncio
    async def test_from_settings(self, app_settings, http_client):
        gateway = ScoringGateway.from_settings(app_settings, client=http_client)
        assert gateway.classifier_url == CLASSIFIER_URL
        assert gateway.tampering_url == TAMPERING_URL
        assert gateway.retry_attempts == 0
        await gateway.aclose()
        assert not http_client.is_closed
