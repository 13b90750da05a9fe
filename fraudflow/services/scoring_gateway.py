"""
Scoring Gateway - HTTP clients for the document classifier and the
tampering detector.

Both are external services. The classifier is mandatory: if it fails, the
analysis fails. The tampering detector only adds a heatmap overlay for
images; its failures and timeouts are logged and the verdict is returned
without an overlay.

Classifier:  POST {classifier_url}/analyze  (multipart "file")
    → {"decision": "approve|review|reject", "risk_score": 0..1, ...}
      possibly wrapped as {"data": {...}}; "accept" is read as "approve".
Tampering:   POST {tampering_url}  (multipart "image", form "quality")
    → {"data": [original, mask, overlay, ...]}, overlay = {"url": ...} or str
"""

import asyncio
from typing import Any, Optional

import httpx
import structlog
from pydantic import ValidationError

from fraudflow.config import Settings
from fraudflow.errors import (
    ClassifierError,
    ClassifierUnavailableError,
    ExternalServiceError,
    TamperingDetectionError,
)
from fraudflow.schemas.verdict import AnalysisVerdict, DocumentUpload
from fraudflow.services.resilience import CircuitBreaker, is_transient, retry_with_backoff

logger = structlog.get_logger(__name__)


def parse_verdict(body: Any) -> AnalysisVerdict:
    """Map a raw classifier response to an AnalysisVerdict."""
    if isinstance(body, dict) and isinstance(body.get("data"), dict):
        body = body["data"]
    if not isinstance(body, dict):
        raise ClassifierError("Classifier response is not a JSON object")

    if body.get("error"):
        # Keep the error on the verdict; downstream refuses to score it.
        return AnalysisVerdict(error=str(body["error"]), document_id=body.get("document_id"))

    if "risk_score" not in body:
        raise ClassifierError("Classifier response has no risk_score")

    try:
        return AnalysisVerdict(
            decision=body.get("decision"),
            risk_score=body["risk_score"],
            confidence=body.get("confidence"),
            document_id=body.get("document_id"),
            document_info=body.get("document_info") or {},
            key_findings=body.get("key_findings") or [],
        )
    except ValidationError as exc:
        raise ClassifierError(f"Malformed classifier response: {exc.error_count()} error(s)") from exc


def extract_overlay(body: Any) -> str:
    """Pick the overlay image (3rd output) out of a tampering response."""
    data = body.get("data") if isinstance(body, dict) else None
    if not isinstance(data, list) or len(data) < 3:
        raise TamperingDetectionError("Tampering response has fewer than 3 outputs")
    overlay = data[2]
    if isinstance(overlay, dict) and overlay.get("url"):
        return str(overlay["url"])
    if isinstance(overlay, str) and overlay:
        return overlay
    raise TamperingDetectionError("Tampering overlay has no usable URL")


class ScoringGateway:
    """
    Runs the classifier and the tampering detector concurrently.

    The HTTP client can be injected (tests pass one built on
    httpx.MockTransport); otherwise the gateway owns one.
    """

    def __init__(
        self,
        classifier_url: str,
        tampering_url: str = "",
        classifier_timeout: float = 60.0,
        tampering_timeout: float = 30.0,
        tampering_quality: int = 90,
        retry_attempts: int = 2,
        retry_base_delay: float = 1.0,
        client: Optional[httpx.AsyncClient] = None,
        breaker: Optional[CircuitBreaker] = None,
    ):
        self.classifier_url = classifier_url.rstrip("/")
        self.tampering_url = tampering_url
        self.classifier_timeout = classifier_timeout
        self.tampering_timeout = tampering_timeout
        self.tampering_quality = tampering_quality
        self.retry_attempts = retry_attempts
        self.retry_base_delay = retry_base_delay
        self._client = client or httpx.AsyncClient()
        self._owns_client = client is None
        self.breaker = breaker or CircuitBreaker(
            name="classifier",
            failure_threshold=5,
            recovery_timeout=30.0,
            count_if=is_transient,
        )

    @classmethod
    def from_settings(cls, settings: Settings, client: Optional[httpx.AsyncClient] = None) -> "ScoringGateway":
        return cls(
            classifier_url=settings.classifier_url,
            tampering_url=settings.tampering_url,
            classifier_timeout=settings.classifier_timeout_seconds,
            tampering_timeout=settings.tampering_timeout_seconds,
            tampering_quality=settings.tampering_quality,
            retry_attempts=settings.classifier_retry_attempts,
            retry_base_delay=settings.classifier_retry_base_delay,
            client=client,
        )

    async def analyze(self, document: DocumentUpload) -> AnalysisVerdict:
        """
        Score a document.

        Raises ClassifierError (or CircuitOpenError) when the classifier
        cannot produce a verdict. Cancelling this call cancels both requests.
        """
        tampering_task: Optional[asyncio.Task] = None
        if self.tampering_url and document.is_image:
            tampering_task = asyncio.create_task(self._detect_tampering(document))

        try:
            verdict = await self.breaker.call(self._classify_with_retry, document)
        except BaseException:
            if tampering_task is not None:
                tampering_task.cancel()
            raise

        overlay = await tampering_task if tampering_task is not None else None
        if overlay:
            verdict = verdict.model_copy(update={"tampering_overlay_url": overlay})

        logger.info(
            "document_scored",
            filename=document.filename,
            decision=verdict.decision,
            risk_score=verdict.risk_score,
            findings=len(verdict.key_findings),
            tampering_overlay=bool(overlay),
        )
        return verdict

    async def _classify_with_retry(self, document: DocumentUpload) -> AnalysisVerdict:
        return await retry_with_backoff(
            lambda: self._classify(document),
            max_retries=self.retry_attempts,
            base_delay=self.retry_base_delay,
            jitter=0.0 if self.retry_base_delay == 0 else 0.5,
            retry_on=(ExternalServiceError,),
            retry_if=is_transient,
            operation_name="classifier_analyze",
        )

    async def _classify(self, document: DocumentUpload) -> AnalysisVerdict:
        form: dict[str, str] = {}
        if document.document_type:
            form["document_type"] = document.document_type

        try:
            response = await self._client.post(
                f"{self.classifier_url}/analyze",
                files={"file": (document.filename, document.content, document.content_type)},
                data=form,
                timeout=self.classifier_timeout,
            )
        except httpx.TransportError as exc:
            raise ClassifierUnavailableError(f"Classifier unreachable: {exc!r}") from exc

        if response.status_code >= 500:
            raise ClassifierUnavailableError(
                f"Classifier returned {response.status_code}", status=response.status_code
            )
        if response.status_code >= 400:
            raise ClassifierError(
                f"Classifier rejected the document ({response.status_code})", status=response.status_code
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise ClassifierError("Classifier returned invalid JSON") from exc
        return parse_verdict(body)

    async def _detect_tampering(self, document: DocumentUpload) -> Optional[str]:
        try:
            response = await asyncio.wait_for(
                self._client.post(
                    self.tampering_url,
                    files={"image": (document.filename, document.content, document.content_type)},
                    data={"quality": str(self.tampering_quality)},
                    timeout=self.tampering_timeout,
                ),
                timeout=self.tampering_timeout,
            )
            response.raise_for_status()
            return extract_overlay(response.json())
        except (asyncio.TimeoutError, httpx.HTTPError, ValueError, TamperingDetectionError) as exc:
            logger.warning(
                "tampering_detection_failed",
                filename=document.filename,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return None

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
