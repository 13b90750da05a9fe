"""
FraudFlow exception hierarchy.

Component outcomes that are part of normal operation (already processed,
below threshold, unlinked person...) are reported as StepResult values.
Exceptions are reserved for broken inputs, missing records, conflicting
writes and unavailable collaborators.

Each exception carries the HTTP status the API layer maps it to.
"""


class FraudFlowError(Exception):
    """Base class for all FraudFlow errors."""

    status_code: int = 500

    def __init__(self, message: str = "", **context):
        super().__init__(message)
        self.message = message
        self.context = context


# ── Configuration ──────────────────────────────────────────────────────


class ConfigurationError(FraudFlowError):
    """Settings failed validation at load time."""


# ── Input validation ───────────────────────────────────────────────────


class ValidationFailure(FraudFlowError):
    status_code = 422


class VerdictError(ValidationFailure):
    """The analysis verdict carries an error and cannot be scored."""


# ── Records ────────────────────────────────────────────────────────────


class RecordNotFound(FraudFlowError):
    status_code = 404

    def __init__(self, collection: str, record_id: str):
        super().__init__(f"{collection} '{record_id}' not found", collection=collection, record_id=record_id)
        self.collection = collection
        self.record_id = record_id


class ConsistencyViolation(FraudFlowError):
    """Records reference each other in a way the workflow forbids."""

    status_code = 409


class InvalidTransition(FraudFlowError):
    """A status change that the record's state machine does not allow."""

    status_code = 409


class ConcurrencyConflict(FraudFlowError):
    """Optimistic version check failed: someone else wrote first."""

    status_code = 409


# ── External services ──────────────────────────────────────────────────


class ExternalServiceError(FraudFlowError):
    status_code = 502
    retryable: bool = False

    def __init__(self, message: str = "", retryable: bool | None = None, **context):
        super().__init__(message, **context)
        if retryable is not None:
            self.retryable = retryable


class ClassifierError(ExternalServiceError):
    """The document classifier returned an error or an unusable payload."""


class ClassifierUnavailableError(ClassifierError):
    """Transport failure or 5xx from the classifier. Worth retrying."""

    status_code = 503
    retryable = True


class TamperingDetectionError(ExternalServiceError):
    """The tampering detector response could not be used."""


class CircuitOpenError(ExternalServiceError):
    """Raised when a circuit breaker is open and rejects a call."""

    status_code = 503
