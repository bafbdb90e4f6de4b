"""
Error taxonomy shared by every service.

Each error carries a machine code and an HTTP status. Services render them
as ``{"error": {"code", "message", "details"}}`` and the resilient client
turns that body back into the same exception class on the calling side.
"""

from typing import Any


class ServiceError(Exception):
    """Base class for all domain and transport errors."""

    code = "SERVICE_ERROR"
    status_code = 500
    retryable = False

    def __init__(self, message: str, details: dict[str, Any] | None = None, code: str | None = None):
        self.message = message
        self.details = details or {}
        if code:
            self.code = code
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


# ── Semantic errors (never retried) ──────────────


class NotFound(ServiceError):
    code = "NOT_FOUND"
    status_code = 404


class ValidationError(ServiceError):
    code = "VALIDATION_ERROR"
    status_code = 422


class InvalidTransition(ServiceError):
    code = "INVALID_TRANSITION"
    status_code = 409


class ConcurrencyConflict(ServiceError):
    """Another writer appended to the same aggregate first."""

    code = "CONCURRENCY_CONFLICT"
    status_code = 409


class UnknownResource(ServiceError):
    code = "UNKNOWN_RESOURCE"
    status_code = 404


# ── Availability errors ──────────────────────────


class Timeout(ServiceError):
    code = "TIMEOUT"
    status_code = 504
    retryable = True


class Transient(ServiceError):
    """Transport failure or 5xx from a peer; safe to retry."""

    code = "TRANSIENT_FAILURE"
    status_code = 502
    retryable = True


class CircuitOpen(ServiceError):
    code = "CIRCUIT_OPEN"
    status_code = 503

    def __init__(self, service: str):
        self.service = service
        super().__init__(f"Circuit breaker is open for {service}", {"service": service})


_BY_CODE: dict[str, type[ServiceError]] = {
    cls.code: cls
    for cls in (
        NotFound,
        ValidationError,
        InvalidTransition,
        ConcurrencyConflict,
        UnknownResource,
        Timeout,
        Transient,
    )
}

# Unknown codes (e.g. INSUFFICIENT_STOCK) fall back to the class for their status.
_BY_STATUS: dict[int, type[ServiceError]] = {
    404: NotFound,
    409: ConcurrencyConflict,
    422: ValidationError,
    504: Timeout,
}

# Failures that mean the peer did not answer; these may trigger a fallback.
AVAILABILITY_ERRORS = (CircuitOpen, Timeout, Transient)


def from_response(status_code: int, body: Any) -> ServiceError:
    """Rebuild a ServiceError from a peer's error response."""
    error = body.get("error") if isinstance(body, dict) else None
    if not isinstance(error, dict):
        error = {"message": str(body)}
    code = error.get("code")
    message = error.get("message") or f"HTTP {status_code}"
    details = error.get("details") or {}

    if code == CircuitOpen.code:
        return CircuitOpen(details.get("service", "unknown"))
    cls = _BY_CODE.get(code)
    if cls is None:
        if status_code >= 500:
            cls = Transient
        else:
            cls = _BY_STATUS.get(status_code, ValidationError)
    return cls(message, details, code=code)
