"""
Service layer exceptions.
"""


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(self, message: str, service_id: str | None = None):
        self.service_id = service_id
        self.message = message
        super().__init__(message)


class ValidationError(ServiceError):
    """Request parameters are invalid; raised before any I/O."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(message)


class ConfigurationError(ServiceError):
    """Required upstream configuration (credential, organization) is missing."""

    pass


class FetchError(ServiceError):
    """
    An upstream request failed.

    ``status`` is the HTTP status when a response was received, ``code`` a
    short machine-readable reason otherwise. ``attempts`` is filled in by the
    retry utility once the error becomes terminal.
    """

    def __init__(
        self,
        message: str,
        service_id: str | None = None,
        status: int | None = None,
        code: str | None = None,
    ):
        self.status = status
        self.code = code
        self.attempts = 1
        super().__init__(message, service_id=service_id)


class RequestTimeoutError(FetchError):
    """Request timed out."""

    def __init__(self, service_id: str, timeout: float):
        self.timeout = timeout
        super().__init__(
            f"Request to service '{service_id}' timed out after {timeout}s",
            service_id=service_id,
            code="timeout",
        )


class AuthenticationError(FetchError):
    """Upstream rejected our credentials."""

    def __init__(self, service_id: str, status: int = 401):
        super().__init__(
            f"Service '{service_id}' rejected the configured credentials (HTTP {status})",
            service_id=service_id,
            status=status,
            code="auth",
        )


class RateLimitError(FetchError):
    """Rate limit exceeded."""

    def __init__(self, service_id: str, retry_after: float | None = None):
        self.retry_after = retry_after
        msg = f"Rate limit exceeded for service '{service_id}'"
        if retry_after:
            msg += f", retry after {retry_after}s"
        super().__init__(msg, service_id=service_id, status=429, code="rate_limit")


class ServiceUnavailableError(FetchError):
    """Service is temporarily unavailable (502/503/504)."""

    def __init__(self, service_id: str, status: int, detail: str = ""):
        msg = f"Service '{service_id}' unavailable (HTTP {status})"
        if detail:
            msg += f": {detail}"
        super().__init__(msg, service_id=service_id, status=status, code="unavailable")


class UpstreamError(FetchError):
    """Upstream answered with a payload we cannot use."""

    def __init__(self, message: str, service_id: str | None = None):
        super().__init__(message, service_id=service_id, code="invalid_payload")


class EnrichmentError(ServiceError):
    """Ticket lookup for a single event failed. Never surfaced to callers."""

    def __init__(self, event_id: str, reason: str, message: str):
        self.event_id = event_id
        self.reason = reason
        super().__init__(message)
