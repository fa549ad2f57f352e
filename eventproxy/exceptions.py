"""
Error handlers mapping service errors to structured HTTP responses
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from loguru import logger

from eventproxy.services.errors import (
    AuthenticationError,
    ConfigurationError,
    FetchError,
    RateLimitError,
    RequestTimeoutError,
    ServiceError,
    ServiceUnavailableError,
    ValidationError,
)
from eventproxy.services.retry import ErrorKind, classify_error


def describe_error(error: ServiceError) -> tuple[int, dict]:
    """Status code and JSON body for a service error."""
    if isinstance(error, ValidationError):
        return status.HTTP_400_BAD_REQUEST, {
            "error": "validation",
            "field": error.field,
            "message": error.message,
        }

    if isinstance(error, ConfigurationError):
        return status.HTTP_500_INTERNAL_SERVER_ERROR, {
            "error": "configuration",
            "message": "Upstream API is not configured",
        }

    if isinstance(error, AuthenticationError):
        return status.HTTP_502_BAD_GATEWAY, {
            "error": "auth",
            "message": "Upstream rejected the configured credentials",
        }

    if isinstance(error, RateLimitError):
        body = {
            "error": "rate_limit",
            "message": "Upstream rate limit reached, try again later",
        }
        if error.retry_after is not None:
            body["retryAfter"] = error.retry_after
        return status.HTTP_429_TOO_MANY_REQUESTS, body

    if isinstance(error, ServiceUnavailableError):
        return status.HTTP_503_SERVICE_UNAVAILABLE, {
            "error": "upstream_unavailable",
            "message": (
                f"Upstream unavailable (HTTP {error.status}), "
                f"gave up after {error.attempts} attempts"
            ),
        }

    if isinstance(error, RequestTimeoutError):
        return status.HTTP_504_GATEWAY_TIMEOUT, {
            "error": "timeout",
            "message": f"Upstream timed out, gave up after {error.attempts} attempts",
        }

    if isinstance(error, FetchError):
        if classify_error(error) is ErrorKind.RETRYABLE:
            message = f"Upstream request failed after {error.attempts} attempts"
        else:
            message = "Upstream request failed"
        return status.HTTP_502_BAD_GATEWAY, {"error": "unknown", "message": message}

    return status.HTTP_500_INTERNAL_SERVER_ERROR, {
        "error": "unknown",
        "message": "Request failed",
    }


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    status_code, body = describe_error(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    else:
        logger.warning(f"{request.method} {request.url.path} rejected: {exc}")

    headers = None
    if isinstance(exc, RateLimitError) and exc.retry_after is not None:
        headers = {"Retry-After": str(int(exc.retry_after))}
    return JSONResponse(status_code=status_code, content=body, headers=headers)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "internal", "message": "Internal server error"},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
