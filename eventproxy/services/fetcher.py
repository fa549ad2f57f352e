"""
RetryingFetcher - async HTTP GET with per-attempt timeout, failure
classification and exponential-backoff retries.

The fetcher holds no per-request state, so independent calls may run
concurrently on the same instance.
"""

import asyncio
from typing import Any, Awaitable, Callable

import httpx
from loguru import logger

from eventproxy.services.errors import (
    AuthenticationError,
    FetchError,
    RateLimitError,
    RequestTimeoutError,
    ServiceUnavailableError,
    UpstreamError,
)
from eventproxy.services.retry import (
    RETRYABLE_STATUS_CODES,
    RetryPolicy,
    retry_with_backoff,
)


def _parse_retry_after(value: str | None) -> float | None:
    """Parse a Retry-After header given in seconds."""
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        # HTTP-date form is not worth supporting here
        return None


class RetryingFetcher:
    """
    HTTP GET client with bounded retries.

    Usage:
        fetcher = RetryingFetcher()

        data = await fetcher.fetch(
            "https://www.eventbriteapi.com/v3/events/123/ticket_classes/",
            headers={"Authorization": f"Bearer {token}"},
            policy=RetryPolicy(max_attempts=2, initial_delay=0.5, timeout=10.0),
        )
    """

    def __init__(
        self,
        default_timeout: float = 20.0,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._default_timeout = default_timeout
        self._headers = dict(headers or {})
        self._transport = transport
        self._sleep = sleep

        # HTTP client (lazy initialization)
        self._http_client: httpx.AsyncClient | None = None

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._default_timeout),
                headers=self._headers,
                follow_redirects=True,
                transport=self._transport,
            )
        return self._http_client

    async def fetch(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        policy: RetryPolicy | None = None,
        service_id: str = "upstream",
    ) -> dict[str, Any]:
        """
        GET ``url`` and decode the JSON body, retrying per ``policy``.

        Args:
            url: Full URL to request
            params: Query parameters
            headers: Additional headers for this call
            policy: Retry budget and per-attempt timeout
            service_id: Name used in errors and logs

        Returns:
            Decoded JSON object

        Raises:
            FetchError: Last failure once retries are exhausted, or the first
                fatal failure (401, 429, other 4xx)
        """
        policy = policy or RetryPolicy(timeout=self._default_timeout)

        async def attempt() -> dict[str, Any]:
            return await self._execute_request(
                url=url,
                params=params,
                headers=headers or {},
                timeout=policy.timeout,
                service_id=service_id,
            )

        return await retry_with_backoff(
            attempt,
            max_attempts=policy.max_attempts,
            initial_delay=policy.initial_delay,
            sleep=self._sleep,
            description=f"GET {service_id}",
        )

    async def _execute_request(
        self,
        url: str,
        params: dict[str, Any] | None,
        headers: dict[str, str],
        timeout: float,
        service_id: str,
    ) -> dict[str, Any]:
        """Execute a single attempt and translate failures to FetchError."""
        client = await self._get_http_client()

        try:
            response = await client.get(
                url,
                params=params,
                headers=headers,
                timeout=timeout,
            )
            response.raise_for_status()

        except httpx.TimeoutException as e:
            raise RequestTimeoutError(service_id, timeout) from e

        except httpx.HTTPStatusError as e:
            raise self._status_error(e.response, service_id) from e

        except httpx.RequestError as e:
            raise FetchError(
                f"Connection to service '{service_id}' failed: {e!r}",
                service_id=service_id,
                code="connection_error",
            ) from e

        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamError(
                f"Service '{service_id}' returned a non-JSON body",
                service_id=service_id,
            ) from e

        if not isinstance(data, dict):
            raise UpstreamError(
                f"Service '{service_id}' returned {type(data).__name__}, expected an object",
                service_id=service_id,
            )
        return data

    @staticmethod
    def _status_error(response: httpx.Response, service_id: str) -> FetchError:
        status = response.status_code
        if status in (401, 403):
            return AuthenticationError(service_id, status)
        if status == 429:
            return RateLimitError(
                service_id, _parse_retry_after(response.headers.get("Retry-After"))
            )
        if status in RETRYABLE_STATUS_CODES:
            return ServiceUnavailableError(service_id, status)
        return FetchError(
            f"HTTP {status}: {response.text[:200]}",
            service_id=service_id,
            status=status,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
        logger.debug("RetryingFetcher closed")

    async def __aenter__(self) -> "RetryingFetcher":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()
