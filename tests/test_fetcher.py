"""Tests for RetryingFetcher against a mocked transport.

Run with: pytest tests/test_fetcher.py -v
"""

import httpx
import pytest

from conftest import RecordingSleep
from eventproxy.services.errors import (
    AuthenticationError,
    FetchError,
    RateLimitError,
    RequestTimeoutError,
    ServiceUnavailableError,
    UpstreamError,
)
from eventproxy.services.fetcher import RetryingFetcher
from eventproxy.services.retry import RetryPolicy

URL = "https://eventbrite.test/v3/organizations/org-42/events/"
PRIMARY = RetryPolicy(max_attempts=3, initial_delay=1.0, timeout=20.0)


def fetcher_for(handler, sleep: RecordingSleep) -> RetryingFetcher:
    return RetryingFetcher(transport=httpx.MockTransport(handler), sleep=sleep)


class TestRetryingFetcher:
    @pytest.mark.asyncio
    async def test_returns_decoded_json(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"events": [{"id": "1"}]})

        sleep = RecordingSleep()
        async with fetcher_for(handler, sleep) as fetcher:
            data = await fetcher.fetch(
                URL,
                params={"order_by": "start_asc"},
                headers={"Authorization": "Bearer abc"},
                policy=PRIMARY,
            )

        assert data == {"events": [{"id": "1"}]}
        assert seen[0].headers["Authorization"] == "Bearer abc"
        assert seen[0].url.params["order_by"] == "start_asc"
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_always_503_exhausts_retries(self):
        calls = 0

        def handler(request):
            nonlocal calls
            calls += 1
            return httpx.Response(503, text="maintenance")

        sleep = RecordingSleep()
        fetcher = fetcher_for(handler, sleep)

        with pytest.raises(ServiceUnavailableError) as exc_info:
            await fetcher.fetch(URL, policy=PRIMARY)

        assert calls == 3
        assert sleep.delays == [1.0, 2.0]
        assert exc_info.value.status == 503
        assert exc_info.value.attempts == 3

    @pytest.mark.asyncio
    async def test_401_fails_immediately(self):
        calls = 0

        def handler(request):
            nonlocal calls
            calls += 1
            return httpx.Response(401, json={"error": "INVALID_AUTH"})

        sleep = RecordingSleep()
        fetcher = fetcher_for(handler, sleep)

        with pytest.raises(AuthenticationError) as exc_info:
            await fetcher.fetch(URL, policy=PRIMARY)

        assert calls == 1
        assert sleep.delays == []
        assert exc_info.value.status == 401

    @pytest.mark.asyncio
    async def test_429_carries_retry_after(self):
        calls = 0

        def handler(request):
            nonlocal calls
            calls += 1
            return httpx.Response(429, headers={"Retry-After": "30"})

        fetcher = fetcher_for(handler, RecordingSleep())

        with pytest.raises(RateLimitError) as exc_info:
            await fetcher.fetch(URL, policy=PRIMARY)

        assert calls == 1
        assert exc_info.value.retry_after == 30.0

    @pytest.mark.asyncio
    async def test_other_4xx_is_fatal(self):
        calls = 0

        def handler(request):
            nonlocal calls
            calls += 1
            return httpx.Response(404, text="missing")

        fetcher = fetcher_for(handler, RecordingSleep())

        with pytest.raises(FetchError) as exc_info:
            await fetcher.fetch(URL, policy=PRIMARY)

        assert calls == 1
        assert exc_info.value.status == 404

    @pytest.mark.asyncio
    async def test_timeout_is_retried_then_succeeds(self):
        calls = 0

        def handler(request):
            nonlocal calls
            calls += 1
            if calls == 1:
                raise httpx.ReadTimeout("timed out", request=request)
            return httpx.Response(200, json={"ticket_classes": []})

        sleep = RecordingSleep()
        fetcher = fetcher_for(handler, sleep)
        policy = RetryPolicy(max_attempts=2, initial_delay=0.5, timeout=10.0)

        data = await fetcher.fetch(URL, policy=policy)

        assert data == {"ticket_classes": []}
        assert calls == 2
        assert sleep.delays == [0.5]

    @pytest.mark.asyncio
    async def test_timeout_on_last_attempt_is_terminal(self):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        sleep = RecordingSleep()
        fetcher = fetcher_for(handler, sleep)
        policy = RetryPolicy(max_attempts=2, initial_delay=0.5, timeout=10.0)

        with pytest.raises(RequestTimeoutError) as exc_info:
            await fetcher.fetch(URL, policy=policy)

        assert exc_info.value.code == "timeout"
        assert exc_info.value.attempts == 2

    @pytest.mark.asyncio
    async def test_connection_errors_are_retried(self):
        calls = 0

        def handler(request):
            nonlocal calls
            calls += 1
            raise httpx.ConnectError("connection refused", request=request)

        fetcher = fetcher_for(handler, RecordingSleep())

        with pytest.raises(FetchError) as exc_info:
            await fetcher.fetch(URL, policy=PRIMARY)

        assert calls == 3
        assert exc_info.value.code == "connection_error"

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        def handler(request):
            return httpx.Response(200, text="<html>oops</html>")

        fetcher = fetcher_for(handler, RecordingSleep())
        policy = RetryPolicy(max_attempts=1, initial_delay=0.1, timeout=5.0)

        with pytest.raises(UpstreamError):
            await fetcher.fetch(URL, policy=policy)
