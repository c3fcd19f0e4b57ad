"""Unit tests for the request context deadline handling."""

from __future__ import annotations

import time

import pytest
from urllib3.exceptions import MaxRetryError, NewConnectionError, ReadTimeoutError

from dtinject.errors import DeadlineExceededError
from dtinject.webhook.context import RequestContext


class TestRequestContext:
    """Tests for RequestContext."""

    def test_unbounded_context(self) -> None:
        context = RequestContext.with_timeout(None)

        assert context.remaining() is None
        assert context.expired() is False

    def test_expired_context(self) -> None:
        context = RequestContext(deadline=time.monotonic() - 1)

        assert context.expired() is True

    @pytest.mark.asyncio
    async def test_run_returns_result(self) -> None:
        context = RequestContext.with_timeout(5.0)

        assert await context.run(sorted, [3, 1, 2]) == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_run_after_deadline(self) -> None:
        context = RequestContext(deadline=time.monotonic() - 1)

        with pytest.raises(DeadlineExceededError):
            await context.run(sorted, [1])

    def test_request_timeout(self) -> None:
        assert RequestContext().request_timeout() is None

        timeout = RequestContext.with_timeout(2.0).request_timeout()
        assert timeout is not None
        assert 0 < timeout <= 2.0

        assert RequestContext(deadline=time.monotonic() - 1).request_timeout() == 0.001

    @pytest.mark.asyncio
    async def test_run_exceeding_deadline(self) -> None:
        """Test the worker thread is joined before the deadline error surfaces."""
        context = RequestContext.with_timeout(0.05)
        done: list[bool] = []

        def blocking_call() -> None:
            time.sleep(0.3)
            done.append(True)

        with pytest.raises(DeadlineExceededError, match="blocking_call"):
            await context.run(blocking_call)

        assert done == [True]

    @pytest.mark.asyncio
    async def test_run_maps_http_timeout(self) -> None:
        context = RequestContext.with_timeout(5.0)

        def read_secret() -> None:
            raise MaxRetryError(None, "/api/v1", ReadTimeoutError(None, "/api/v1", "timed out"))

        with pytest.raises(DeadlineExceededError):
            await context.run(read_secret)

    @pytest.mark.asyncio
    async def test_run_keeps_connection_errors(self) -> None:
        context = RequestContext.with_timeout(5.0)

        def read_secret() -> None:
            raise MaxRetryError(None, "/api/v1", NewConnectionError(None, "refused"))

        with pytest.raises(MaxRetryError):
            await context.run(read_secret)

    @pytest.mark.asyncio
    async def test_run_propagates_errors(self) -> None:
        context = RequestContext()

        with pytest.raises(ValueError):
            await context.run(int, "not-a-number")
