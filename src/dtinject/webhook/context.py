"""Execution context of one admission request.

Blocking kubernetes client calls are moved off the event loop with
``asyncio.to_thread``. Each call is bounded twice by the time left until
the request deadline: on the wire through ``_request_timeout`` and on the
awaiting side through ``asyncio.wait_for``. The worker thread is always
joined before ``run`` returns or raises, so no lookup outlives the request.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from urllib3.exceptions import MaxRetryError, NewConnectionError
from urllib3.exceptions import TimeoutError as HTTPTimeoutError

from dtinject.errors import DeadlineExceededError


T = TypeVar("T")


def _is_timeout(error: BaseException | None) -> bool:
    if isinstance(error, MaxRetryError):
        error = error.reason
    # NewConnectionError subclasses ConnectTimeoutError but means refused
    return isinstance(error, HTTPTimeoutError) and not isinstance(error, NewConnectionError)


async def _join(worker: asyncio.Future[Any]) -> None:
    """Wait for a worker thread to finish and discard its outcome."""
    await asyncio.wait({worker})
    if not worker.cancelled():
        worker.exception()


@dataclass(frozen=True)
class RequestContext:
    """Deadline carried through the pipeline (monotonic clock, seconds)."""

    deadline: float | None = None

    @classmethod
    def with_timeout(cls, timeout: float | None) -> RequestContext:
        if timeout is None:
            return cls()
        return cls(deadline=time.monotonic() + timeout)

    def remaining(self) -> float | None:
        """Seconds left until the deadline, None when unbounded."""
        if self.deadline is None:
            return None
        return self.deadline - time.monotonic()

    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def request_timeout(self) -> float | None:
        """Value for the ``_request_timeout`` of a kubernetes client call."""
        remaining = self.remaining()
        if remaining is None:
            return None
        return max(remaining, 0.001)

    async def run(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run a blocking call in a worker thread within the deadline.

        The callable is expected to bound itself with ``request_timeout()``;
        on expiry or cancellation the worker is joined before the error
        propagates.

        Raises:
            DeadlineExceededError: If the deadline passed before or during the call.
        """
        name = getattr(func, "__name__", type(func).__name__)
        remaining = self.remaining()
        if remaining is not None and remaining <= 0:
            msg = f"deadline exceeded before calling {name}"
            raise DeadlineExceededError(msg)

        worker = asyncio.ensure_future(asyncio.to_thread(func, *args, **kwargs))
        try:
            return await asyncio.wait_for(asyncio.shield(worker), remaining)
        except asyncio.CancelledError:
            await _join(worker)
            raise
        except TimeoutError as e:
            await _join(worker)
            msg = f"deadline exceeded while calling {name}"
            raise DeadlineExceededError(msg) from e
        except (HTTPTimeoutError, MaxRetryError) as e:
            if not _is_timeout(e):
                raise
            msg = f"deadline exceeded while calling {name}"
            raise DeadlineExceededError(msg) from e
