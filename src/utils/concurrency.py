"""Shared concurrency primitives for the profiling pipeline.

Two patterns are exposed:

1. **throttled_gather** -- a drop-in replacement for ``asyncio.gather`` that
   wraps each awaitable in a semaphore acquire/release.  The batch driver
   and the ``/api/batch`` endpoint use it to fan out over artists or audio
   references with bounded concurrency.

2. **RequestPacer** -- a fixed-delay sequential scheduler.  Every catalog
   adapter owns one, so consecutive requests to the same provider are
   spaced by at least ``min_interval`` seconds no matter how many
   resolution steps are queued behind it.
"""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, TypeVar

import structlog

from src.utils.logging import get_logger

_T = TypeVar("_T")

# Default width of artist-level and reference-level fan-out.  Five keeps the
# combined request rate of all in-flight artists under the tightest catalog
# quota (Spotify client-credentials, ~180 req/min).
DEFAULT_CONCURRENCY = 5

_DEFAULT_SEMAPHORE = asyncio.Semaphore(DEFAULT_CONCURRENCY)

_logger: structlog.BoundLogger = get_logger(__name__)


async def throttled_gather(
    coros: list[Awaitable[_T]],
    semaphore: asyncio.Semaphore | None = None,
    return_exceptions: bool = True,
) -> list[_T | BaseException]:
    """Run awaitables concurrently with semaphore throttling.

    Parameters
    ----------
    coros:
        Awaitable objects to execute concurrently.
    semaphore:
        Optional semaphore for concurrency control.  Defaults to the
        module-level semaphore of width :data:`DEFAULT_CONCURRENCY`.
    return_exceptions:
        If ``True``, exceptions are returned in the results list rather
        than being raised.  Mirrors ``asyncio.gather`` semantics.

    Returns
    -------
    list[_T | BaseException]
        Results in the same order as the input coroutines.
    """
    if semaphore is None:
        semaphore = _DEFAULT_SEMAPHORE

    async def _wrapped(coro: Awaitable[_T]) -> _T:
        async with semaphore:
            return await coro

    tasks = [_wrapped(c) for c in coros]
    return await asyncio.gather(*tasks, return_exceptions=return_exceptions)


class RequestPacer:
    """Fixed-delay scheduler enforcing a minimum gap between requests.

    Calls to :meth:`wait` are serialised through an ``asyncio.Lock`` so two
    coroutines sharing one adapter cannot both observe a stale timestamp
    and fire together.

    Parameters
    ----------
    min_interval:
        Minimum number of seconds between the start of two requests.
        ``0`` disables pacing.
    name:
        Provider name, used only for debug logging.
    """

    def __init__(self, min_interval: float, name: str = "") -> None:
        self._min_interval = max(0.0, min_interval)
        self._name = name
        self._last_request_time: float = 0.0
        self._lock = asyncio.Lock()

    @property
    def min_interval(self) -> float:
        return self._min_interval

    async def wait(self) -> None:
        if self._min_interval <= 0:
            return
        async with self._lock:
            now = time.monotonic()
            elapsed = now - self._last_request_time
            if self._last_request_time > 0 and elapsed < self._min_interval:
                delay = self._min_interval - elapsed
                _logger.debug("request_paced", provider=self._name, delay=round(delay, 3))
                await asyncio.sleep(delay)
            self._last_request_time = time.monotonic()
