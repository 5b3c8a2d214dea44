"""
rate_limit.py

Fixed-interval scheduler for upstream politeness and exponential backoff for
flaky catalog calls and poster downloads.

The scheduler decouples "how often we may call TMDB" from "how many candidates
we must process": engines call `await scheduler.wait()` before each upstream
request instead of sprinkling sleeps through their loops.
"""
import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional

import httpx

from cinematch.core.config import settings
from cinematch.core.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


class IntervalScheduler:
    """Allow at most one request per `interval` seconds.

    `clock` and `sleep` are injectable so tests can drive time deterministically.
    """

    def __init__(
        self,
        interval: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ):
        self.interval = settings.catalog_request_interval if interval is None else max(0.0, interval)
        self.clock = clock
        self.sleep = sleep
        self._last: Optional[float] = None
        self._lock = asyncio.Lock()

    async def wait(self) -> None:
        """Block until the next request slot is available, then claim it."""
        async with self._lock:
            now = self.clock()
            if self._last is not None:
                remaining = self._last + self.interval - now
                if remaining > 0:
                    await self.sleep(remaining)
                    now = self.clock()
            self._last = now

    def reset(self) -> None:
        self._last = None


def backoff_delay(attempt: int, base: float, cap: float) -> float:
    """Delay before retry number `attempt + 1`: base * 2^attempt, capped."""
    return min(base * (2 ** attempt), cap)


def is_retryable(exc: BaseException) -> bool:
    """Timeouts, transport errors, 429 and 5xx are retried; other 4xx are final."""
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return isinstance(exc, (httpx.TimeoutException, httpx.TransportError))


async def with_backoff(
    func,
    *args,
    max_retries: Optional[int] = None,
    base_delay: Optional[float] = None,
    max_delay: Optional[float] = None,
    sleep: Sleep = asyncio.sleep,
    service: str = "tmdb_api",
    **kwargs,
):
    """Execute an async function with exponential backoff on retryable errors."""
    max_retries = settings.catalog_max_retries if max_retries is None else max(1, max_retries)
    base_delay = settings.catalog_backoff_base if base_delay is None else base_delay
    max_delay = settings.catalog_backoff_cap if max_delay is None else max_delay

    for attempt in range(max_retries):
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            if not is_retryable(e) or attempt == max_retries - 1:
                raise
            delay = backoff_delay(attempt, base_delay, max_delay)
            logger.warning(f"{service} call failed on attempt {attempt + 1}/{max_retries} ({e}), retrying in {delay}s")
            await sleep(delay)


async def with_catalog_retry(func, *args, sleep: Sleep = asyncio.sleep, **kwargs):
    """`with_backoff` for catalog calls; exhaustion surfaces as UpstreamUnavailable."""
    try:
        return await with_backoff(func, *args, sleep=sleep, service="tmdb_api", **kwargs)
    except UpstreamUnavailable:
        raise
    except (httpx.HTTPError, asyncio.TimeoutError) as e:
        raise UpstreamUnavailable(f"Catalog call failed: {e}", service="tmdb_api") from e
