import unittest

import httpx

from cinematch.core.errors import UpstreamUnavailable
from cinematch.services.rate_limit import (
    IntervalScheduler,
    backoff_delay,
    is_retryable,
    with_backoff,
    with_catalog_retry,
)

from catalog_fakes import SleepRecorder


def status_error(code):
    request = httpx.Request("GET", "https://api.test/3/discover/movie")
    return httpx.HTTPStatusError(f"HTTP {code}", request=request, response=httpx.Response(code, request=request))


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


class Flaky:
    def __init__(self, errors, result="ok"):
        self.errors = list(errors)
        self.result = result
        self.calls = 0

    async def __call__(self, *args, **kwargs):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


class TestIntervalScheduler(unittest.IsolatedAsyncioTestCase):
    async def test_spacing(self):
        clock = FakeClock()
        sleep = SleepRecorder()
        scheduler = IntervalScheduler(0.3, clock=clock, sleep=sleep)
        await scheduler.wait()
        self.assertEqual(sleep.calls, [])
        clock.now += 0.1
        await scheduler.wait()
        self.assertEqual(len(sleep.calls), 1)
        self.assertAlmostEqual(sleep.calls[0], 0.2)

    async def test_no_sleep_after_interval_elapsed(self):
        clock = FakeClock()
        sleep = SleepRecorder()
        scheduler = IntervalScheduler(0.3, clock=clock, sleep=sleep)
        await scheduler.wait()
        clock.now += 1.0
        await scheduler.wait()
        self.assertEqual(sleep.calls, [])

    async def test_reset(self):
        sleep = SleepRecorder()
        scheduler = IntervalScheduler(0.3, clock=FakeClock(), sleep=sleep)
        await scheduler.wait()
        scheduler.reset()
        await scheduler.wait()
        self.assertEqual(sleep.calls, [])


class TestBackoff(unittest.IsolatedAsyncioTestCase):
    def test_delay_is_capped(self):
        self.assertEqual([backoff_delay(n, 1.0, 5.0) for n in range(5)], [1.0, 2.0, 4.0, 5.0, 5.0])

    def test_retryable(self):
        self.assertTrue(is_retryable(status_error(429)))
        self.assertTrue(is_retryable(status_error(503)))
        self.assertTrue(is_retryable(httpx.ReadTimeout("slow")))
        self.assertFalse(is_retryable(status_error(404)))
        self.assertFalse(is_retryable(ValueError("bad")))

    async def test_retries_then_succeeds(self):
        func = Flaky([status_error(503), httpx.ConnectError("down")])
        sleep = SleepRecorder()
        result = await with_backoff(func, max_retries=3, base_delay=1.0, max_delay=5.0, sleep=sleep)
        self.assertEqual(result, "ok")
        self.assertEqual(func.calls, 3)
        self.assertEqual(sleep.calls, [1.0, 2.0])

    async def test_client_error_is_final(self):
        func = Flaky([status_error(404)])
        sleep = SleepRecorder()
        with self.assertRaises(httpx.HTTPStatusError):
            await with_backoff(func, max_retries=3, sleep=sleep)
        self.assertEqual(func.calls, 1)
        self.assertEqual(sleep.calls, [])

    async def test_catalog_retry_exhaustion(self):
        func = Flaky([status_error(500)] * 3)
        sleep = SleepRecorder()
        with self.assertRaises(UpstreamUnavailable):
            await with_catalog_retry(func, sleep=sleep)
        self.assertEqual(func.calls, 3)
        self.assertEqual(len(sleep.calls), 2)


if __name__ == "__main__":
    unittest.main()
