"""
Tests for rate-limit retry and local failover.
"""
import asyncio
from typing import List

import pytest

from ragchat.services.availability import LocalAvailability
from ragchat.services.gemini_client import ProviderHTTPError
from ragchat.services.retry import FallbackController, with_retry


def rate_limited() -> ProviderHTTPError:
    return ProviderHTTPError('429 {"error": {"status": "RESOURCE_EXHAUSTED"}}', status_code=429)


class SleepRecorder:
    def __init__(self):
        self.waits: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.waits.append(seconds)


class Probe:
    def __init__(self, result: bool):
        self.result = result
        self.calls = 0

    async def __call__(self) -> bool:
        self.calls += 1
        return self.result


class Counter:
    """Coroutine factory that fails a scripted number of times."""

    def __init__(self, failures: int = 0, error_factory=rate_limited, result="ok"):
        self.failures = failures
        self.error_factory = error_factory
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error_factory()
        return self.result


def make_controller(local_reachable: bool, sleep: SleepRecorder):
    probe = Probe(local_reachable)
    availability = LocalAvailability(probe, enabled=False, name="test")
    return FallbackController(availability, sleep=sleep), probe


class TestWithRetry:
    """Tests for with_retry."""

    def test_success_first_try(self):
        sleep = SleepRecorder()
        fn = Counter()
        assert asyncio.run(with_retry(fn, sleep=sleep)) == "ok"
        assert fn.calls == 1
        assert sleep.waits == []

    def test_recovers_after_rate_limits(self):
        sleep = SleepRecorder()
        fn = Counter(failures=2)
        assert asyncio.run(with_retry(fn, sleep=sleep)) == "ok"
        assert fn.calls == 3
        assert sleep.waits == [35.0, 35.0]

    def test_gives_up_after_max_retries(self):
        sleep = SleepRecorder()
        fn = Counter(failures=10)
        with pytest.raises(ProviderHTTPError):
            asyncio.run(with_retry(fn, sleep=sleep))
        assert fn.calls == 4
        assert sleep.waits == [35.0, 35.0, 35.0]

    def test_other_errors_are_not_retried(self):
        sleep = SleepRecorder()
        fn = Counter(failures=1, error_factory=lambda: ValueError("bad request"))
        with pytest.raises(ValueError):
            asyncio.run(with_retry(fn, sleep=sleep))
        assert fn.calls == 1
        assert sleep.waits == []

    @pytest.mark.parametrize("message", [
        "RESOURCE_EXHAUSTED",
        "Quota exceeded for metric",
        "Rate limit reached",
        "HTTP 429",
    ])
    def test_rate_limit_markers(self, message):
        sleep = SleepRecorder()
        fn = Counter(failures=1, error_factory=lambda: RuntimeError(message))
        assert asyncio.run(with_retry(fn, max_retries=1, wait=0.5, sleep=sleep)) == "ok"
        assert sleep.waits == [0.5]


class TestFallbackController:
    """Tests for FallbackController.run."""

    def test_falls_back_to_local_after_retries(self):
        sleep = SleepRecorder()
        controller, probe = make_controller(local_reachable=True, sleep=sleep)
        cloud = Counter(failures=100)
        local = Counter(result="from local")

        result = asyncio.run(controller.run(cloud, local))

        assert result == "from local"
        assert cloud.calls == 4
        assert local.calls == 1
        assert sleep.waits == [35.0, 35.0, 35.0]
        assert probe.calls == 1

    def test_fails_when_local_unreachable(self):
        sleep = SleepRecorder()
        controller, probe = make_controller(local_reachable=False, sleep=sleep)
        cloud = Counter(failures=100)
        local = Counter()

        with pytest.raises(ProviderHTTPError):
            asyncio.run(controller.run(cloud, local))

        assert cloud.calls == 4
        assert local.calls == 0
        assert probe.calls == 1

    def test_non_rate_limit_error_propagates_immediately(self):
        sleep = SleepRecorder()
        controller, probe = make_controller(local_reachable=True, sleep=sleep)
        cloud = Counter(failures=1, error_factory=lambda: ProviderHTTPError("500 internal", 500))
        local = Counter()

        with pytest.raises(ProviderHTTPError):
            asyncio.run(controller.run(cloud, local))

        assert cloud.calls == 1
        assert local.calls == 0
        assert probe.calls == 0
        assert sleep.waits == []

    def test_local_failure_is_not_retried(self):
        sleep = SleepRecorder()
        controller, _ = make_controller(local_reachable=True, sleep=sleep)
        cloud = Counter(failures=100)
        local = Counter(failures=100)

        with pytest.raises(ProviderHTTPError):
            asyncio.run(controller.run(cloud, local))
        assert local.calls == 1


class TestFallbackStream:
    """Tests for FallbackController.stream."""

    def collect(self, controller, open_cloud, open_local):
        async def run():
            return [d async for d in controller.stream(open_cloud, open_local)]
        return asyncio.run(run())

    def test_stream_falls_back_before_first_delta(self):
        sleep = SleepRecorder()
        controller, _ = make_controller(local_reachable=True, sleep=sleep)
        opened = {"cloud": 0}

        async def cloud():
            opened["cloud"] += 1
            raise rate_limited()
            yield  # pragma: no cover

        async def local():
            yield "local "
            yield "answer"

        assert self.collect(controller, cloud, local) == ["local ", "answer"]
        assert opened["cloud"] == 4
        assert len(sleep.waits) == 3

    def test_error_after_first_delta_propagates(self):
        sleep = SleepRecorder()
        controller, probe = make_controller(local_reachable=True, sleep=sleep)

        async def cloud():
            yield "partial"
            raise rate_limited()

        async def local():
            yield "never"

        received = []

        async def run():
            async for delta in controller.stream(cloud, local):
                received.append(delta)

        with pytest.raises(ProviderHTTPError):
            asyncio.run(run())
        assert received == ["partial"]
        assert probe.calls == 0
        assert sleep.waits == []

    def test_empty_stream(self):
        sleep = SleepRecorder()
        controller, _ = make_controller(local_reachable=False, sleep=sleep)

        async def cloud():
            return
            yield  # pragma: no cover

        async def local():
            yield "never"

        assert self.collect(controller, cloud, local) == []
