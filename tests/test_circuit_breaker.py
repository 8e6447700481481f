"""Tests for the per-provider circuit breaker."""

import asyncio

import pytest

from aicommit.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    CircuitMetrics,
    CircuitState,
)
from aicommit.errors import CircuitOpenError


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


async def succeed():
    return "ok"


async def fail():
    raise RuntimeError("boom")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def breaker(clock):
    config = CircuitBreakerConfig(failure_threshold=3, timeout_seconds=60.0, success_threshold=2)
    return CircuitBreaker("local", config, clock=clock)


async def trip(breaker, times=3):
    for _ in range(times):
        with pytest.raises(RuntimeError):
            await breaker.execute(fail)


class TestCircuitBreakerStates:
    """State machine transitions."""

    def test_initial_state_closed(self, breaker):
        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0
        assert breaker.can_execute() is True

    @pytest.mark.asyncio
    async def test_opens_at_threshold(self, breaker):
        """Three consecutive failures open the circuit."""
        await trip(breaker, 2)
        assert breaker.state == CircuitState.CLOSED

        await trip(breaker, 1)
        assert breaker.state == CircuitState.OPEN
        assert breaker.failure_count == 3

    @pytest.mark.asyncio
    async def test_open_rejects_without_calling(self, breaker, clock):
        """While open and inside the timeout, the operation is never invoked."""
        await trip(breaker)
        calls = []

        async def tracked():
            calls.append(1)
            return "ok"

        clock.advance(30)
        with pytest.raises(CircuitOpenError) as exc_info:
            await breaker.execute(tracked)

        assert calls == []
        assert exc_info.value.retry_after_seconds == pytest.approx(30)
        assert breaker.metrics.rejected_requests == 1

    @pytest.mark.asyncio
    async def test_half_open_after_timeout_then_closes(self, breaker, clock):
        """After the timeout a trial runs; two successes close the circuit."""
        await trip(breaker)
        clock.advance(61)

        assert await breaker.execute(succeed) == "ok"
        assert breaker.state == CircuitState.HALF_OPEN
        assert breaker.success_count == 1

        assert await breaker.execute(succeed) == "ok"
        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_half_open_failure_reopens(self, breaker, clock):
        await trip(breaker)
        clock.advance(61)

        with pytest.raises(RuntimeError):
            await breaker.execute(fail)

        assert breaker.state == CircuitState.OPEN
        with pytest.raises(CircuitOpenError):
            await breaker.execute(succeed)

    @pytest.mark.asyncio
    async def test_exact_timeout_still_open(self, breaker, clock):
        """The timeout must strictly elapse before a trial is allowed."""
        await trip(breaker)
        clock.advance(60)

        with pytest.raises(CircuitOpenError):
            await breaker.execute(succeed)

    @pytest.mark.asyncio
    async def test_success_decrements_failure_count(self, breaker):
        """Isolated failures decay instead of resetting to zero."""
        await trip(breaker, 2)
        await breaker.execute(succeed)
        assert breaker.failure_count == 1

        await breaker.execute(succeed)
        await breaker.execute(succeed)
        assert breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_interleaved_success_delays_opening(self, breaker):
        await trip(breaker, 2)
        await breaker.execute(succeed)
        await trip(breaker, 1)
        assert breaker.state == CircuitState.CLOSED

        await trip(breaker, 1)
        assert breaker.state == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_half_open_limits_in_flight_trials(self, clock):
        """At most half_open_max_calls trials run concurrently."""
        config = CircuitBreakerConfig(
            failure_threshold=1, timeout_seconds=10, success_threshold=5, half_open_max_calls=2
        )
        breaker = CircuitBreaker("cloud", config, clock=clock)
        with pytest.raises(RuntimeError):
            await breaker.execute(fail)
        clock.advance(11)

        gate = asyncio.Event()

        async def slow():
            await gate.wait()
            return "ok"

        first = asyncio.create_task(breaker.execute(slow))
        second = asyncio.create_task(breaker.execute(slow))
        await asyncio.sleep(0)

        with pytest.raises(CircuitOpenError):
            await breaker.execute(slow)

        gate.set()
        assert await first == "ok"
        assert await second == "ok"
        assert breaker.state == CircuitState.HALF_OPEN


class TestCircuitBreakerControl:
    """reset(), metrics and status."""

    @pytest.mark.asyncio
    async def test_reset_closes_and_clears(self, breaker):
        await trip(breaker)
        breaker.reset()

        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0
        assert breaker.last_failure_time is None
        assert breaker.metrics.total_requests == 0
        assert await breaker.execute(succeed) == "ok"

    @pytest.mark.asyncio
    async def test_call_started_before_reset_does_not_move_state(self, breaker):
        gate = asyncio.Event()

        async def slow_fail():
            await gate.wait()
            raise RuntimeError("late")

        task = asyncio.create_task(breaker.execute(slow_fail))
        await asyncio.sleep(0)
        breaker.reset()
        gate.set()

        with pytest.raises(RuntimeError):
            await task
        assert breaker.failure_count == 0
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_metrics_counts(self, breaker):
        await breaker.execute(succeed)
        await trip(breaker, 1)

        metrics = breaker.metrics
        assert metrics.total_requests == 2
        assert metrics.successful_requests == 1
        assert metrics.failed_requests == 1
        assert metrics.success_rate == 50.0

    def test_metrics_snapshot_is_copy(self, breaker):
        snapshot = breaker.metrics
        snapshot.total_requests = 99
        assert breaker.metrics.total_requests == 0

    def test_latency_moving_average(self):
        metrics = CircuitMetrics()
        metrics.record_latency(100)
        assert metrics.average_response_time_ms == 100

        metrics.record_latency(200)
        assert metrics.average_response_time_ms == pytest.approx(130)

    @pytest.mark.asyncio
    async def test_get_status(self, breaker):
        await trip(breaker)
        status = breaker.get_status()

        assert status["name"] == "local"
        assert status["state"] == "open"
        assert status["is_open"] is True
        assert status["failure_threshold"] == 3


class TestCircuitBreakerRegistry:

    def test_get_creates_one_breaker_per_name(self, clock):
        registry = CircuitBreakerRegistry(CircuitBreakerConfig(failure_threshold=3), clock=clock)

        first = registry.get("groq")
        assert registry.get("groq") is first
        assert registry.get("ollama") is not first
        assert "groq" in registry
        assert "openrouter" not in registry

    def test_breakers_do_not_share_config(self):
        registry = CircuitBreakerRegistry(CircuitBreakerConfig(failure_threshold=3))
        registry.get("a").config.failure_threshold = 10
        assert registry.get("b").config.failure_threshold == 3

    @pytest.mark.asyncio
    async def test_reset_all(self, clock):
        registry = CircuitBreakerRegistry(CircuitBreakerConfig(failure_threshold=1), clock=clock)
        with pytest.raises(RuntimeError):
            await registry.get("groq").execute(fail)
        assert registry.status()["groq"]["state"] == "open"

        registry.reset_all()
        assert registry.get("groq").state == CircuitState.CLOSED
