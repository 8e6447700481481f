"""
Circuit Breaker

Per-provider failure isolation for AI provider calls.

State transitions:
    CLOSED -> (failure_count >= failure_threshold) -> OPEN
    OPEN -> (first call after timeout elapses) -> HALF_OPEN
    HALF_OPEN -> (2 consecutive successes) -> CLOSED
    HALF_OPEN -> (any failure) -> OPEN

A success while CLOSED decrements the failure count by one instead of
resetting it, so isolated failures decay rather than trip the breaker.
"""

import logging
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from .errors import CircuitOpenError

logger = logging.getLogger(__name__)

# Smoothing factor for the running response-time average
LATENCY_ALPHA = 0.3


class CircuitState(Enum):
    """Circuit breaker states"""
    CLOSED = "closed"        # Normal operation
    OPEN = "open"            # Failing, rejecting calls
    HALF_OPEN = "half_open"  # Trial calls allowed


@dataclass
class CircuitBreakerConfig:
    """Circuit breaker configuration. Values are used as given."""
    failure_threshold: int = 5
    timeout_seconds: float = 60.0
    success_threshold: int = 2
    half_open_max_calls: int = 2


@dataclass
class CircuitMetrics:
    """Request counters and latency for one breaker"""
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    rejected_requests: int = 0
    average_response_time_ms: float = 0.0
    last_state_change: float = field(default_factory=time.monotonic)

    @property
    def success_rate(self) -> float:
        """Percentage of executed requests that succeeded."""
        executed = self.successful_requests + self.failed_requests
        if executed == 0:
            return 100.0
        return round(self.successful_requests / executed * 100, 2)

    def record_latency(self, response_time_ms: float) -> None:
        if self.average_response_time_ms == 0:
            self.average_response_time_ms = response_time_ms
            return
        self.average_response_time_ms = round(
            LATENCY_ALPHA * response_time_ms
            + (1 - LATENCY_ALPHA) * self.average_response_time_ms,
            2,
        )


class CircuitBreaker:
    """
    Circuit breaker wrapping async calls to one external dependency.

    Usage:
        breaker = CircuitBreaker("ollama", CircuitBreakerConfig(failure_threshold=3))
        messages = await breaker.execute(lambda: provider.generate(diff, options))

    One instance per provider. Instances are not meant to be shared across
    concurrent callers.
    """

    def __init__(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize circuit breaker

        Args:
            name: Name of the protected dependency (usually the provider name)
            config: Thresholds and timeout (defaults if not provided)
            clock: Monotonic clock in seconds, injectable for tests
        """
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._last_failure_time: Optional[float] = None
        self._half_open_calls = 0
        self._generation = 0
        self._metrics = CircuitMetrics(last_state_change=clock())

    # ========================================================================
    # Properties
    # ========================================================================

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def success_count(self) -> int:
        return self._success_count

    @property
    def last_failure_time(self) -> Optional[float]:
        return self._last_failure_time

    @property
    def metrics(self) -> CircuitMetrics:
        """Snapshot copy of the current metrics."""
        return replace(self._metrics)

    # ========================================================================
    # Execution
    # ========================================================================

    async def execute(
        self,
        operation: Callable[[], Awaitable[Any]],
        context: Optional[dict] = None,
    ) -> Any:
        """
        Execute an async operation through the circuit breaker

        Args:
            operation: Zero-argument callable returning an awaitable
            context: Optional details for logging (e.g. {"provider": "groq"})

        Returns:
            Result of the operation

        Raises:
            CircuitOpenError: Circuit is open, operation not attempted
            Exception: Whatever the operation raised
        """
        context = context or {}
        self._metrics.total_requests += 1
        self._before_call(context)

        generation = self._generation
        is_trial = self._state == CircuitState.HALF_OPEN
        if is_trial:
            self._half_open_calls += 1

        start = self._clock()
        try:
            result = await operation()
        except Exception as e:
            elapsed_ms = (self._clock() - start) * 1000
            self._finish_trial(is_trial, generation)
            self._on_failure(e, elapsed_ms, generation, context)
            raise

        elapsed_ms = (self._clock() - start) * 1000
        self._finish_trial(is_trial, generation)
        self._on_success(elapsed_ms, generation)
        return result

    def _before_call(self, context: dict) -> None:
        """Reject the call or move OPEN -> HALF_OPEN."""
        if self._state == CircuitState.OPEN:
            elapsed = self._clock() - (self._last_failure_time or 0.0)
            if elapsed > self.config.timeout_seconds:
                self._set_state(CircuitState.HALF_OPEN)
                logger.info(
                    f"Circuit breaker transitioning to HALF_OPEN for "
                    f"{context.get('provider', self.name)}"
                )
            else:
                self._metrics.rejected_requests += 1
                raise CircuitOpenError(self.name, self.config.timeout_seconds - elapsed)

        if self._state == CircuitState.HALF_OPEN:
            if self._half_open_calls >= self.config.half_open_max_calls:
                self._metrics.rejected_requests += 1
                raise CircuitOpenError(self.name, 0.0)

    def _finish_trial(self, is_trial: bool, generation: int) -> None:
        if is_trial and generation == self._generation:
            self._half_open_calls = max(0, self._half_open_calls - 1)

    def _on_success(self, response_time_ms: float, generation: int) -> None:
        """Handle successful call"""
        self._metrics.successful_requests += 1
        self._metrics.record_latency(response_time_ms)

        # Outcome of a call that started before reset() must not move state
        if generation != self._generation:
            return

        if self._state == CircuitState.HALF_OPEN:
            self._success_count += 1
            if self._success_count >= self.config.success_threshold:
                self._set_state(CircuitState.CLOSED)
        else:
            self._failure_count = max(0, self._failure_count - 1)

    def _on_failure(
        self,
        error: Exception,
        response_time_ms: float,
        generation: int,
        context: dict,
    ) -> None:
        """Handle failed call"""
        self._metrics.failed_requests += 1
        self._metrics.record_latency(response_time_ms)

        if generation != self._generation:
            return

        self._failure_count += 1
        self._last_failure_time = self._clock()

        logger.warning(
            f"Circuit breaker failure for {context.get('provider', self.name)}: "
            f"{error} (response_time={response_time_ms:.0f}ms, "
            f"failures={self._failure_count}/{self.config.failure_threshold})"
        )

        if self._state == CircuitState.HALF_OPEN:
            self._set_state(CircuitState.OPEN)
        elif self._failure_count >= self.config.failure_threshold:
            self._set_state(CircuitState.OPEN)

    def _set_state(self, new_state: CircuitState) -> None:
        old_state = self._state
        self._state = new_state
        self._metrics.last_state_change = self._clock()

        if new_state == CircuitState.CLOSED:
            self._failure_count = 0
            self._success_count = 0
            self._half_open_calls = 0
        elif new_state == CircuitState.HALF_OPEN:
            self._success_count = 0
            self._half_open_calls = 0
        elif new_state == CircuitState.OPEN:
            self._success_count = 0

        if old_state != new_state:
            logger.info(
                f"Circuit breaker '{self.name}' state change: "
                f"{old_state.name} -> {new_state.name}"
            )

    # ========================================================================
    # Control / Status
    # ========================================================================

    def reset(self) -> None:
        """Force CLOSED and zero all counters and metrics."""
        self._generation += 1
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._last_failure_time = None
        self._half_open_calls = 0
        self._metrics = CircuitMetrics(last_state_change=self._clock())
        logger.info(f"Circuit breaker '{self.name}' reset to CLOSED state")

    def can_execute(self) -> bool:
        """Check whether a call would currently be let through."""
        if self._state == CircuitState.CLOSED:
            return True
        if self._state == CircuitState.OPEN:
            elapsed = self._clock() - (self._last_failure_time or 0.0)
            return elapsed > self.config.timeout_seconds
        return self._half_open_calls < self.config.half_open_max_calls

    def get_status(self) -> dict:
        """Snapshot of state and metrics for display and logging."""
        return {
            "name": self.name,
            "state": self._state.value,
            "failure_count": self._failure_count,
            "failure_threshold": self.config.failure_threshold,
            "success_rate": self._metrics.success_rate,
            "average_response_time_ms": self._metrics.average_response_time_ms,
            "total_requests": self._metrics.total_requests,
            "rejected_requests": self._metrics.rejected_requests,
            "time_since_last_change": self._clock() - self._metrics.last_state_change,
            "is_open": self._state == CircuitState.OPEN,
            "is_half_open": self._state == CircuitState.HALF_OPEN,
        }


class CircuitBreakerRegistry:
    """
    Owns one CircuitBreaker per provider name.

    Create one registry per logical session and pass it explicitly to the
    orchestrator; breakers are created lazily with the shared config.
    """

    def __init__(
        self,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._breakers: dict[str, CircuitBreaker] = {}

    def get(self, name: str) -> CircuitBreaker:
        """Get (or create) the breaker for a provider."""
        if name not in self._breakers:
            self._breakers[name] = CircuitBreaker(
                name, replace(self.config), clock=self._clock
            )
        return self._breakers[name]

    def __contains__(self, name: str) -> bool:
        return name in self._breakers

    def reset_all(self) -> None:
        for breaker in self._breakers.values():
            breaker.reset()

    def status(self) -> dict[str, dict]:
        return {name: b.get_status() for name, b in self._breakers.items()}
