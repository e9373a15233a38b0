import time
from typing import Awaitable, Callable, Optional, TypeVar
from dataclasses import dataclass

T = TypeVar("T")


class CircuitOpenError(Exception):
    pass


@dataclass
class CircuitBreakerStats:
    failures: int = 0
    last_failure_time: Optional[float] = None
    state: str = "CLOSED"  # CLOSED, OPEN, HALF_OPEN


class CircuitBreaker:
    """Stops calling a failing collaborator for ``timeout`` seconds after
    ``failure_threshold`` consecutive failures. Calls are never retried."""

    def __init__(
        self,
        failure_threshold: int = 5,
        timeout: float = 60.0,
        name: str = "default"
    ):
        self.failure_threshold = failure_threshold
        self.timeout = timeout
        self.name = name
        self.stats = CircuitBreakerStats()

    async def call(self, func: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        if self.stats.state == "OPEN":
            if self._should_attempt_reset():
                self.stats.state = "HALF_OPEN"
            else:
                raise CircuitOpenError(f"Circuit breaker {self.name} is OPEN")

        try:
            result = await func(*args, **kwargs)
        except Exception:
            self._on_failure()
            raise
        self._on_success()
        return result

    def _on_success(self):
        self.stats.failures = 0
        if self.stats.state == "HALF_OPEN":
            self.stats.state = "CLOSED"

    def _on_failure(self):
        self.stats.failures += 1
        self.stats.last_failure_time = time.time()

        if self.stats.state == "HALF_OPEN" or self.stats.failures >= self.failure_threshold:
            self.stats.state = "OPEN"

    def _should_attempt_reset(self) -> bool:
        if self.stats.last_failure_time is None:
            return False

        return (time.time() - self.stats.last_failure_time) >= self.timeout

    def get_state(self) -> dict:
        return {
            "name": self.name,
            "state": self.stats.state,
            "failures": self.stats.failures,
            "last_failure_time": self.stats.last_failure_time
        }
