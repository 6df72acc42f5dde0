import time
from enum import Enum
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Callable, Dict, Optional

from app.core.config import settings
from app.core.logging_config import get_logger

logger = get_logger(__name__)


class CircuitState(Enum):
    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing, reject requests


@dataclass
class CircuitBreaker:
    """
    Consecutive-failure circuit breaker shared by every remote query.

    Retryable failures from any caller increment one counter. Reaching
    ``failure_threshold`` opens the circuit for ``cooldown_seconds``; while
    open, ``is_open()`` is True and callers must fail fast. Any success, from
    any caller, resets the counter.
    """

    name: str = "backend"
    failure_threshold: int = 3
    cooldown_seconds: float = 30.0
    clock: Callable[[], float] = time.monotonic

    _consecutive_failures: int = field(default=0, init=False)
    _open_until: Optional[float] = field(default=None, init=False)
    _lock: Lock = field(default_factory=Lock, init=False)

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def open_until(self) -> Optional[float]:
        return self._open_until

    @property
    def state(self) -> CircuitState:
        return CircuitState.OPEN if self.is_open() else CircuitState.CLOSED

    def _check_cooldown(self) -> None:
        """Close the circuit if the cool-down has elapsed.

        Must be called while holding self._lock.
        """
        if self._open_until is not None and self.clock() >= self._open_until:
            self._open_until = None
            self._consecutive_failures = 0
            logger.info("circuit_closed", circuit=self.name, reason="cooldown_elapsed")

    def is_open(self) -> bool:
        with self._lock:
            self._check_cooldown()
            return self._open_until is not None

    def record_success(self) -> None:
        with self._lock:
            was_open = self._open_until is not None
            self._consecutive_failures = 0
            self._open_until = None
        if was_open:
            logger.info("circuit_closed", circuit=self.name, reason="success")

    def record_failure(self) -> bool:
        """Count a retryable failure. Returns True if this failure opened the circuit."""
        with self._lock:
            self._check_cooldown()
            self._consecutive_failures += 1
            if self._consecutive_failures < self.failure_threshold:
                return False
            self._open_until = self.clock() + self.cooldown_seconds
            failures = self._consecutive_failures
        logger.warning(
            "circuit_opened",
            circuit=self.name,
            consecutive_failures=failures,
            cooldown_seconds=self.cooldown_seconds,
        )
        return True

    def reset(self) -> None:
        with self._lock:
            self._consecutive_failures = 0
            self._open_until = None

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            self._check_cooldown()
            remaining = None
            if self._open_until is not None:
                remaining = round(max(0.0, self._open_until - self.clock()), 1)
            return {
                "name": self.name,
                "state": (CircuitState.OPEN if self._open_until is not None else CircuitState.CLOSED).value,
                "consecutive_failures": self._consecutive_failures,
                "failure_threshold": self.failure_threshold,
                "cooldown_remaining_seconds": remaining,
            }


# Process-wide breaker shared by all call sites
_default_breaker: Optional[CircuitBreaker] = None
_default_lock = Lock()


def get_circuit_breaker() -> CircuitBreaker:
    global _default_breaker
    with _default_lock:
        if _default_breaker is None:
            _default_breaker = CircuitBreaker(
                name="backend",
                failure_threshold=settings.CIRCUIT_FAILURE_THRESHOLD,
                cooldown_seconds=settings.CIRCUIT_COOLDOWN_SECONDS,
            )
        return _default_breaker


def set_circuit_breaker(breaker: Optional[CircuitBreaker]) -> None:
    """Replace the process-wide breaker (None rebuilds it from settings on next use)."""
    global _default_breaker
    with _default_lock:
        _default_breaker = breaker
