"""
Tests for the shared circuit breaker.

Tests cover:
1. Opening after the consecutive-failure threshold
2. Fail-fast window and cool-down expiry
3. Global reset on success
4. Process-wide default instance (get/set)
"""

from app.core.circuit_breaker import (
    CircuitBreaker,
    CircuitState,
    get_circuit_breaker,
    set_circuit_breaker,
)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestCircuitBreakerInitialization:
    def test_default_initialization(self):
        """Starts closed with no failures and the 3-failure / 30s defaults."""
        cb = CircuitBreaker()

        assert cb.failure_threshold == 3
        assert cb.cooldown_seconds == 30.0
        assert cb.consecutive_failures == 0
        assert cb.open_until is None
        assert cb.state == CircuitState.CLOSED
        assert cb.is_open() is False


class TestOpening:
    def test_opens_at_threshold(self):
        """Third consecutive failure opens the circuit."""
        clock = FakeClock()
        cb = CircuitBreaker(clock=clock)

        assert cb.record_failure() is False
        assert cb.record_failure() is False
        assert cb.is_open() is False

        assert cb.record_failure() is True
        assert cb.is_open() is True
        assert cb.open_until == clock.now + 30.0

    def test_custom_threshold(self):
        cb = CircuitBreaker(failure_threshold=1)
        assert cb.record_failure() is True
        assert cb.state == CircuitState.OPEN

    def test_stays_open_during_cooldown(self):
        clock = FakeClock()
        cb = CircuitBreaker(clock=clock)
        for _ in range(3):
            cb.record_failure()

        clock.advance(29.9)
        assert cb.is_open() is True

    def test_closes_after_cooldown(self):
        """Cool-down expiry clears both the open window and the counter."""
        clock = FakeClock()
        cb = CircuitBreaker(clock=clock)
        for _ in range(3):
            cb.record_failure()

        clock.advance(30.0)
        assert cb.is_open() is False
        assert cb.consecutive_failures == 0
        assert cb.open_until is None

    def test_failure_after_cooldown_starts_new_count(self):
        clock = FakeClock()
        cb = CircuitBreaker(clock=clock)
        for _ in range(3):
            cb.record_failure()
        clock.advance(31)

        assert cb.record_failure() is False
        assert cb.consecutive_failures == 1


class TestReset:
    def test_success_resets_counter(self):
        cb = CircuitBreaker()
        cb.record_failure()
        cb.record_failure()

        cb.record_success()

        assert cb.consecutive_failures == 0
        # Two more failures are not enough to open again
        cb.record_failure()
        cb.record_failure()
        assert cb.is_open() is False

    def test_success_closes_open_circuit(self):
        cb = CircuitBreaker()
        for _ in range(3):
            cb.record_failure()

        cb.record_success()

        assert cb.is_open() is False

    def test_reset(self):
        cb = CircuitBreaker()
        for _ in range(3):
            cb.record_failure()
        cb.reset()
        assert cb.state == CircuitState.CLOSED
        assert cb.consecutive_failures == 0


class TestSnapshot:
    def test_snapshot_closed(self):
        snapshot = CircuitBreaker(name="backend").snapshot()
        assert snapshot == {
            "name": "backend",
            "state": "closed",
            "consecutive_failures": 0,
            "failure_threshold": 3,
            "cooldown_remaining_seconds": None,
        }

    def test_snapshot_open_reports_remaining_cooldown(self):
        clock = FakeClock()
        cb = CircuitBreaker(clock=clock)
        for _ in range(3):
            cb.record_failure()
        clock.advance(10)

        snapshot = cb.snapshot()
        assert snapshot["state"] == "open"
        assert snapshot["cooldown_remaining_seconds"] == 20.0


class TestDefaultInstance:
    def test_same_instance_everywhere(self):
        assert get_circuit_breaker() is get_circuit_breaker()

    def test_set_replaces_instance(self):
        custom = CircuitBreaker(name="custom")
        set_circuit_breaker(custom)
        assert get_circuit_breaker() is custom

    def test_set_none_rebuilds_from_settings(self):
        first = get_circuit_breaker()
        set_circuit_breaker(None)
        second = get_circuit_breaker()
        assert first is not second
        assert second.failure_threshold == 3
