"""
Tests for circuit breaker pattern.
"""

import pytest

from leave_ivr.circuit_breaker import CircuitBreaker, CircuitBreakerOpenError, CircuitState


def failing_func():
    raise ConnectionError("Test failure")


class TestCircuitBreaker:
    """Test circuit breaker functionality."""

    def test_initial_state_closed(self):
        """Circuit breaker should start in CLOSED state."""
        cb = CircuitBreaker(failure_threshold=3, timeout=5)
        assert cb.state == CircuitState.CLOSED
        assert cb.failure_count == 0

    def test_successful_call_in_closed_state(self):
        """Successful calls should work normally in CLOSED state."""
        cb = CircuitBreaker(failure_threshold=3)

        result = cb.call(lambda x: x * 2, 21)
        assert result == 42
        assert cb.state == CircuitState.CLOSED
        assert cb.failure_count == 0

    def test_single_failure_stays_closed(self):
        """Single failure should not open circuit."""
        cb = CircuitBreaker(failure_threshold=3)

        with pytest.raises(ConnectionError):
            cb.call(failing_func)

        assert cb.state == CircuitState.CLOSED
        assert cb.failure_count == 1

    def test_threshold_failures_opens_circuit(self):
        """Reaching threshold should open circuit."""
        cb = CircuitBreaker(failure_threshold=3)

        for _ in range(3):
            with pytest.raises(ConnectionError):
                cb.call(failing_func)

        assert cb.state == CircuitState.OPEN
        assert cb.failure_count == 3

    def test_open_circuit_blocks_calls(self, clock):
        """Open circuit should block calls without running them."""
        cb = CircuitBreaker(failure_threshold=2, timeout=60, clock=clock)
        for _ in range(2):
            with pytest.raises(ConnectionError):
                cb.call(failing_func)

        calls = []
        with pytest.raises(CircuitBreakerOpenError):
            cb.call(lambda: calls.append("ran"))
        assert calls == []

    def test_success_resets_failure_count(self):
        cb = CircuitBreaker(failure_threshold=3)
        for _ in range(2):
            with pytest.raises(ConnectionError):
                cb.call(failing_func)

        cb.call(lambda: None)
        assert cb.failure_count == 0
        assert cb.state == CircuitState.CLOSED

    def test_half_open_after_timeout(self, clock):
        """After the timeout a trial call is let through."""
        cb = CircuitBreaker(failure_threshold=1, timeout=60, clock=clock)
        with pytest.raises(ConnectionError):
            cb.call(failing_func)
        assert cb.state == CircuitState.OPEN

        clock.advance(59)
        assert cb.allow_request() is False

        clock.advance(1)
        assert cb.allow_request() is True
        assert cb.state == CircuitState.HALF_OPEN

    def test_half_open_success_closes(self, clock):
        cb = CircuitBreaker(failure_threshold=1, timeout=10, clock=clock)
        with pytest.raises(ConnectionError):
            cb.call(failing_func)

        clock.advance(10)
        assert cb.call(lambda: "recovered") == "recovered"
        assert cb.state == CircuitState.CLOSED

    def test_half_open_failure_reopens(self, clock):
        cb = CircuitBreaker(failure_threshold=3, timeout=10, clock=clock)
        for _ in range(3):
            with pytest.raises(ConnectionError):
                cb.call(failing_func)

        clock.advance(10)
        with pytest.raises(ConnectionError):
            cb.call(failing_func)
        assert cb.state == CircuitState.OPEN

    def test_get_state(self):
        """get_state should report breaker status."""
        cb = CircuitBreaker(failure_threshold=5, timeout=60, name="TestBreaker")
        state = cb.get_state()

        assert state["name"] == "TestBreaker"
        assert state["state"] == "closed"
        assert state["failure_count"] == 0
        assert state["failure_threshold"] == 5
        assert state["last_failure_time"] is None
