import pytest

from pluginkit.circuit_breaker import CircuitBreaker, CircuitBreakerBoard


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def test_opens_after_threshold_consecutive_failures():
    clock = FakeClock()
    breaker = CircuitBreaker("python", failure_threshold=3, cooldown_seconds=30, clock=clock)

    for _ in range(2):
        assert breaker.allow_call()
        breaker.record_failure(RuntimeError("boom"))
    assert breaker.snapshot().state == "closed"

    breaker.record_failure(RuntimeError("boom"))

    snapshot = breaker.snapshot()
    assert snapshot.is_open
    assert snapshot.failure_count == 3
    assert snapshot.cooldown_until == pytest.approx(1030.0)
    assert snapshot.last_error == "boom"
    assert breaker.allow_call() is False


def test_success_resets_the_consecutive_count():
    breaker = CircuitBreaker("python", failure_threshold=2, clock=FakeClock())

    breaker.record_failure()
    breaker.record_success()
    breaker.record_failure()

    assert breaker.snapshot().state == "closed"
    assert breaker.snapshot().total_failures == 2


def test_half_open_probe_success_closes():
    clock = FakeClock()
    breaker = CircuitBreaker("python", failure_threshold=1, cooldown_seconds=10, clock=clock)
    breaker.record_failure()

    clock.advance(10)
    assert breaker.snapshot().state == "half_open"
    assert breaker.allow_call() is True
    # Only one probe at a time.
    assert breaker.allow_call() is False

    breaker.record_success()

    assert breaker.snapshot().state == "closed"
    assert breaker.allow_call() is True


def test_half_open_probe_failure_reopens_with_fresh_cooldown():
    clock = FakeClock()
    breaker = CircuitBreaker("python", failure_threshold=2, cooldown_seconds=10, clock=clock)
    breaker.record_failure()
    breaker.record_failure()

    clock.advance(15)
    assert breaker.allow_call() is True
    breaker.record_failure(RuntimeError("still down"))

    snapshot = breaker.snapshot()
    assert snapshot.state == "open"
    assert snapshot.cooldown_until == pytest.approx(clock.now + 10)


def test_invalid_settings_are_rejected():
    with pytest.raises(ValueError):
        CircuitBreaker("x", failure_threshold=0)
    with pytest.raises(TypeError):
        CircuitBreaker("x", failure_threshold=True)
    with pytest.raises(ValueError):
        CircuitBreaker("x", cooldown_seconds=-1)


def test_board_keeps_breakers_independent():
    board = CircuitBreakerBoard(failure_threshold=1, clock=FakeClock())

    board.breaker("a").record_failure()
    board.breaker("b").record_success()

    status = board.snapshot()
    assert status["a"].is_open
    assert status["b"].state == "closed"
    assert board.breaker("a") is board.breaker("a")
    with pytest.raises(TypeError):
        status["c"] = status["a"]


def test_released_probe_lets_the_next_call_through():
    clock = FakeClock()
    breaker = CircuitBreaker("python", failure_threshold=1, cooldown_seconds=10, clock=clock)
    breaker.record_failure()
    clock.advance(10)

    assert breaker.allow_call() is True
    assert breaker.allow_call() is False

    breaker.release_probe()

    assert breaker.allow_call() is True
    snapshot = breaker.snapshot()
    assert snapshot.state == "half_open"
    assert snapshot.total_failures == 1
    assert snapshot.total_successes == 0
