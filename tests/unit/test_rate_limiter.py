"""Unit tests for the sliding-window rate limiter and client resolution."""

import pytest

from linkdok.api.security import SlidingWindowRateLimiter, resolve_client_id

class FakeClock:
    """Monotonic clock driven by the test, in seconds."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds

@pytest.fixture
def clock():
    return FakeClock()

@pytest.fixture
def limiter(clock):
    return SlidingWindowRateLimiter(clock=clock)

def test_admits_up_to_limit(limiter):
    """The first `limit` requests in a window are admitted."""
    decisions = [limiter.admit("1.2.3.4", limit=10, window_ms=60_000) for _ in range(10)]
    assert all(d.allowed for d in decisions)
    assert all(d.retry_after is None for d in decisions)

def test_rejects_excess_with_retry_hint(limiter, clock):
    """The 11th request inside the window is rejected with retry_after >= 1."""
    for _ in range(10):
        limiter.admit("1.2.3.4")
        clock.advance(1)

    decision = limiter.admit("1.2.3.4")
    assert not decision.allowed
    # Oldest hit was 10 s ago, so it leaves the window in 50 s.
    assert decision.retry_after == 50

def test_retry_after_is_at_least_one(limiter, clock):
    for _ in range(10):
        limiter.admit("1.2.3.4")
    clock.advance(59.9999)

    decision = limiter.admit("1.2.3.4")
    assert not decision.allowed
    assert decision.retry_after == 1

def test_window_slides(limiter, clock):
    """Hits older than the window no longer count."""
    for _ in range(10):
        limiter.admit("1.2.3.4")
    assert not limiter.admit("1.2.3.4").allowed

    clock.advance(60)
    assert limiter.admit("1.2.3.4").allowed

def test_rejections_are_not_recorded(limiter, clock):
    for _ in range(10):
        limiter.admit("1.2.3.4")
    for _ in range(5):
        assert not limiter.admit("1.2.3.4").allowed

    clock.advance(60)
    for _ in range(10):
        assert limiter.admit("1.2.3.4").allowed

def test_clients_are_independent(limiter):
    for _ in range(10):
        limiter.admit("1.2.3.4")

    assert not limiter.admit("1.2.3.4").allowed
    assert limiter.admit("5.6.7.8").allowed

def test_empty_client_id_shares_anonymous_bucket(limiter):
    for _ in range(10):
        limiter.admit("")
    assert not limiter.admit("").allowed

def test_sweep_drops_idle_clients(clock):
    limiter = SlidingWindowRateLimiter(sweep_threshold=3, clock=clock)
    for ip in ("a", "b", "c"):
        limiter.admit(ip)
    assert len(limiter) == 3

    clock.advance(61)
    limiter.admit("d")

    assert len(limiter) == 1

def test_reset(limiter):
    for _ in range(10):
        limiter.admit("1.2.3.4")
    limiter.reset()

    assert len(limiter) == 0
    assert limiter.admit("1.2.3.4").allowed

def test_client_id_from_forwarded_for():
    headers = {"x-forwarded-for": " 10.0.0.1 , 172.16.0.1", "x-real-ip": "10.0.0.9"}
    assert resolve_client_id(headers, "127.0.0.1") == "10.0.0.1"

def test_client_id_from_real_ip():
    assert resolve_client_id({"x-real-ip": "10.0.0.9"}, "127.0.0.1") == "10.0.0.9"

def test_client_id_falls_back_to_peer():
    assert resolve_client_id({}, "127.0.0.1") == "127.0.0.1"
    assert resolve_client_id({}, None) == "anon"
