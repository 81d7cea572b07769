import asyncio

import pytest

from pipedrive_mcp.rate_limits import UserRateLimiter


class FakeClock:
    def __init__(self, now: float = 1_800_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_allows_up_to_limit_then_denies() -> None:
    clock = FakeClock()
    limiter = UserRateLimiter(max_requests=3, window_seconds=60, clock=clock)
    decisions = [limiter.check_limit("alice") for _ in range(4)]

    assert [d.allowed for d in decisions] == [True, True, True, False]
    assert [d.remaining for d in decisions] == [2, 1, 0, 0]
    assert len({d.reset_time for d in decisions}) == 1
    assert decisions[0].reset_time == clock.now + 60


def test_denial_does_not_extend_window() -> None:
    clock = FakeClock()
    limiter = UserRateLimiter(max_requests=1, window_seconds=60, clock=clock)
    first = limiter.check_limit("alice")
    clock.now += 30
    denied = limiter.check_limit("alice")
    assert not denied.allowed
    assert denied.reset_time == first.reset_time


def test_window_resets_at_reset_time() -> None:
    clock = FakeClock()
    limiter = UserRateLimiter(max_requests=2, window_seconds=60, clock=clock)
    limiter.check_limit("alice")
    limiter.check_limit("alice")
    assert not limiter.check_limit("alice").allowed

    clock.now += 60
    fresh = limiter.check_limit("alice")
    assert fresh.allowed
    assert fresh.remaining == 1
    assert fresh.reset_time == clock.now + 60


def test_windows_are_per_user() -> None:
    limiter = UserRateLimiter(max_requests=1, window_seconds=60, clock=FakeClock())
    assert limiter.check_limit("alice").allowed
    assert not limiter.check_limit("alice").allowed
    assert limiter.check_limit("bob").allowed


def test_headers() -> None:
    limiter = UserRateLimiter(max_requests=100, window_seconds=60, clock=FakeClock(1_800_000_000.0))
    headers = limiter.check_limit("alice").headers()
    assert headers == {
        "X-RateLimit-Limit": "100",
        "X-RateLimit-Remaining": "99",
        "X-RateLimit-Reset": "2027-01-15T08:01:00Z",
    }


def test_sweep_expired_drops_only_stale_windows() -> None:
    clock = FakeClock()
    limiter = UserRateLimiter(max_requests=5, window_seconds=60, clock=clock)
    limiter.check_limit("alice")
    clock.now += 45
    limiter.check_limit("bob")
    clock.now += 20
    assert limiter.sweep_expired() == 1
    assert len(limiter) == 1
    # Sweeping never changes what check_limit would decide
    assert limiter.check_limit("alice").remaining == 4


def test_rejects_bad_configuration() -> None:
    with pytest.raises(ValueError):
        UserRateLimiter(max_requests=0)
    with pytest.raises(ValueError):
        UserRateLimiter(window_seconds=0)


@pytest.mark.asyncio
async def test_sweeper_runs_and_stops() -> None:
    clock = FakeClock()
    limiter = UserRateLimiter(max_requests=5, window_seconds=1, sweep_interval_seconds=0.01, clock=clock)
    limiter.check_limit("alice")
    clock.now += 5

    await limiter.start_sweeper()
    assert limiter.sweeper_running
    for _ in range(100):
        if len(limiter) == 0:
            break
        await asyncio.sleep(0.01)
    assert len(limiter) == 0

    await limiter.stop_sweeper()
    assert not limiter.sweeper_running


@pytest.mark.asyncio
async def test_stop_sweeper_without_start_is_noop() -> None:
    limiter = UserRateLimiter()
    await limiter.stop_sweeper()
    assert not limiter.sweeper_running
