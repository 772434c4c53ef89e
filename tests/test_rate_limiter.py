"""
Tests for the sliding-window rate limiter.
"""

import threading

import pytest

from docquery.core.errors import RateLimitError
from docquery.search.rate_limiter import RateLimiter


class FakeClock:
    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def test_minute_quota_boundary():
    """N requests pass, the N+1th fails, and after 60 seconds one passes again."""
    clock = FakeClock()
    limiter = RateLimiter(per_minute=10, per_hour=100, clock=clock)

    for _ in range(10):
        limiter.admit()

    with pytest.raises(RateLimitError) as exc_info:
        limiter.admit()
    assert 0 < exc_info.value.retry_after <= 60

    clock.advance(60)
    limiter.admit()


def test_retry_after_counts_down():
    clock = FakeClock()
    limiter = RateLimiter(per_minute=2, per_hour=100, clock=clock)
    limiter.admit()
    clock.advance(20)
    limiter.admit()

    with pytest.raises(RateLimitError) as exc_info:
        limiter.admit()
    assert exc_info.value.retry_after == pytest.approx(40.0)


def test_hour_quota():
    clock = FakeClock()
    limiter = RateLimiter(per_minute=10, per_hour=15, clock=clock)

    for _ in range(15):
        limiter.admit()
        clock.advance(61)

    with pytest.raises(RateLimitError) as exc_info:
        limiter.admit()
    assert "per hour" in exc_info.value.message

    clock.advance(3600)
    limiter.admit()


def test_can_admit_does_not_record():
    clock = FakeClock()
    limiter = RateLimiter(per_minute=1, per_hour=10, clock=clock)

    assert limiter.can_admit() is True
    assert limiter.can_admit() is True
    limiter.record()
    with pytest.raises(RateLimitError):
        limiter.can_admit()


def test_explicit_timestamps():
    limiter = RateLimiter(per_minute=1, per_hour=10)
    limiter.admit(now=0.0)
    with pytest.raises(RateLimitError):
        limiter.admit(now=59.9)
    limiter.admit(now=60.0)


def test_old_entries_are_pruned():
    clock = FakeClock()
    limiter = RateLimiter(per_minute=5, per_hour=5, clock=clock)
    for _ in range(5):
        limiter.admit()

    clock.advance(3600)
    stats = limiter.get_statistics()
    assert stats.requests_last_hour == 0
    assert stats.remaining_hour == 5


def test_statistics_and_reset():
    clock = FakeClock()
    limiter = RateLimiter(per_minute=10, per_hour=100, clock=clock)
    for _ in range(3):
        limiter.admit()
    clock.advance(120)
    limiter.admit()

    stats = limiter.get_statistics()
    assert stats.requests_last_minute == 1
    assert stats.requests_last_hour == 4
    assert stats.remaining_minute == 9
    assert stats.remaining_hour == 96

    limiter.reset()
    assert limiter.get_statistics().requests_last_hour == 0


def test_concurrent_admissions_never_exceed_quota():
    clock = FakeClock()
    limiter = RateLimiter(per_minute=10, per_hour=100, clock=clock)
    admitted = []
    lock = threading.Lock()

    def worker():
        try:
            limiter.admit()
            with lock:
                admitted.append(1)
        except RateLimitError:
            pass

    threads = [threading.Thread(target=worker) for _ in range(50)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(admitted) == 10


def test_invalid_limits():
    with pytest.raises(ValueError):
        RateLimiter(per_minute=0, per_hour=10)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
