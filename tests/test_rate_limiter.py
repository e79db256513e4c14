# tests/test_rate_limiter.py
import threading
import time

import pytest

from lambdas.log_check.rate_limiter import (
    DESCRIBE_LOG_GROUPS_PER_SECOND,
    FILTER_LOG_EVENTS_PER_SECOND,
    RateLimiter,
    events_limiter,
    log_groups_limiter,
)


class FakeClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


def test_burst_is_served_without_waiting():
    clock = FakeClock()
    limiter = RateLimiter(rate=10, burst=3, clock=clock, sleep=clock.sleep)

    for _ in range(3):
        assert limiter.acquire()
    assert clock.sleeps == []


def test_waits_for_refill_after_burst():
    clock = FakeClock()
    limiter = RateLimiter(rate=10, burst=2, clock=clock, sleep=clock.sleep)

    for _ in range(4):
        assert limiter.acquire()

    # two tokens from the burst, then one every 100ms
    assert clock.sleeps[0] == pytest.approx(0.1)
    assert clock.now == pytest.approx(0.2)


def test_sustained_rate_matches_configuration():
    clock = FakeClock()
    limiter = RateLimiter(rate=25, burst=25, clock=clock, sleep=clock.sleep)

    for _ in range(75):
        limiter.acquire()

    # 25 tokens up front, 50 more at 25/s
    assert clock.now == pytest.approx(2.0)


def test_each_acquire_sleeps_at_most_once():
    # 1/25 and 1/3 leave float residue after refills
    for rate in (25, 3):
        clock = FakeClock()
        limiter = RateLimiter(rate=rate, burst=1, clock=clock, sleep=clock.sleep)

        for _ in range(40):
            assert limiter.acquire()

        assert len(clock.sleeps) <= 39
        assert clock.now == pytest.approx(39 / rate)


def test_cancelled_wait_gives_the_token_back():
    clock = FakeClock()
    limiter = RateLimiter(rate=10, burst=1, clock=clock, sleep=clock.sleep)
    assert limiter.acquire()

    cancel_event = threading.Event()
    cancel_event.wait = lambda timeout: True
    assert limiter.acquire(cancel_event) is False

    clock.now = 0.1
    assert limiter.acquire()
    assert clock.sleeps == []


def test_cancelled_before_acquire_returns_false():
    limiter = RateLimiter(rate=1, burst=1)
    cancel_event = threading.Event()
    cancel_event.set()

    assert limiter.acquire(cancel_event) is False


def test_cancel_wakes_a_waiting_acquire():
    limiter = RateLimiter(rate=0.1, burst=1)
    cancel_event = threading.Event()
    assert limiter.acquire(cancel_event)

    timer = threading.Timer(0.05, cancel_event.set)
    timer.start()
    started = time.monotonic()
    try:
        assert limiter.acquire(cancel_event) is False
    finally:
        timer.cancel()
    # without cancellation the next token is 10 seconds away
    assert time.monotonic() - started < 5


def test_invalid_configuration():
    with pytest.raises(ValueError):
        RateLimiter(rate=0, burst=1)
    with pytest.raises(ValueError):
        RateLimiter(rate=1, burst=0)


def test_limiters_use_the_documented_ceilings():
    groups = log_groups_limiter()
    events = events_limiter()

    assert (groups.rate, groups.burst) == (DESCRIBE_LOG_GROUPS_PER_SECOND, DESCRIBE_LOG_GROUPS_PER_SECOND)
    assert (events.rate, events.burst) == (FILTER_LOG_EVENTS_PER_SECOND, FILTER_LOG_EVENTS_PER_SECOND)
    assert groups is not log_groups_limiter()
