import pytest

from jobfeed.ratelimit import RateLimiter


class FakeTimer:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def clock(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def test_first_call_is_free_then_paced():
    timer = FakeTimer()
    limiter = RateLimiter.every(2.0, clock=timer.clock, sleep=timer.sleep)
    assert limiter.acquire()
    assert timer.sleeps == []
    assert limiter.acquire()
    assert timer.sleeps == [pytest.approx(2.0)]
    assert limiter.acquire()
    assert timer.now == pytest.approx(4.0)


def test_idle_time_refills_but_never_above_capacity():
    timer = FakeTimer()
    limiter = RateLimiter(rate=1.0, capacity=2.0, clock=timer.clock, sleep=timer.sleep)
    assert limiter.try_acquire() and limiter.try_acquire()
    assert not limiter.try_acquire()
    timer.now += 100
    assert limiter.try_acquire() and limiter.try_acquire()
    assert not limiter.try_acquire()
    assert limiter.wait_time() == pytest.approx(1.0)


def test_cancel_stops_acquire():
    timer = FakeTimer()
    limiter = RateLimiter.every(10.0, clock=timer.clock, sleep=timer.sleep)
    assert limiter.acquire()
    limiter.cancel.set()
    assert limiter.acquire() is False
    assert timer.sleeps == []
    limiter.reset()
    assert limiter.acquire()


def test_default_sleep_wakes_on_cancel():
    limiter = RateLimiter.every(60.0)
    assert limiter.acquire()
    limiter.cancel.set()
    assert limiter.acquire() is False


def test_rate_must_be_positive():
    with pytest.raises(ValueError):
        RateLimiter(rate=0)
