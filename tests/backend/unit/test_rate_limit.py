"""
Unit tests for the fixed-window counter behind the rate limit middleware.
"""
from sso.core.middleware import FixedWindowCounter


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_requests_over_limit_are_refused():
    counter = FixedWindowCounter(limit=3, window_seconds=60, clock=FakeClock())
    results = [counter.hit("1.2.3.4")[0] for _ in range(4)]
    assert results == [True, True, True, False]


def test_remaining_counts_down():
    counter = FixedWindowCounter(limit=2, window_seconds=60, clock=FakeClock())
    assert counter.hit("ip")[1] == 1
    assert counter.hit("ip")[1] == 0
    assert counter.hit("ip")[1] == 0


def test_window_resets():
    clock = FakeClock()
    counter = FixedWindowCounter(limit=1, window_seconds=60, clock=clock)
    assert counter.hit("ip")[0] is True
    assert counter.hit("ip")[0] is False
    clock.now += 60
    assert counter.hit("ip")[0] is True


def test_keys_are_independent():
    counter = FixedWindowCounter(limit=1, window_seconds=60, clock=FakeClock())
    assert counter.hit("a")[0] is True
    assert counter.hit("b")[0] is True
    assert counter.hit("a")[0] is False


def test_reset_reports_seconds_left():
    clock = FakeClock()
    counter = FixedWindowCounter(limit=5, window_seconds=900, clock=clock)
    counter.hit("ip")
    clock.now += 100
    assert counter.hit("ip")[2] == 800
