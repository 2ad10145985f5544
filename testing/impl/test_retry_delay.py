from flagsync.impl.retry_delay import RetryDelayStrategy, DefaultBackoffStrategy, DefaultJitterStrategy

import math
import time

def delays(strategy, count, t0):
    return [strategy.next_retry_delay(t0 + i) for i in range(count)]

def test_fixed_delay_without_backoff_or_jitter():
    r = RetryDelayStrategy(10, 0, None, None)
    assert delays(r, 3, time.time() - 60) == [10, 10, 10]

def test_backoff_doubles_up_to_max():
    r = RetryDelayStrategy(10, 0, DefaultBackoffStrategy(60), None)
    assert delays(r, 5, time.time() - 60) == [10, 20, 40, 60, 60]

def test_seeded_jitter_is_deterministic():
    r = RetryDelayStrategy(1, 0, None, DefaultJitterStrategy(0.5, 1000))
    d = delays(r, 3, time.time() - 60)
    # values produced by that fixed seed
    assert [math.trunc(x * 1000) for x in d] == [611, 665, 950]

def test_jitter_never_exceeds_ratio():
    r = RetryDelayStrategy(2, 0, None, DefaultJitterStrategy(0.5))
    for d in delays(r, 100, time.time() - 60):
        assert 1 <= d <= 2

def test_backoff_restarts_after_good_period():
    r = RetryDelayStrategy(10, 45, DefaultBackoffStrategy(60), None)
    t0 = time.time() - 60
    assert r.next_retry_delay(t0) == 10
    assert r.next_retry_delay(t0 + 1) == 20
    r.set_good_since(t0 + 2)
    assert r.next_retry_delay(t0 + 10) == 40   # good for less than the reset interval
    r.set_good_since(t0 + 20)
    assert r.next_retry_delay(t0 + 70) == 10

def test_reset():
    r = RetryDelayStrategy(10, 0, DefaultBackoffStrategy(60), None)
    t0 = time.time()
    r.next_retry_delay(t0)
    r.next_retry_delay(t0)
    r.reset()
    assert r.next_retry_delay(t0) == 10

def test_default_strategy_has_backoff_and_jitter():
    r = RetryDelayStrategy.default(1, 4)
    d = delays(r, 6, time.time())
    assert 0.5 <= d[0] <= 1
    assert 1 <= d[1] <= 2
    for x in d[2:]:
        assert 2 <= x <= 4
