import fakeredis

from archive.ratelimit import MemoryRateLimiter, RedisRateLimiter, build_limiter


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_limit_reached_after_max_attempts():
    limiter = MemoryRateLimiter(3, 60, clock=FakeClock())
    assert not limiter.is_limited("1.2.3.4")
    for expected in (1, 2, 3):
        assert limiter.hit("1.2.3.4") == expected
    assert limiter.is_limited("1.2.3.4")
    # other keys are independent
    assert not limiter.is_limited("5.6.7.8")


def test_window_slides():
    clock = FakeClock()
    limiter = MemoryRateLimiter(2, 60, clock=clock)
    limiter.hit("ip")
    clock.now += 30
    limiter.hit("ip")
    assert limiter.is_limited("ip")

    clock.now += 31  # first hit is now outside the window
    assert limiter.count("ip") == 1
    assert not limiter.is_limited("ip")

    clock.now += 60
    assert limiter.count("ip") == 0


def test_reset_and_clear():
    limiter = MemoryRateLimiter(1, 60, clock=FakeClock())
    limiter.hit("a")
    limiter.hit("b")
    limiter.reset("a")
    assert limiter.count("a") == 0
    assert limiter.count("b") == 1
    limiter.clear()
    assert limiter.count("b") == 0


def test_build_limiter_without_redis_stays_in_memory():
    limiter = build_limiter(5, 900, prefix="rl:test", redis_url="")
    assert isinstance(limiter, MemoryRateLimiter)
    assert limiter.max_attempts == 5
    assert limiter.window_seconds == 900


def _redis_limiter(max_attempts, window, clock):
    client = fakeredis.FakeRedis(decode_responses=True)
    return RedisRateLimiter(client, max_attempts, window, prefix="rl:test", clock=clock), client


def test_redis_hits_in_the_same_instant_all_count():
    limiter, client = _redis_limiter(3, 60, FakeClock())
    assert limiter.hit("1.2.3.4") == 1
    assert limiter.hit("1.2.3.4") == 2
    assert limiter.count("1.2.3.4") == 2
    assert not limiter.is_limited("1.2.3.4")
    assert limiter.hit("1.2.3.4") == 3
    assert limiter.is_limited("1.2.3.4")

    assert client.zcard("rl:test:1.2.3.4") == 3
    assert 0 < client.ttl("rl:test:1.2.3.4") <= 61


def test_redis_window_slides():
    clock = FakeClock()
    limiter, _ = _redis_limiter(2, 60, clock)
    limiter.hit("ip")
    clock.now += 30
    limiter.hit("ip")
    assert limiter.is_limited("ip")

    clock.now += 31
    assert limiter.count("ip") == 1
    assert not limiter.is_limited("ip")

    clock.now += 60
    assert limiter.count("ip") == 0


def test_redis_reset_only_touches_one_key():
    limiter, client = _redis_limiter(1, 60, FakeClock())
    limiter.hit("a")
    limiter.hit("b")
    limiter.reset("a")
    assert limiter.count("a") == 0
    assert limiter.count("b") == 1
    assert not client.exists("rl:test:a")


def test_build_limiter_with_redis_url():
    limiter = build_limiter(5, 900, prefix="rl:test", redis_url="redis://localhost:6379/0")
    assert isinstance(limiter, RedisRateLimiter)
    assert limiter.max_attempts == 5
