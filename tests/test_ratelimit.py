import asyncio

import pytest

from shippingforecast.ratelimit import MemoryKV, RateLimiter, client_ip


class Clock:
    def __init__(self, t):
        self.t = t

    def __call__(self):
        return self.t


class BrokenKV:
    async def get(self, key):
        raise ConnectionError("kv down")

    async def put(self, key, value, ttl_seconds):
        raise ConnectionError("kv down")


@pytest.fixture
def clock():
    return Clock(1_700_000_030.0)


class TestMemoryKV:
    def test_values_expire(self, clock):
        kv = MemoryKV(clock=clock)

        async def scenario():
            await kv.put("a", "1", 60)
            first = await kv.get("a")
            clock.t += 60
            second = await kv.get("a")
            return first, second

        assert asyncio.run(scenario()) == ("1", None)
        assert len(kv) == 0


class TestRateLimiter:
    def test_window_key(self, clock):
        limiter = RateLimiter(MemoryKV(clock=clock), clock=clock)
        assert limiter.key_for("203.0.113.9") == "ratelimit:203.0.113.9:28333333"
        assert limiter.retry_after() == 10

    def test_blocks_after_threshold(self, clock):
        limiter = RateLimiter(MemoryKV(clock=clock), threshold=3, clock=clock)

        async def scenario():
            return [await limiter.check("198.51.100.1") for _ in range(4)]

        decisions = asyncio.run(scenario())
        assert [d.allowed for d in decisions] == [True, True, True, False]
        assert [d.count for d in decisions] == [1, 2, 3, 3]
        assert decisions[-1].retry_after == 10

    def test_new_minute_starts_fresh(self, clock):
        limiter = RateLimiter(MemoryKV(clock=clock), threshold=1, clock=clock)

        async def scenario():
            a = await limiter.check("ip")
            b = await limiter.check("ip")
            clock.t += 10
            c = await limiter.check("ip")
            return a, b, c

        a, b, c = asyncio.run(scenario())
        assert a.allowed and not b.allowed and c.allowed

    def test_ips_are_counted_separately(self, clock):
        limiter = RateLimiter(MemoryKV(clock=clock), threshold=1, clock=clock)

        async def scenario():
            return await limiter.check("a"), await limiter.check("b")

        assert all(d.allowed for d in asyncio.run(scenario()))

    def test_kv_failure_fails_open(self, clock, caplog):
        limiter = RateLimiter(BrokenKV(), threshold=1, clock=clock)

        async def scenario():
            return [await limiter.check("ip") for _ in range(3)]

        assert all(d.allowed for d in asyncio.run(scenario()))
        assert "KV read failed" in caplog.text


class TestClientIP:
    def test_precedence(self):
        assert client_ip({"cf-connecting-ip": "1.1.1.1", "x-forwarded-for": "2.2.2.2"}) == "1.1.1.1"
        assert client_ip({"x-forwarded-for": "2.2.2.2, 10.0.0.1"}) == "2.2.2.2"
        assert client_ip({}) == "localhost"
