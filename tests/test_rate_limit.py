"""Per-client fixed-window rate limiting."""

import asyncio

from fastapi.testclient import TestClient

from paygate.common.middleware import RATE_LIMIT_MESSAGE
from paygate.common.rate_limit import InMemoryRateLimiter, RedisRateLimiter
from paygate.services.gateway.main import create_app


def test_101st_request_in_window_is_rejected(client, limiter):
    for _ in range(100):
        assert client.get("/api/test-cors").status_code == 200

    resp = client.get("/api/test-cors")

    assert resp.status_code == 429
    assert resp.text == RATE_LIMIT_MESSAGE
    assert resp.headers["x-ratelimit-remaining"] == "0"
    assert int(resp.headers["retry-after"]) == 900


def test_limit_applies_across_api_routes(client, provider):
    for _ in range(100):
        client.post("/api/create-customer", json={})

    resp = client.post("/api/create-payment-intent", json={"amount": 10})

    assert resp.status_code == 429
    assert provider.calls == []


def test_new_window_resets_the_count(client, clock):
    for _ in range(101):
        client.get("/api/test-cors")

    clock.advance(15 * 60)
    resp = client.get("/api/test-cors")

    assert resp.status_code == 200
    assert resp.headers["x-ratelimit-remaining"] == "99"


def test_rejections_do_not_extend_the_window(client, clock):
    for _ in range(100):
        client.get("/api/test-cors")
    clock.advance(899)
    assert client.get("/api/test-cors").status_code == 429

    clock.advance(1)

    assert client.get("/api/test-cors").status_code == 200


def test_non_api_paths_are_not_limited(client):
    for _ in range(120):
        assert client.get("/health").status_code == 200
    assert "x-ratelimit-limit" not in client.get("/health").headers


def test_limited_responses_carry_rate_limit_headers(client, clock):
    resp = client.get("/api/test-cors")

    assert resp.headers["x-ratelimit-limit"] == "100"
    assert resp.headers["x-ratelimit-remaining"] == "99"
    assert int(resp.headers["x-ratelimit-reset"]) == int(clock.now + 900)


def test_rate_limited_responses_keep_security_headers(gateway_settings, provider, clock):
    limiter = InMemoryRateLimiter(1, 900, clock=clock)
    app = create_app(gateway_settings, provider=provider, rate_limiter=limiter)

    with TestClient(app) as client:
        client.get("/api/test-cors")
        resp = client.get("/api/test-cors")

    assert resp.status_code == 429
    assert resp.headers["x-frame-options"] == "DENY"


def test_in_memory_limiter_keys_are_independent(clock):
    limiter = InMemoryRateLimiter(2, 60, clock=clock)

    async def scenario():
        a = [await limiter.hit("10.0.0.1") for _ in range(3)]
        b = await limiter.hit("10.0.0.2")
        return a, b

    a, b = asyncio.run(scenario())

    assert [d.allowed for d in a] == [True, True, False]
    assert b.allowed and b.remaining == 1


def test_in_memory_limiter_sweeps_expired_windows(clock):
    limiter = InMemoryRateLimiter(5, 60, clock=clock)
    asyncio.run(limiter.hit("old-client"))

    clock.advance(61)
    asyncio.run(limiter.hit("new-client"))

    assert set(limiter._windows) == {"new-client"}


class FakePipeline:
    def __init__(self, store: "FakeRedis") -> None:
        self.store = store
        self.ops: list[tuple] = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def incr(self, key):
        self.ops.append(("incr", key))

    def ttl(self, key):
        self.ops.append(("ttl", key))

    async def execute(self):
        results = []
        for op, key in self.ops:
            if op == "incr":
                self.store.values[key] = self.store.values.get(key, 0) + 1
                results.append(self.store.values[key])
            else:
                results.append(self.store.ttls.get(key, -1))
        return results


class FakeRedis:
    """Just enough of the async Redis client for the limiter."""

    def __init__(self) -> None:
        self.values: dict[str, int] = {}
        self.ttls: dict[str, int] = {}

    def pipeline(self, transaction=True):
        return FakePipeline(self)

    async def expire(self, key, seconds):
        self.ttls[key] = seconds

    async def delete(self, key):
        self.values.pop(key, None)
        self.ttls.pop(key, None)

    async def aclose(self):
        return None


def test_redis_limiter_counts_and_sets_expiry_once(clock):
    redis_client = FakeRedis()
    limiter = RedisRateLimiter(redis_client, 2, 900, clock=clock)

    async def scenario():
        return [await limiter.hit("1.2.3.4") for _ in range(3)]

    decisions = asyncio.run(scenario())

    assert [d.allowed for d in decisions] == [True, True, False]
    assert redis_client.ttls == {"ratelimit:1.2.3.4": 900}
    assert decisions[0].reset_at == clock.now + 900


def test_redis_limiter_reset_clears_the_key(clock):
    redis_client = FakeRedis()
    limiter = RedisRateLimiter(redis_client, 1, 900, clock=clock)

    async def scenario():
        await limiter.hit("k")
        await limiter.reset("k")
        return await limiter.hit("k")

    assert asyncio.run(scenario()).allowed
