import fakeredis
import pytest
import redis
from fastapi import Depends, FastAPI, Request
from fastapi.testclient import TestClient

from app.utils import rate_limit
from app.utils.rate_limit import InMemoryCounterStore, RateLimiter, RedisCounterStore


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def test_in_memory_window_resets():
    clock = FakeClock()
    store = InMemoryCounterStore(clock=clock)
    assert store.hit("quote:1.2.3.4", 60) == (1, 60.0)
    clock.now += 10
    assert store.hit("quote:1.2.3.4", 60) == (2, 50.0)
    clock.now += 50
    # Window elapsed: counting starts over
    assert store.hit("quote:1.2.3.4", 60) == (1, 60.0)


def test_in_memory_evicts_expired_keys():
    clock = FakeClock()
    store = InMemoryCounterStore(cleanup_interval=30, clock=clock)
    for i in range(100):
        store.hit(f"quote:10.0.0.{i}", 10)
    assert len(store) == 100
    clock.now += 31
    store.hit("quote:fresh", 10)
    assert len(store) == 1


def test_redis_store_counts_and_expires():
    fake = fakeredis.FakeStrictRedis(decode_responses=True)
    store = RedisCounterStore(fake)
    assert store.hit("quote:1.2.3.4", 60)[0] == 1
    count, reset_in = store.hit("quote:1.2.3.4", 60)
    assert count == 2
    assert 0 < reset_in <= 60
    assert fake.ttl("ratelimit:quote:1.2.3.4") > 0


def test_redis_store_repairs_missing_ttl():
    fake = fakeredis.FakeStrictRedis(decode_responses=True)
    fake.set("ratelimit:quote:x", 5)
    store = RedisCounterStore(fake)
    count, reset_in = store.hit("quote:x", 60)
    assert count == 6
    assert reset_in == 60
    assert fake.ttl("ratelimit:quote:x") > 0


def test_redis_backend_selected_from_settings(monkeypatch):
    monkeypatch.setattr(rate_limit.settings, "RATE_LIMIT_BACKEND", "redis")
    rate_limit.set_counter_store(None)
    assert isinstance(rate_limit.get_counter_store(), RedisCounterStore)


def make_app(limiter):
    app = FastAPI()

    @app.get("/ping", dependencies=[Depends(limiter)])
    def ping():
        return {"ok": True}

    return app


def test_limiter_returns_429_with_retry_after():
    clock = FakeClock()
    client = TestClient(make_app(RateLimiter(2, 60, "ping", InMemoryCounterStore(clock=clock))))
    assert client.get("/ping").status_code == 200
    assert client.get("/ping").status_code == 200
    clock.now += 15
    res = client.get("/ping")
    assert res.status_code == 429
    assert res.headers["Retry-After"] == "45"
    assert res.json()["detail"]["message"] == "Too many requests, please retry later"


@pytest.mark.parametrize(
    "headers,expected",
    [
        ({"X-Forwarded-For": "203.0.113.7, 10.0.0.1"}, "203.0.113.7"),
        ({"X-Forwarded-For": " "}, "testclient"),
        ({}, "testclient"),
    ],
)
def test_client_identity(headers, expected):
    app = FastAPI()

    @app.get("/whoami")
    def whoami(request: Request):
        return {"identity": rate_limit.client_identity(request)}

    assert TestClient(app).get("/whoami", headers=headers).json() == {"identity": expected}


def test_limiter_uses_injected_store_even_when_empty():
    store = InMemoryCounterStore(clock=FakeClock())
    client = TestClient(make_app(RateLimiter(5, 60, "ping", store)))
    assert len(store) == 0
    assert client.get("/ping").status_code == 200
    assert len(store) == 1
    assert len(rate_limit.get_counter_store()) == 0


class FailingRedis:
    def incr(self, key):
        raise redis.exceptions.ConnectionError("Connection refused")


def test_limiter_allows_requests_when_redis_is_down(caplog):
    limiter = RateLimiter(1, 60, "ping", RedisCounterStore(client=FailingRedis()))
    client = TestClient(make_app(limiter))
    with caplog.at_level("WARNING", logger="app.utils.rate_limit"):
        assert client.get("/ping").status_code == 200
        assert client.get("/ping").status_code == 200
    assert "Rate limit store unavailable" in caplog.text
