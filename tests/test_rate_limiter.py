import pytest
import redis

from n2wash import rate_limiter
from n2wash.rate_limiter import check_rate_limit


class FakeRedis:
    def __init__(self, values=None):
        self.values = dict(values or {})
        self.expiry = {}

    def get(self, key):
        return self.values.get(key)

    def ttl(self, key):
        return 30 if key in self.values else -2

    def set(self, key, value, ex=None):
        self.values[key] = str(value)
        self.expiry[key] = ex


class BrokenRedis:
    def get(self, key):
        raise redis.ConnectionError("down")

    def set(self, key, value, ex=None):
        raise redis.ConnectionError("down")


@pytest.fixture(autouse=True)
def fresh_counters(monkeypatch):
    monkeypatch.setattr(rate_limiter, "memory_cache", {})


def test_memory_window():
    assert check_rate_limit("sms_code:1.2.3.4", 2, 60)[:2] == (True, 1)
    assert check_rate_limit("sms_code:1.2.3.4", 2, 60)[:2] == (True, 2)
    allowed, count, ttl = check_rate_limit("sms_code:1.2.3.4", 2, 60)
    assert (allowed, count) == (False, 2)
    assert 0 < ttl <= 60
    assert check_rate_limit("sms_code:5.6.7.8", 2, 60)[0] is True


def test_counter_is_loaded_from_redis():
    client = FakeRedis({"login:1.2.3.4": "4"})
    assert check_rate_limit("login:1.2.3.4", 5, 300, client)[:2] == (True, 5)
    assert check_rate_limit("login:1.2.3.4", 5, 300, client)[0] is False


def test_redis_errors_fall_back_to_memory():
    assert check_rate_limit("verify_code:1.2.3.4", 1, 60, BrokenRedis())[0] is True
    assert check_rate_limit("verify_code:1.2.3.4", 1, 60, BrokenRedis())[0] is False


def test_public_code_endpoint_is_limited(client, instance, monkeypatch):
    monkeypatch.setattr(rate_limiter, "RATE_LIMIT_ENABLED", True)
    monkeypatch.setattr(rate_limiter, "_try_get_redis", lambda: None)

    statuses = [
        client.post("/public/sms-code", params={"slug": "studio"}, json={}).status_code for _ in range(6)
    ]
    assert statuses[-1] == 429
    assert 429 not in statuses[:5]
