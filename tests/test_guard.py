"""
Tests for the in-flight guard strategies and the strategy factory.
"""

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from crewbook.core.config import get_settings
from crewbook.core.errors import AlreadyProcessingError
from crewbook.services.guard_service import KEY_PREFIX, RELEASE_SCRIPT, RedisInFlightGuard
from crewbook.services.interfaces.guard import GuardKey
from crewbook.services.interfaces.local_guard import LocalInFlightGuard
from crewbook.services import strategy_factory
from crewbook.services.strategy_factory import (
    create_booking_core,
    get_guard_strategy,
    open_booking_core,
)


class FakeRedis:
    """Just enough of redis.asyncio.Redis for SET NX EX based locking."""

    def __init__(self):
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int] = {}

    async def set(self, key, value, nx=False, ex=None):
        if nx and key in self.data:
            return None
        self.data[key] = value
        self.ttls[key] = ex
        return True

    async def get(self, key):
        return self.data.get(key)

    async def delete(self, key):
        return 1 if self.data.pop(key, None) is not None else 0

    async def exists(self, key):
        return 1 if key in self.data else 0

    async def eval(self, script, numkeys, key, owner):
        assert script == RELEASE_SCRIPT and numkeys == 1
        if self.data.get(key) == owner:
            return await self.delete(key)
        return 0

    def expire_now(self, key):
        self.data.pop(key, None)
        self.ttls.pop(key, None)


class BrokenRedis:
    async def set(self, *args, **kwargs):
        raise RedisConnectionError("connection refused")

    get = delete = exists = eval = set


def test_guard_key_format():
    assert str(GuardKey("B1")) == "booking:B1"
    assert str(GuardKey("B1", "W1")) == "booking:B1:worker:W1"
    assert GuardKey("B1", "W1") == GuardKey("B1", "W1")


@pytest.mark.asyncio
async def test_local_guard_one_holder_per_key():
    guard = LocalInFlightGuard()
    key = GuardKey("B1", "W1")

    assert await guard.try_acquire(key)
    assert not await guard.try_acquire(key)
    assert await guard.try_acquire(GuardKey("B1", "W2"))
    assert await guard.try_acquire(GuardKey("B1"))

    await guard.release(key)

    assert not await guard.is_held(key)
    assert await guard.try_acquire(key)


@pytest.mark.asyncio
async def test_local_guard_release_is_idempotent():
    guard = LocalInFlightGuard()

    await guard.release(GuardKey("B1"))

    assert len(guard) == 0


@pytest.mark.asyncio
async def test_hold_releases_on_exception():
    guard = LocalInFlightGuard()
    key = GuardKey("B1")

    with pytest.raises(RuntimeError):
        async with guard.hold(key):
            assert await guard.is_held(key)
            raise RuntimeError("boom")

    assert not await guard.is_held(key)


@pytest.mark.asyncio
async def test_hold_rejects_held_key():
    guard = LocalInFlightGuard()
    key = GuardKey("B1")

    async with guard.hold(key):
        with pytest.raises(AlreadyProcessingError) as exc_info:
            async with guard.hold(key):
                pass

    assert exc_info.value.key == key
    assert len(guard) == 0


@pytest.mark.asyncio
async def test_redis_guard_shared_between_processes():
    """Two guards on one Redis behave like two devices on one account."""
    redis_client = FakeRedis()
    first = RedisInFlightGuard(redis_client, ttl_seconds=30)
    second = RedisInFlightGuard(redis_client, ttl_seconds=30)
    key = GuardKey("B1", "W1")

    assert await first.try_acquire(key)
    assert not await second.try_acquire(key)
    assert await second.is_held(key)
    assert redis_client.ttls[f"{KEY_PREFIX}booking:B1:worker:W1"] == 30

    # A guard that does not own the key cannot release it
    await second.release(key)
    assert await first.is_held(key)

    await first.release(key)

    assert redis_client.data == {}
    assert await second.try_acquire(key)


@pytest.mark.asyncio
async def test_redis_guard_rejects_reentry_in_same_process():
    guard = RedisInFlightGuard(FakeRedis(), ttl_seconds=30)
    key = GuardKey("B1")

    assert await guard.try_acquire(key)
    assert not await guard.try_acquire(key)


@pytest.mark.asyncio
async def test_redis_guard_fails_open():
    guard = RedisInFlightGuard(BrokenRedis(), ttl_seconds=30)
    key = GuardKey("B1")

    assert await guard.try_acquire(key)
    # Still serialized inside this process
    assert not await guard.try_acquire(key)

    await guard.release(key)

    assert await guard.try_acquire(key)


@pytest.fixture
def guard_backend(monkeypatch):
    def configure(value: str):
        monkeypatch.setenv("GUARD_BACKEND", value)
        get_settings.cache_clear()

    yield configure
    get_settings.cache_clear()


def test_strategy_factory_selects_backend(guard_backend):
    guard_backend("local")
    assert isinstance(get_guard_strategy(), LocalInFlightGuard)

    guard_backend("redis")
    assert isinstance(get_guard_strategy(FakeRedis()), RedisInFlightGuard)
    # No client available: fall back to the in-process guard
    assert isinstance(get_guard_strategy(None), LocalInFlightGuard)


def test_core_shares_guard_and_ledger(service, guard):
    core = create_booking_core(service=service, guard=guard)

    assert core.controller.guard is guard
    assert core.engine.guard is guard
    assert core.engine.ledger is core.ledger
    assert core.controller.service is service


@pytest.mark.asyncio
async def test_redis_release_after_expiry_keeps_new_owner():
    """A key that expired mid-call and was taken by another process stays with it."""
    redis_client = FakeRedis()
    first = RedisInFlightGuard(redis_client, ttl_seconds=30)
    second = RedisInFlightGuard(redis_client, ttl_seconds=30)
    third = RedisInFlightGuard(redis_client, ttl_seconds=30)
    key = GuardKey("B1", "W1")
    redis_key = f"{KEY_PREFIX}{key}"

    assert await first.try_acquire(key)
    redis_client.expire_now(redis_key)
    assert await second.try_acquire(key)

    await first.release(key)

    assert redis_client.data[redis_key] == second._owner
    assert not await third.try_acquire(key)


@pytest.fixture
def fake_redis_connection(monkeypatch):
    """Point the core builder at a FakeRedis and record close_redis calls."""
    redis_client = FakeRedis()
    closed = []

    async def fake_get_redis():
        return redis_client

    async def fake_close_redis():
        closed.append(True)

    monkeypatch.setattr(strategy_factory, "get_redis", fake_get_redis)
    monkeypatch.setattr(strategy_factory, "close_redis", fake_close_redis)
    return redis_client, closed


@pytest.mark.asyncio
async def test_open_core_uses_redis_when_configured(guard_backend, fake_redis_connection, service):
    redis_client, closed = fake_redis_connection
    guard_backend("redis")

    core = await open_booking_core(service=service)

    assert isinstance(core.guard, RedisInFlightGuard)
    assert core.guard.redis is redis_client
    assert core.controller.guard is core.engine.guard is core.guard

    outcome = await core.engine.verify("B1", "T1")
    assert outcome.ok
    assert redis_client.data == {}

    await core.aclose()
    assert closed == [True]


@pytest.mark.asyncio
async def test_open_core_local_backend_skips_redis(guard_backend, fake_redis_connection, service):
    _, closed = fake_redis_connection
    guard_backend("local")

    core = await open_booking_core(service=service)
    await core.aclose()

    assert isinstance(core.guard, LocalInFlightGuard)
    assert closed == []


@pytest.mark.asyncio
async def test_open_core_falls_back_when_redis_unreachable(guard_backend, monkeypatch, service):
    async def unreachable():
        return None

    monkeypatch.setattr(strategy_factory, "get_redis", unreachable)
    guard_backend("redis")

    core = await open_booking_core(service=service)

    assert isinstance(core.guard, LocalInFlightGuard)
    assert not core.uses_redis
