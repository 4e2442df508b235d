"""
Tests for the in-process cache and its invalidation by ledger commits
"""

import pytest

from src.cache import CacheKeys, MemoryCache, NullCache
from src.core.enums import UserRole
from src.core.exceptions import InsufficientFundsError, InvalidRequestError
from src.services.user_service import UserService


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_cache(clock):
    return MemoryCache(default_ttl=60, clock=clock)


# ===========================
# MEMORY CACHE
# ===========================


@pytest.mark.asyncio
async def test_entry_expires_after_ttl(fake_cache, clock):
    await fake_cache.set("user:1", {"coins": 10}, ttl=30)

    clock.advance(29)
    assert await fake_cache.get("user:1") == {"coins": 10}

    clock.advance(1)
    assert await fake_cache.get("user:1") is None
    assert fake_cache.get_stats()["expired"] == 1


@pytest.mark.asyncio
async def test_default_ttl_and_zero_ttl(fake_cache, clock):
    assert await fake_cache.set("a", 1) is True
    assert await fake_cache.set("b", 2, ttl=0) is False

    clock.advance(59)
    assert await fake_cache.get("a") == 1
    assert await fake_cache.get("b", default="missing") == "missing"


@pytest.mark.asyncio
async def test_values_are_copied(fake_cache):
    value = {"items": [1, 2]}
    await fake_cache.set("k", value)
    value["items"].append(3)

    cached = await fake_cache.get("k")
    assert cached == {"items": [1, 2]}

    cached["items"].clear()
    assert await fake_cache.get("k") == {"items": [1, 2]}


@pytest.mark.asyncio
async def test_delete_and_delete_pattern(fake_cache):
    await fake_cache.set(CacheKeys.performers(20, 0), [1])
    await fake_cache.set(CacheKeys.performers(20, 20), [2])
    await fake_cache.set(CacheKeys.user(1), {"id": 1})

    assert await fake_cache.delete_pattern(CacheKeys.performers_pattern()) == 2
    assert len(fake_cache) == 1
    assert await fake_cache.delete(CacheKeys.user(1), CacheKeys.user(2)) == 1
    assert len(fake_cache) == 0


@pytest.mark.asyncio
async def test_sweep_removes_only_expired(fake_cache, clock):
    await fake_cache.set("short", 1, ttl=10)
    await fake_cache.set("long", 2, ttl=100)

    clock.advance(50)
    assert fake_cache.sweep() == 1
    assert len(fake_cache) == 1
    assert await fake_cache.get("long") == 2


@pytest.mark.asyncio
async def test_max_entries_evicts(clock):
    cache = MemoryCache(default_ttl=60, max_entries=2, clock=clock)
    await cache.set("a", 1, ttl=10)
    await cache.set("b", 2, ttl=20)
    await cache.set("c", 3, ttl=30)

    assert len(cache) == 2
    assert await cache.get("a") is None
    assert await cache.get("c") == 3


@pytest.mark.asyncio
async def test_stats_hit_rate(fake_cache):
    await fake_cache.set("k", 1)
    await fake_cache.get("k")
    await fake_cache.get("missing")

    stats = fake_cache.get_stats()
    assert stats["hits"] == 1
    assert stats["misses"] == 1
    assert stats["hit_rate"] == 0.5


@pytest.mark.asyncio
async def test_null_cache_stores_nothing():
    cache = NullCache()
    assert await cache.set("k", 1) is False
    assert await cache.get("k") is None


def test_cache_keys():
    assert CacheKeys.user(42) == "user:42"
    assert CacheKeys.messages(7) == "messages:7"
    assert CacheKeys.conversation(3) == "conversation:3"
    assert CacheKeys.performers(20, 0) == "performers:20:0"


# ===========================
# INVALIDATION
# ===========================


@pytest.mark.asyncio
async def test_profile_reflects_ledger_credit(db_session, cache, ledger, regular_user):
    users = UserService(cache)

    profile = await users.get_profile(db_session, regular_user.id)
    assert profile["coins"] == 100
    assert await cache.get(CacheKeys.user(regular_user.id)) is not None

    await ledger.credit(db_session, regular_user.id, 25, "Bonus")

    assert await cache.get(CacheKeys.user(regular_user.id)) is None
    profile = await users.get_profile(db_session, regular_user.id)
    assert profile["coins"] == 125


@pytest.mark.asyncio
async def test_credit_leaves_other_users_cached(db_session, cache, ledger, make_user):
    users = UserService(cache)
    payee = await make_user(coins=100)
    bystander = await make_user(coins=40)

    await users.get_profile(db_session, payee.id)
    await users.get_profile(db_session, bystander.id)

    await ledger.credit(db_session, payee.id, 25, "Bonus")

    assert await cache.get(CacheKeys.user(payee.id)) is None
    cached = await cache.get(CacheKeys.user(bystander.id))
    assert cached is not None
    assert cached["coins"] == 40
    hits = cache.get_stats()["hits"]
    assert (await users.get_profile(db_session, bystander.id))["coins"] == 40
    assert cache.get_stats()["hits"] == hits + 1


@pytest.mark.asyncio
async def test_failed_debit_keeps_cached_profile(db_session, cache, ledger, regular_user):
    users = UserService(cache)
    user_id = regular_user.id
    await users.get_profile(db_session, user_id)

    with pytest.raises(InsufficientFundsError):
        await ledger.debit(db_session, user_id, 1000, "Too much")

    cached = await cache.get(CacheKeys.user(user_id))
    assert cached["coins"] == 100


@pytest.mark.asyncio
async def test_performer_price_edit_invalidates_directory(db_session, cache, performer):
    users = UserService(cache)

    page = await users.list_performers(db_session)
    assert page[0]["message_price"] == 35

    await users.update_profile(db_session, performer, message_price=50)

    assert await cache.get(CacheKeys.performers(20, 0)) is None
    page = await users.list_performers(db_session)
    assert page[0]["message_price"] == 50
    assert "coins" not in page[0]


@pytest.mark.asyncio
async def test_regular_user_cannot_set_price(db_session, cache, regular_user):
    users = UserService(cache)

    with pytest.raises(InvalidRequestError):
        await users.update_profile(db_session, regular_user, message_price=50)


@pytest.mark.asyncio
async def test_set_role_to_performer(db_session, cache, regular_user):
    users = UserService(cache)
    assert await users.list_performers(db_session) == []

    profile = await users.set_role(db_session, regular_user, UserRole.PERFORMER)

    assert profile["role"] == "performer"
    page = await users.list_performers(db_session)
    assert [p["id"] for p in page] == [regular_user.id]
