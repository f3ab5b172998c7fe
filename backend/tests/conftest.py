# backend/tests/conftest.py

import time
import fnmatch
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from dotenv import load_dotenv
from unittest.mock import AsyncMock, MagicMock

# Load the test environment before any agrichat import so Settings() validates.
load_dotenv(dotenv_path=Path(__file__).resolve().parents[1] / ".env.test")

from agrichat.conversation.context import Collaborators  # noqa: E402
from agrichat.conversation.engine import ConversationEngine  # noqa: E402
from agrichat.services.account_guard import AccountGuard  # noqa: E402
from agrichat.services.ai_service import AIService  # noqa: E402
from agrichat.services.marketplace import MarketplaceFacade  # noqa: E402
from agrichat.services.media_service import MediaService  # noqa: E402
from agrichat.services.session_store import MemorySessionStore  # noqa: E402
from agrichat.services.string_service import StringService  # noqa: E402


class FakeRedis:
    """
    In-memory stand-in for the redis.asyncio commands this service uses.
    Values are strings, as with decode_responses=True.
    """

    def __init__(self):
        self.kv = {}
        self.expiry = {}
        self.zsets = {}
        self.lists = {}
        self.streams = {}
        self.delivered = {}
        self._seq = 0

    # ---------------- Keys ---------------- #

    def _alive(self, key):
        deadline = self.expiry.get(key)
        if deadline is not None and time.time() >= deadline:
            self.kv.pop(key, None)
            self.expiry.pop(key, None)
        return key in self.kv

    async def get(self, key):
        return self.kv.get(key) if self._alive(key) else None

    async def set(self, key, value, ex=None, px=None, nx=False):
        if nx and self._alive(key):
            return None
        self.kv[key] = str(value)
        self.expiry.pop(key, None)
        if ex:
            self.expiry[key] = time.time() + ex
        elif px:
            self.expiry[key] = time.time() + px / 1000
        return True

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            removed += int(self.kv.pop(key, None) is not None)
            self.expiry.pop(key, None)
        return removed

    async def incr(self, key):
        value = int(await self.get(key) or 0) + 1
        self.kv[key] = str(value)
        return value

    async def expire(self, key, seconds):
        if not self._alive(key):
            return False
        self.expiry[key] = time.time() + seconds
        return True

    def keys_matching(self, pattern):
        return [k for k in self.kv if fnmatch.fnmatch(k, pattern) and self._alive(k)]

    async def ping(self):
        return True

    async def aclose(self):
        pass

    # ---------------- Streams ---------------- #

    async def xgroup_create(self, name, group, id="0", mkstream=False):
        self.streams.setdefault(name, [])

    async def xadd(self, name, fields):
        self._seq += 1
        entry_id = f"{int(time.time() * 1000)}-{self._seq}"
        self.streams.setdefault(name, []).append((entry_id, dict(fields)))
        return entry_id

    async def xreadgroup(self, group, consumer, streams, count=1, block=None):
        result = []
        for name in streams:
            seen = self.delivered.setdefault(name, set())
            fresh = [(i, f) for i, f in self.streams.get(name, []) if i not in seen][:count]
            for entry_id, _ in fresh:
                seen.add(entry_id)
            if fresh:
                result.append([name, fresh])
        return result

    async def xack(self, name, group, *ids):
        return len(ids)

    async def xdel(self, name, *ids):
        before = len(self.streams.get(name, []))
        self.streams[name] = [(i, f) for i, f in self.streams.get(name, []) if i not in ids]
        return before - len(self.streams[name])

    async def xlen(self, name):
        return len(self.streams.get(name, []))

    async def xautoclaim(self, name, group, consumer, min_idle_time=0, start_id="0-0", count=10):
        return ["0-0", [], []]

    # ---------------- Sorted sets ---------------- #

    async def zadd(self, key, mapping):
        self.zsets.setdefault(key, {}).update(mapping)
        return len(mapping)

    async def zrangebyscore(self, key, min_score, max_score):
        low = float(min_score)
        high = float(max_score)
        members = sorted(self.zsets.get(key, {}).items(), key=lambda item: item[1])
        return [m for m, score in members if low <= score <= high]

    async def zrem(self, key, *members):
        zset = self.zsets.get(key, {})
        return sum(1 for m in members if zset.pop(m, None) is not None)

    async def zcard(self, key):
        return len(self.zsets.get(key, {}))

    # ---------------- Lists ---------------- #

    async def lpush(self, key, *values):
        items = self.lists.setdefault(key, [])
        for value in values:
            items.insert(0, value)
        return len(items)

    async def ltrim(self, key, start, stop):
        items = self.lists.get(key, [])
        self.lists[key] = items[start:stop + 1 if stop >= 0 else None]

    async def lrange(self, key, start, stop):
        items = self.lists.get(key, [])
        return items[start:stop + 1 if stop >= 0 else None]

    async def llen(self, key):
        return len(self.lists.get(key, []))


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def facade():
    """Marketplace facade double: every async method is an AsyncMock."""
    mock = MagicMock(spec=MarketplaceFacade)
    mock.find_user_by_phone.return_value = None
    mock.record_audit.return_value = None
    mock.index_context.return_value = None
    return mock


@pytest.fixture
def ai():
    mock = MagicMock(spec=AIService)
    mock.enabled = False
    mock.moderate = AsyncMock(return_value=False)
    return mock


@pytest.fixture
def media():
    mock = MagicMock(spec=MediaService)
    mock.store.return_value = "http://storage.test/products/photo.jpg"
    return mock


@pytest.fixture
def guard(fake_redis):
    return AccountGuard(fake_redis, idle_lock_days=14, otp_ttl_seconds=600, otp_max_attempts=5)


@pytest.fixture
def deps(facade, guard, ai, media):
    return Collaborators(
        store=MemorySessionStore(ttl_seconds=1800),
        facade=facade,
        guard=guard,
        ai=ai,
        media=media,
        strings=StringService(),
    )


@pytest.fixture
def engine(deps):
    return ConversationEngine(deps, strict_flows={"upload_price", "upload_short_desc"}, min_score=2)


@pytest.fixture(scope="function")
def test_client(mocker, fake_redis):
    """
    TestClient with the outbound senders and Redis-backed singletons swapped
    for in-memory doubles, so no background worker or server is needed.
    """
    mocker.patch("agrichat.utils.queue.OutboundQueue.start", new_callable=AsyncMock)
    mocker.patch("agrichat.utils.queue.OutboundQueue.initialize", new_callable=AsyncMock)
    mocker.patch("agrichat.services.cache_service.cache_service.redis", fake_redis)
    mocker.patch("agrichat.utils.queue.outbound_queue.redis", fake_redis)

    from agrichat.main import app

    with TestClient(app) as client:
        yield client
