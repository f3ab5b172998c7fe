# /agrichat/services/session_store.py

import json
import time
import uuid
import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict, Optional, Tuple

from agrichat.config.settings import settings
from agrichat.models.session import Flow, Session, SessionUser, now_ms
from agrichat.services.cache_service import cache_service
from agrichat.utils.metrics import session_store_errors

# Conversation state per WhatsApp number behind one contract with two
# backends: an in-process map for single-node and test deployments and a
# Redis-backed store that any instance can continue a conversation from.
# Both share the merge rules in `merge_session`, so swapping backends never
# changes conversation behavior.

logger = logging.getLogger(__name__)

SESSION_KEY_PREFIX = "wa:session:"
PREV_KEY = "_prev"


def merge_session(
    current: Session,
    flow: Optional[Flow] = None,
    data: Optional[Dict[str, Any]] = None,
    user: Optional[SessionUser] = None,
    replace_data: bool = False,
) -> Session:
    """
    Shallow-merges a patch into `current`. When the flow or data changes, the
    prior (flow, data) pair is kept under `data._prev` for one-step undo. The
    snapshot never contains its own `_prev`, so undo is exactly one level deep.
    `replace_data` starts from an empty map but keeps the chosen locale.
    """
    if replace_data:
        base = {"locale": current.data["locale"]} if "locale" in current.data else {}
    else:
        base = dict(current.data)
    next_data = {**base, **(data or {})}

    if flow is not None or data is not None:
        snapshot = {k: v for k, v in current.data.items() if k != PREV_KEY}
        next_data[PREV_KEY] = {"flow": current.flow.value, "data": snapshot}

    return Session(
        flow=flow if flow is not None else current.flow,
        data=next_data,
        user=user if user is not None else current.user,
        updated_at=now_ms(),
    )


def restore_previous(current: Session) -> Optional[Session]:
    prev = current.previous
    if not prev:
        return None
    data = {k: v for k, v in (prev.get("data") or {}).items() if k != PREV_KEY}
    return Session(flow=Flow.parse(prev["flow"]), data=data, user=current.user, updated_at=now_ms())


class SessionStore(ABC):
    @abstractmethod
    async def get(self, channel_id: str) -> Session:
        """Returns the live session, creating a fresh one when absent or expired."""

    @abstractmethod
    async def set(
        self,
        channel_id: str,
        *,
        flow: Optional[Flow] = None,
        data: Optional[Dict[str, Any]] = None,
        user: Optional[SessionUser] = None,
        replace_data: bool = False,
    ) -> Session:
        """Merges a patch into the session and returns the stored result."""

    @abstractmethod
    async def clear(self, channel_id: str) -> None:
        pass

    @abstractmethod
    async def _save(self, channel_id: str, session: Session) -> None:
        pass

    async def undo(self, channel_id: str) -> Optional[Session]:
        """Restores the one-step snapshot. Returns None when there is nothing to undo."""
        restored = restore_previous(await self.get(channel_id))
        if restored is None:
            return None
        await self._save(channel_id, restored)
        return restored

    @abstractmethod
    def lock(self, channel_id: str):
        """Async context manager serialising work for one channel."""

    async def start(self):
        pass

    async def stop(self):
        pass


class MemorySessionStore(SessionStore):
    def __init__(self, ttl_seconds: int = 1800, sweep_interval: int = 60, clock: Callable[[], float] = time.time):
        self.ttl_ms = ttl_seconds * 1000
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._sessions: Dict[str, Session] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._sweeper: Optional[asyncio.Task] = None

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _expired(self, session: Session) -> bool:
        return self._now_ms() - session.updated_at > self.ttl_ms

    async def get(self, channel_id: str) -> Session:
        session = self._sessions.get(channel_id)
        if session is None or self._expired(session):
            session = Session(updated_at=self._now_ms())
            self._sessions[channel_id] = session
        return session.model_copy(deep=True)

    async def set(self, channel_id, *, flow=None, data=None, user=None, replace_data=False) -> Session:
        merged = merge_session(await self.get(channel_id), flow, data, user, replace_data)
        merged.updated_at = self._now_ms()
        await self._save(channel_id, merged)
        return merged.model_copy(deep=True)

    async def _save(self, channel_id: str, session: Session) -> None:
        session.updated_at = self._now_ms()
        self._sessions[channel_id] = session.model_copy(deep=True)

    async def clear(self, channel_id: str) -> None:
        self._sessions.pop(channel_id, None)

    def sweep(self) -> int:
        expired = [cid for cid, s in self._sessions.items() if self._expired(s)]
        for cid in expired:
            self._sessions.pop(cid, None)
            lock = self._locks.get(cid)
            if lock is not None and not lock.locked():
                self._locks.pop(cid, None)
        return len(expired)

    async def _sweep_loop(self):
        while True:
            await asyncio.sleep(self.sweep_interval)
            removed = self.sweep()
            if removed:
                logger.debug(f"Swept {removed} idle sessions")

    async def start(self):
        if self._sweeper is None:
            self._sweeper = asyncio.create_task(self._sweep_loop())

    async def stop(self):
        if self._sweeper:
            self._sweeper.cancel()
            await asyncio.gather(self._sweeper, return_exceptions=True)
            self._sweeper = None

    @asynccontextmanager
    async def lock(self, channel_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(channel_id, asyncio.Lock())
        async with lock:
            yield


class RedisSessionStore(SessionStore):
    def __init__(self, redis_client, ttl_seconds: int = 1800, lock_ttl_ms: int = 15000, lock_wait_seconds: float = 10.0):
        self.redis = redis_client
        self.ttl_seconds = ttl_seconds
        self.lock_ttl_ms = lock_ttl_ms
        self.lock_wait_seconds = lock_wait_seconds

    def _key(self, channel_id: str) -> str:
        return f"{SESSION_KEY_PREFIX}{channel_id}"

    async def get(self, channel_id: str) -> Session:
        key = self._key(channel_id)
        try:
            raw = await self.redis.get(key)
            if not raw:
                fresh = Session()
                await self.redis.set(key, fresh.to_json(), ex=self.ttl_seconds)
                return fresh
            session = Session.model_validate(json.loads(raw))
            await self.redis.expire(key, self.ttl_seconds)
            return session
        except Exception as e:
            session_store_errors.labels(operation="get").inc()
            logger.error(f"Session read failed for {channel_id[:4]}..., falling back to fresh: {e}")
            return Session()

    async def set(self, channel_id, *, flow=None, data=None, user=None, replace_data=False) -> Session:
        merged = merge_session(await self.get(channel_id), flow, data, user, replace_data)
        await self._save(channel_id, merged)
        return merged

    async def _save(self, channel_id: str, session: Session) -> None:
        try:
            await self.redis.set(self._key(channel_id), session.to_json(), ex=self.ttl_seconds)
        except Exception as e:
            session_store_errors.labels(operation="set").inc()
            logger.error(f"Session write failed for {channel_id[:4]}... (flow={session.flow.value}): {e}")

    async def clear(self, channel_id: str) -> None:
        try:
            await self.redis.delete(self._key(channel_id))
        except Exception as e:
            session_store_errors.labels(operation="clear").inc()
            logger.error(f"Session clear failed for {channel_id[:4]}...: {e}")

    @asynccontextmanager
    async def lock(self, channel_id: str) -> AsyncIterator[None]:
        key = f"{self._key(channel_id)}:lock"
        token = uuid.uuid4().hex
        deadline = time.monotonic() + self.lock_wait_seconds
        acquired = False
        while not acquired:
            acquired = bool(await self.redis.set(key, token, nx=True, px=self.lock_ttl_ms))
            if acquired:
                break
            if time.monotonic() >= deadline:
                # Proceed unserialised rather than dropping the user's message.
                logger.warning(f"Session lock wait timed out for {channel_id[:4]}...")
                break
            await asyncio.sleep(0.05)
        try:
            yield
        finally:
            if acquired and await self.redis.get(key) == token:
                await self.redis.delete(key)


def create_session_store(config=settings, redis_client=None) -> Tuple[str, SessionStore]:
    if config.session_backend == "memory":
        store: SessionStore = MemorySessionStore(config.session_ttl_seconds, config.session_sweep_interval_seconds)
    else:
        store = RedisSessionStore(redis_client if redis_client is not None else cache_service.redis,
                                  config.session_ttl_seconds)
    return config.session_backend, store


# Globally accessible instance
session_backend, session_store = create_session_store()
