"""
Dial-by-Name Directory - Call Session Store

Key-value storage for serialized call sessions, keyed by call id.

A phone call reaches the webhook many times; the session is loaded before
and saved after each invocation. Backends:
- memory: bounded dict with TTL and background cleanup (single process)
- redis:  SETEX with a key prefix (shared across workers)
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import OrderedDict
from typing import Callable, Optional, Protocol, Tuple

import redis.asyncio as redis

from dialbyname.config import Settings
from dialbyname.core.exceptions import ConfigurationError, SessionStoreError
from dialbyname.core.logging import mask_call_id

logger = logging.getLogger(__name__)

REDIS_KEY_PREFIX = "dbn:"


class CallSessionStore(Protocol):
    """Anything that can get/set/clear a serialized session by call id."""

    async def start(self) -> None:
        ...

    async def stop(self) -> None:
        ...

    async def get(self, call_id: str) -> Optional[str]:
        ...

    async def set(self, call_id: str, payload: str) -> None:
        ...

    async def clear(self, call_id: str) -> None:
        ...


class InMemoryCallSessionStore:
    """
    In-memory session store.

    Bounded and TTL-limited. When full, the least recently written session
    is evicted. Sessions are lost on restart, which is fine for calls that
    last minutes.

    Usage:
        store = InMemoryCallSessionStore(max_sessions=1000)
        await store.start()

        await store.set("call-1", session.model_dump_json())
        payload = await store.get("call-1")

        await store.stop()
    """

    def __init__(
        self,
        max_sessions: int = 1000,
        session_ttl_seconds: int = 3600,
        cleanup_interval_seconds: int = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the session store.

        Args:
            max_sessions: Maximum stored sessions (at least 1)
            session_ttl_seconds: Session time-to-live in seconds
            cleanup_interval_seconds: Background cleanup interval
            clock: Time source (monotonic seconds)
        """
        self._sessions: "OrderedDict[str, Tuple[float, str]]" = OrderedDict()
        self._lock = asyncio.Lock()
        self._max_sessions = max(1, max_sessions)
        self._session_ttl = session_ttl_seconds
        self._cleanup_interval = cleanup_interval_seconds
        self._clock = clock
        self._cleanup_task: Optional[asyncio.Task] = None
        self._started = False

    async def start(self) -> None:
        """Start background cleanup task."""
        if self._started:
            return

        self._cleanup_task = asyncio.create_task(self._cleanup_loop())
        self._started = True

        logger.info(
            "Session store started: backend=memory, max=%d, ttl=%ds, cleanup_interval=%ds",
            self._max_sessions,
            self._session_ttl,
            self._cleanup_interval,
        )

    async def stop(self) -> None:
        """Stop background tasks and clear sessions."""
        if not self._started:
            return

        if self._cleanup_task:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass

        async with self._lock:
            count = len(self._sessions)
            self._sessions.clear()

        self._started = False
        logger.info("Session store stopped: cleared %d sessions", count)

    async def get(self, call_id: str) -> Optional[str]:
        async with self._lock:
            item = self._sessions.get(call_id)
            if item is None:
                return None

            expires_at, payload = item
            if expires_at <= self._clock():
                del self._sessions[call_id]
                return None
            return payload

    async def set(self, call_id: str, payload: str) -> None:
        async with self._lock:
            self._sessions.pop(call_id, None)
            while len(self._sessions) >= self._max_sessions:
                evicted, _ = self._sessions.popitem(last=False)
                logger.warning("Session store full, evicted call=%s", mask_call_id(evicted))
            self._sessions[call_id] = (self._clock() + self._session_ttl, payload)

    async def clear(self, call_id: str) -> None:
        async with self._lock:
            self._sessions.pop(call_id, None)

    async def count(self) -> int:
        async with self._lock:
            return len(self._sessions)

    async def evict_expired(self) -> int:
        """Drop every expired session. Returns number removed."""
        now = self._clock()
        async with self._lock:
            stale_ids = [
                call_id for call_id, (expires_at, _) in self._sessions.items()
                if expires_at <= now
            ]
            for call_id in stale_ids:
                del self._sessions[call_id]
        return len(stale_ids)

    async def _cleanup_loop(self) -> None:
        """Background task to evict stale sessions."""
        while True:
            try:
                await asyncio.sleep(self._cleanup_interval)

                removed = await self.evict_expired()
                if removed:
                    logger.info("Cleaned up %d stale call sessions", removed)

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Error in session cleanup loop: %s", str(e))


class RedisCallSessionStore:
    """
    Redis-backed session store.

    Every write refreshes the key's TTL with SETEX, so an abandoned call's
    session simply expires.
    """

    def __init__(
        self,
        client: "redis.Redis",
        session_ttl_seconds: int = 3600,
        key_prefix: str = REDIS_KEY_PREFIX,
    ):
        self._client = client
        self._session_ttl = session_ttl_seconds
        self._prefix = key_prefix

    @classmethod
    def from_url(cls, url: str, session_ttl_seconds: int = 3600) -> "RedisCallSessionStore":
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
        )
        return cls(client, session_ttl_seconds=session_ttl_seconds)

    def _key(self, call_id: str) -> str:
        return f"{self._prefix}{call_id}"

    async def start(self) -> None:
        try:
            await self._client.ping()
        except redis.RedisError as e:
            raise SessionStoreError(
                "Redis session store unreachable", details={"error": str(e)}
            ) from e
        logger.info("Session store started: backend=redis, ttl=%ds", self._session_ttl)

    async def stop(self) -> None:
        await self._client.aclose()
        logger.info("Session store stopped: backend=redis")

    async def get(self, call_id: str) -> Optional[str]:
        try:
            return await self._client.get(self._key(call_id))
        except redis.RedisError as e:
            raise SessionStoreError("Session read failed", details={"error": str(e)}) from e

    async def set(self, call_id: str, payload: str) -> None:
        try:
            await self._client.setex(self._key(call_id), self._session_ttl, payload)
        except redis.RedisError as e:
            raise SessionStoreError("Session write failed", details={"error": str(e)}) from e

    async def clear(self, call_id: str) -> None:
        try:
            await self._client.delete(self._key(call_id))
        except redis.RedisError as e:
            raise SessionStoreError("Session delete failed", details={"error": str(e)}) from e


def create_session_store(settings: Settings) -> CallSessionStore:
    """Build the session store selected by `session_backend`."""
    backend = settings.session_backend.lower()

    if backend == "memory":
        return InMemoryCallSessionStore(
            max_sessions=settings.max_sessions,
            session_ttl_seconds=settings.session_ttl_seconds,
        )
    if backend == "redis":
        return RedisCallSessionStore.from_url(
            settings.redis_url,
            session_ttl_seconds=settings.session_ttl_seconds,
        )

    raise ConfigurationError(
        f"Unknown session backend: {settings.session_backend}",
        details={"supported": ["memory", "redis"]},
    )
