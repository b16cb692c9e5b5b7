"""
Undo Store - Ephemeral key-value storage for undo records

Records are written once at apply, read then deleted at undo, and otherwise
left to expire. Backends raise StoreUnavailableError whenever the
underlying storage cannot be reached.
"""

from __future__ import annotations

import json
import logging
import secrets
import time
from typing import Any

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from models.fix import UndoRecord

from .errors import StoreUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 24 * 60 * 60


class UndoStore:
    """Key-value store contract: set with TTL, get, delete"""

    async def set(self, key: str, value: dict[str, Any], ttl_seconds: int) -> None:
        raise NotImplementedError

    async def get(self, key: str) -> dict[str, Any] | None:
        raise NotImplementedError

    async def delete(self, key: str) -> None:
        raise NotImplementedError

    async def is_available(self) -> bool:
        return True

    async def close(self) -> None:
        return None


class MemoryUndoStore(UndoStore):
    """In-process store with monotonic-clock expiry, for development and tests"""

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._entries: dict[str, tuple[float, str]] = {}

    async def set(self, key: str, value: dict[str, Any], ttl_seconds: int) -> None:
        now = self._clock()
        self._sweep(now)
        self._entries[key] = (now + ttl_seconds, json.dumps(value))

    def _sweep(self, now: float) -> None:
        """Drop expired entries, including tokens that were never redeemed"""
        expired = [key for key, (expires_at, _) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]

    async def get(self, key: str) -> dict[str, Any] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, payload = entry
        if self._clock() >= expires_at:
            self._entries.pop(key, None)
            return None
        return json.loads(payload)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)


class RedisUndoStore(UndoStore):
    """Redis-backed store; values are JSON strings written with SET EX"""

    def __init__(self, url: str, client: aioredis.Redis | None = None):
        self.url = url
        self._client = client or aioredis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=5,
        )

    async def set(self, key: str, value: dict[str, Any], ttl_seconds: int) -> None:
        try:
            await self._client.set(key, json.dumps(value), ex=ttl_seconds)
        except RedisError as e:
            logger.warning("[UndoStore] Redis SET failed: %s", e)
            raise StoreUnavailableError(f"Undo store unavailable: {e}") from e

    async def get(self, key: str) -> dict[str, Any] | None:
        try:
            data = await self._client.get(key)
        except RedisError as e:
            logger.warning("[UndoStore] Redis GET failed: %s", e)
            raise StoreUnavailableError(f"Undo store unavailable: {e}") from e
        return json.loads(data) if data else None

    async def delete(self, key: str) -> None:
        try:
            await self._client.delete(key)
        except RedisError as e:
            logger.warning("[UndoStore] Redis DEL failed: %s", e)
            raise StoreUnavailableError(f"Undo store unavailable: {e}") from e

    async def is_available(self) -> bool:
        try:
            return bool(await self._client.ping())
        except RedisError as e:
            logger.warning("[UndoStore] Redis health check failed: %s", e)
            return False

    async def close(self) -> None:
        await self._client.aclose()


class UndoRecordStore:
    """Map single-use capability tokens to UndoRecords"""

    def __init__(
        self,
        store: UndoStore,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        key_prefix: str = "fix_undo:",
    ):
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.key_prefix = key_prefix

    def _key(self, token: str) -> str:
        return f"{self.key_prefix}{token}"

    @staticmethod
    def new_token() -> str:
        return secrets.token_urlsafe(24)

    async def save(self, record: UndoRecord) -> str:
        """Persist record under a fresh token and return the token"""
        token = self.new_token()
        await self.store.set(self._key(token), record.model_dump(), self.ttl_seconds)
        return token

    async def load(self, token: str) -> UndoRecord | None:
        data = await self.store.get(self._key(token))
        if data is None:
            return None
        return UndoRecord.model_validate(data)

    async def discard(self, token: str) -> None:
        await self.store.delete(self._key(token))


def create_undo_store(config: dict[str, Any]) -> UndoStore:
    """Redis when a URL is configured, in-memory otherwise"""
    url = config.get("redis", {}).get("url", "")
    if url:
        logger.info("[UndoStore] Using Redis undo store at %s", url)
        return RedisUndoStore(url)
    logger.warning("[UndoStore] No Redis URL configured - undo records are kept in memory")
    return MemoryUndoStore()
