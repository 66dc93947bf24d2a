"""SessionStore — per-chat conversation state in Redis with a fixed TTL."""

from __future__ import annotations

import logging

import redis.asyncio as aioredis
from pydantic import ValidationError

from schemas.session import ConversationSession, session_adapter

logger = logging.getLogger(__name__)

SESSION_KEY = "session:{chat_id}"
_DEFAULT_TTL = 3600


class SessionStore:
    def __init__(self, redis: aioredis.Redis, ttl: int = _DEFAULT_TTL):
        self._redis = redis
        self._ttl = ttl

    async def get(self, chat_id: str) -> ConversationSession | None:
        """Load the session for *chat_id*.

        A stored value that does not decode into a known step is logged,
        deleted, and reported as no session.
        """
        key = SESSION_KEY.format(chat_id=chat_id)
        raw = await self._redis.get(key)
        if raw is None:
            return None
        try:
            return session_adapter.validate_json(raw)
        except ValidationError:
            logger.warning("Discarding malformed session for chat %s: %r", chat_id, raw)
            await self._redis.delete(key)
            return None

    async def set(self, chat_id: str, session: ConversationSession) -> None:
        key = SESSION_KEY.format(chat_id=chat_id)
        await self._redis.set(key, session_adapter.dump_json(session), ex=self._ttl)

    async def delete(self, chat_id: str) -> None:
        await self._redis.delete(SESSION_KEY.format(chat_id=chat_id))

    async def clear(self) -> int:
        """Delete every stored session. Returns the number of keys removed."""
        removed = 0
        async for key in self._redis.scan_iter(match=SESSION_KEY.format(chat_id="*")):
            removed += await self._redis.delete(key)
        return removed
