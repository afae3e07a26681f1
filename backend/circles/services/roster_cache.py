"""Roster cache - latest workspace snapshot per user, kept in Redis with a TTL."""

import logging

import redis.asyncio as aioredis
from pydantic import ValidationError
from redis.exceptions import RedisError

from circles.config import settings
from circles.core.errors import PersistenceError
from circles.core.workspace import WorkspaceState

log = logging.getLogger("circles.cache")


class RosterCache:
    def __init__(self, redis: aioredis.Redis, ttl: int = settings.ROSTER_CACHE_TTL):
        self.redis = redis
        self.ttl = ttl

    def _key(self, user_id: str) -> str:
        return f"circles:roster:{user_id}"

    async def get(self, user_id: str) -> WorkspaceState | None:
        """Cached snapshot, or None on a miss or an unreadable entry."""
        try:
            raw = await self.redis.get(self._key(user_id))
        except RedisError as e:
            raise PersistenceError(f"Roster cache unavailable: {e}") from e
        if not raw:
            return None
        try:
            return WorkspaceState.model_validate_json(raw)
        except ValidationError:
            log.warning("dropping unreadable cached roster for %s", user_id)
            await self.clear(user_id)
            return None

    async def save(self, state: WorkspaceState) -> None:
        try:
            await self.redis.set(self._key(state.user_id), state.model_dump_json(), ex=self.ttl)
        except RedisError as e:
            raise PersistenceError(f"Roster cache unavailable: {e}") from e

    async def clear(self, user_id: str) -> None:
        try:
            await self.redis.delete(self._key(user_id))
        except RedisError as e:
            raise PersistenceError(f"Roster cache unavailable: {e}") from e
