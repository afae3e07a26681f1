"""Redis async client used for roster snapshot caching."""

import redis.asyncio as redis
from redis.exceptions import RedisError

from circles.config import settings

redis_client: redis.Redis | None = None


def get_redis_client() -> redis.Redis:
    """Return the shared Redis client, creating it on first use."""
    global redis_client
    if redis_client is None:
        redis_client = redis.from_url(settings.REDIS_URL, decode_responses=True)
    return redis_client


async def close_redis() -> None:
    global redis_client
    if redis_client is not None:
        await redis_client.aclose()
        redis_client = None


async def ping_redis() -> bool:
    """Health probe: True when Redis answers PING."""
    try:
        return bool(await get_redis_client().ping())
    except RedisError:
        return False
