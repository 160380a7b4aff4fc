"""
Redis client for seat locks, admission control and the deferred queue.
Separated from business logic for clean architecture.
"""

import os
from functools import lru_cache
from typing import Optional

import redis.asyncio as redis

from seatkeeper.core.config import get_settings
from seatkeeper.core.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()

LUA_DIR = os.path.join(os.path.dirname(__file__), "lua")


class RedisClient:
    """Process-wide Redis client with connection pooling."""

    _instance: Optional[redis.Redis] = None

    @classmethod
    def get_client(cls) -> redis.Redis:
        """Get or create Redis client instance."""
        if cls._instance is None:
            cls._instance = redis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30,
            )
        return cls._instance

    @classmethod
    def use(cls, client: Optional[redis.Redis]) -> None:
        """Install an already-built client (tests, embedding)."""
        cls._instance = client

    @classmethod
    async def close(cls) -> None:
        """Close Redis connection."""
        if cls._instance is not None:
            await cls._instance.aclose()
            cls._instance = None


async def get_redis() -> redis.Redis:
    """FastAPI dependency returning the shared Redis client."""
    return RedisClient.get_client()


@lru_cache()
def load_script(name: str) -> str:
    with open(os.path.join(LUA_DIR, f"{name}.lua"), "r") as f:
        return f.read()


async def ping() -> bool:
    try:
        return bool(await RedisClient.get_client().ping())
    except Exception as e:
        logger.error("redis_ping_failed", error=str(e))
        return False


async def get_lock_store_stats() -> dict:
    """Redis statistics for the health endpoint."""
    client = RedisClient.get_client()
    try:
        info = await client.info("stats")
        return {
            "status": "connected",
            "hits": info.get("keyspace_hits", 0),
            "misses": info.get("keyspace_misses", 0),
            "keys": await client.dbsize(),
        }
    except Exception as e:
        return {"status": "error", "error": str(e)}
