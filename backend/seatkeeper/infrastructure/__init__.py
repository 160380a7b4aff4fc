"""
Infrastructure layer - external system integrations.
Keeps business logic clean from implementation details.
"""

from .redis_client import get_redis, RedisClient
from . import keys

__all__ = ['get_redis', 'RedisClient', 'keys']
