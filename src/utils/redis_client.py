"""Async Redis client construction shared by the registry and orchestrator stores."""

from redis.asyncio import Redis
from redis.asyncio.connection import ConnectionPool

from src.utils.logging.framework import SmartLogger

logger = SmartLogger("storage")


def create_redis_client(url: str) -> Redis:
    """Build a Redis client with a pooled connection and string responses."""
    pool = ConnectionPool.from_url(
        url,
        encoding="utf-8",
        decode_responses=True,
        socket_connect_timeout=2,
        socket_timeout=2,
        health_check_interval=30,
        retry_on_timeout=True,
    )
    logger.info("redis_client_created", redis_host=pool.connection_kwargs.get("host"))
    return Redis(connection_pool=pool)
