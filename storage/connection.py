"""
PDTM Redis Connection

Pooled client for the redis aggregate backend. Either a single
REDIS_URL or the discrete REDIS_HOST / REDIS_PORT / REDIS_DB /
REDIS_PASSWORD variables describe the server.
"""

import logging
import os
from functools import lru_cache
from typing import Any, Dict

import redis
from redis.exceptions import AuthenticationError, RedisError

from engine.config import ConfigError

logger = logging.getLogger(__name__)


# Aggregate writes come from the single work-queue consumer
POOL_MAX_CONNECTIONS = 4
SOCKET_TIMEOUT_S = 5.0


def redis_pool_kwargs() -> Dict[str, Any]:
    """Pool options shared by the URL and discrete-variable forms."""
    return {
        "decode_responses": True,
        "max_connections": POOL_MAX_CONNECTIONS,
        "socket_timeout": SOCKET_TIMEOUT_S,
    }


def build_connection_pool() -> redis.ConnectionPool:
    url = os.getenv("REDIS_URL")
    if url:
        return redis.ConnectionPool.from_url(url, **redis_pool_kwargs())

    password = os.getenv("REDIS_PASSWORD")
    if not password:
        raise ConfigError("REDIS_URL or REDIS_PASSWORD must be set for the redis store backend")

    try:
        port = int(os.getenv("REDIS_PORT", "6379"))
        db = int(os.getenv("REDIS_DB", "0"))
    except ValueError as e:
        raise ConfigError(f"REDIS_PORT and REDIS_DB must be integers: {e}")

    return redis.ConnectionPool(
        host=os.getenv("REDIS_HOST", "localhost"),
        port=port,
        db=db,
        password=password,
        **redis_pool_kwargs(),
    )


@lru_cache(maxsize=1)
def get_redis_client() -> redis.Redis:
    """Process-wide client for RedisAggregateStore; pings once on creation."""
    client = redis.Redis(connection_pool=build_connection_pool())
    try:
        client.ping()
    except AuthenticationError:
        logger.critical("Redis rejected the aggregate store credentials")
        raise
    except RedisError as e:
        logger.critical(f"Aggregate store unreachable: {e}")
        raise

    kwargs = client.connection_pool.connection_kwargs
    logger.info(f"Aggregate store connected at {kwargs.get('host')}:{kwargs.get('port')}/{kwargs.get('db', 0)}")
    return client
