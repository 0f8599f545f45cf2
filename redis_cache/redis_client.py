import os
from functools import lru_cache

import redis

from doc_chat.logger import GLOBAL_LOGGER as log

REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", "6379"))
REDIS_DB = int(os.getenv("REDIS_DB", "0"))


@lru_cache(maxsize=1)
def get_redis_client() -> redis.Redis:
    """
    Shared Redis client (created lazily; only used when the redis rate
    limit backend is configured).
    """
    log.info("Creating Redis client | host=%s | port=%d | db=%d", REDIS_HOST, REDIS_PORT, REDIS_DB)
    return redis.Redis(
        host=REDIS_HOST,
        port=REDIS_PORT,
        db=REDIS_DB,
        decode_responses=True,
        socket_timeout=2.0,
        socket_connect_timeout=2.0,
    )


def redis_available(client: redis.Redis) -> bool:
    try:
        return bool(client.ping())
    except redis.RedisError as e:
        log.warning("Redis ping failed | error=%s", str(e))
        return False
