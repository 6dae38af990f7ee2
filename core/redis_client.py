"""
Redis Connection Pool

Guarda apenas estado efêmero do motor de revisões: tokens de callback e
locks de despacho. O estado das revisões fica no banco.
"""
import redis

from core.config import settings
from core.telemetry import logger

redis_pool = redis.ConnectionPool(
    host=settings.REDIS_HOST,
    port=settings.REDIS_PORT,
    db=settings.REDIS_DB,
    max_connections=settings.REDIS_MAX_CONNECTIONS,
    decode_responses=True,
    socket_connect_timeout=5,
    socket_timeout=5,
    retry_on_timeout=True,
)

redis_client = redis.Redis(connection_pool=redis_pool)


def redis_healthy() -> bool:
    try:
        return bool(redis_client.ping())
    except redis.RedisError as exc:
        logger.warning("Redis health check failed", extra={"error": str(exc)})
        return False
