import redis

from .config import REDIS_HOST, REDIS_PORT, REDIS_TIMEOUT_SECONDS


def get_redis_client() -> redis.Redis:
    # Redis only carries advisory events
    return redis.Redis(
        host=REDIS_HOST,
        port=REDIS_PORT,
        decode_responses=True,
        socket_timeout=REDIS_TIMEOUT_SECONDS,
        socket_connect_timeout=REDIS_TIMEOUT_SECONDS,
    )
