from functools import lru_cache

from redis import Redis
from redis.exceptions import RedisError

from academy_office.config import settings


@lru_cache(maxsize=1)
def get_redis_client() -> Redis:
    return Redis.from_url(
        settings.redis_url,
        decode_responses=True,
        socket_connect_timeout=settings.redis_timeout_seconds,
        socket_timeout=settings.redis_timeout_seconds,
    )


def redis_is_available(client: Redis) -> bool:
    try:
        return bool(client.ping())
    except RedisError:
        return False
