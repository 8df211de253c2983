"""Best-effort Redis helpers.

Every helper degrades to a no-op when Redis is unreachable: cached reads miss,
writes are dropped and locks are granted, so billing never depends on Redis.
"""

import json
import uuid
from collections.abc import Callable
from typing import Any, TypeVar

from redis.exceptions import RedisError

from academy_office.infrastructure.cache.redis_client import get_redis_client
from academy_office.infrastructure.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

_RELEASE_LOCK_SCRIPT = """
if redis.call("GET", KEYS[1]) == ARGV[1] then
    return redis.call("DEL", KEYS[1])
end
return 0
"""


def _call(operation: str, key: str, action: Callable[[Any], T], fallback: T) -> T:
    try:
        return action(get_redis_client())
    except RedisError as exc:
        logger.warning("cache_unavailable", operation=operation, key=key, error=str(exc))
        return fallback


def get_json(cache_key: str) -> dict | None:
    raw = _call("get", cache_key, lambda client: client.get(cache_key), None)
    if not isinstance(raw, str):
        return None
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("cache_payload_invalid", key=cache_key)
        return None
    return value if isinstance(value, dict) else None


def set_json(cache_key: str, value: dict, ttl_seconds: int) -> None:
    try:
        payload = json.dumps(value, default=str)
    except (TypeError, ValueError):
        logger.warning("cache_payload_unserializable", key=cache_key)
        return
    _call("set", cache_key, lambda client: client.setex(cache_key, ttl_seconds, payload), None)


def delete_key(cache_key: str) -> None:
    _call("delete", cache_key, lambda client: client.delete(cache_key), None)


def acquire_lock(lock_key: str, ttl_seconds: int) -> str | None:
    """Return a token when the lock is held, None when somebody else holds it."""
    token = uuid.uuid4().hex
    acquired = _call("lock", lock_key, lambda client: client.set(lock_key, token, nx=True, ex=ttl_seconds), True)
    return token if acquired else None


def release_lock(lock_key: str, token: str) -> None:
    _call("unlock", lock_key, lambda client: client.eval(_RELEASE_LOCK_SCRIPT, 1, lock_key, token), None)
