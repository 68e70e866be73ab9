from __future__ import annotations

import logging
import time
import uuid

import redis

from fingraph.config import Settings

logger = logging.getLogger(__name__)

LOCK_PREFIX = "{lock}"

# Deletes the key only while it still holds the caller's token.
RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


def create_redis_client(settings: Settings) -> redis.Redis:
    return redis.Redis(
        host=settings.redis_host,
        port=settings.redis_port,
        password=settings.redis_password or None,
        ssl=settings.redis_tls,
        decode_responses=True,
    )


def lock_key(key: str) -> str:
    return f"{LOCK_PREFIX}:{key}"


class DistributedLock:
    """Cross-process mutual exclusion over a single Redis key.

    Each successful ``acquire`` stores a random token under the key; the
    lock expires after ``ttl`` seconds even if the holder dies.
    """

    def __init__(self, client: redis.Redis) -> None:
        self.client = client
        self._tokens: dict[str, str] = {}

    def acquire(
        self,
        key: str,
        ttl: int,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ) -> bool:
        token = uuid.uuid4().hex
        name = lock_key(key)
        for attempt in range(1, max_retries + 1):
            try:
                if self.client.set(name, token, nx=True, ex=ttl):
                    self._tokens[key] = token
                    return True
            except redis.RedisError as exc:
                logger.error("Lock %s acquire failed: %s", name, exc)
                return False
            if attempt < max_retries:
                time.sleep(retry_delay)
        logger.debug("Lock %s is held elsewhere after %s attempts", name, max_retries)
        return False

    def release(self, key: str) -> bool:
        token = self._tokens.pop(key, None)
        if token is None:
            return False
        try:
            return bool(self.client.eval(RELEASE_SCRIPT, 1, lock_key(key), token))
        except redis.RedisError as exc:
            logger.error("Lock %s release failed: %s", lock_key(key), exc)
            return False
