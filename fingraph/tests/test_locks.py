import unittest
from unittest.mock import patch

import redis

from fingraph.locks import DistributedLock, lock_key


class FakeRedis:
    """Just enough of ``redis.Redis`` for SET NX and the release script."""

    def __init__(self) -> None:
        self.store: dict[str, str] = {}
        self.expiry: dict[str, int] = {}

    def set(self, name, value, nx=False, ex=None):
        if nx and name in self.store:
            return None
        self.store[name] = value
        self.expiry[name] = ex
        return True

    def eval(self, script, numkeys, key, token):
        if self.store.get(key) == token:
            del self.store[key]
            return 1
        return 0


class BrokenRedis:
    def set(self, *args, **kwargs):
        raise redis.ConnectionError("connection refused")


class DistributedLockTests(unittest.TestCase):
    def setUp(self) -> None:
        self.client = FakeRedis()

    def test_acquire_and_release(self) -> None:
        lock = DistributedLock(self.client)

        self.assertTrue(lock.acquire("updateExchange", ttl=600))
        self.assertEqual(self.client.expiry[lock_key("updateExchange")], 600)
        self.assertTrue(lock.release("updateExchange"))
        self.assertEqual(self.client.store, {})

    def test_held_lock_is_not_acquired_twice(self) -> None:
        holder = DistributedLock(self.client)
        rival = DistributedLock(self.client)
        holder.acquire("job", ttl=60)

        with patch("fingraph.locks.time.sleep") as sleep:
            self.assertFalse(rival.acquire("job", ttl=60, max_retries=3, retry_delay=0.5))
        self.assertEqual(sleep.call_count, 2)

    def test_release_keeps_someone_elses_lock(self) -> None:
        holder = DistributedLock(self.client)
        rival = DistributedLock(self.client)
        holder.acquire("job", ttl=60)

        self.assertFalse(rival.release("job"))
        self.client.store[lock_key("job")] = "stolen"
        self.assertFalse(holder.release("job"))
        self.assertEqual(self.client.store[lock_key("job")], "stolen")

    def test_redis_errors_fail_closed(self) -> None:
        self.assertFalse(DistributedLock(BrokenRedis()).acquire("job", ttl=60))


if __name__ == "__main__":
    unittest.main()
