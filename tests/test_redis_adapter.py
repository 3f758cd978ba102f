import threading
import time
import unittest

from kvcache.l2_redis import RedisAdapter
from kvcache.manager import Cache

# Try to import fakeredis
try:
    import fakeredis
except ImportError:
    fakeredis = None


class RedisAdapterTestCase(unittest.TestCase):
    def setUp(self):
        if not fakeredis:
            self.skipTest("fakeredis not installed")
        self.redis_client = fakeredis.FakeRedis(server=fakeredis.FakeServer())
        self.cache = RedisAdapter(redis_client=self.redis_client, key_prefix="test:")


class TestRedisAdapter(RedisAdapterTestCase):
    def test_set_get(self):
        self.cache.set("k", {"a": 1}, 0)
        self.assertEqual(self.cache.get("k"), {"a": 1})
        self.assertTrue(self.redis_client.exists("test:k"))
        self.assertEqual(self.redis_client.ttl("test:k"), -1)

    def test_set_with_duration(self):
        self.cache.set("k", "v", 60)
        ttl = self.redis_client.ttl("test:k")
        self.assertTrue(0 < ttl <= 60, f"TTL was {ttl}")
        remaining = self.cache.get_expire("k")
        self.assertGreater(remaining, 59)
        self.assertLessEqual(remaining, 60)

    def test_expiry(self):
        self.cache.set("k", "v", 0.05)
        time.sleep(0.1)
        self.assertIsNone(self.cache.get("k"))
        self.assertFalse(self.cache.contains("k"))

    def test_set_none_or_negative_removes(self):
        self.cache.set("a", 1, 0)
        self.cache.set("b", 2, 0)
        self.cache.set("a", None, 0)
        self.cache.set("b", 3, -1)
        self.assertEqual(self.cache.size(), 0)

    def test_get_expire(self):
        self.cache.set("k", "v", 0)
        self.assertEqual(self.cache.get_expire("k"), 0)
        self.assertEqual(self.cache.get_expire("missing"), -1)

    def test_set_map(self):
        self.cache.set_map({"p": 1, "q": 2, "r": None}, 10)
        self.assertEqual(self.cache.data(), {"p": 1, "q": 2})
        self.assertGreater(self.cache.get_expire("p"), 9)

    def test_set_if_not_exist(self):
        self.assertTrue(self.cache.set_if_not_exist("k", "v1", 10))
        self.assertFalse(self.cache.set_if_not_exist("k", "v2", 10))
        self.assertEqual(self.cache.get("k"), "v1")
        self.assertTrue(self.cache.set_if_not_exist("forever", "v", 0))
        self.assertEqual(self.cache.get_expire("forever"), 0)

    def test_set_if_not_exist_func(self):
        calls = []

        def f():
            calls.append(1)
            return "v"

        self.assertTrue(self.cache.set_if_not_exist_func("k", f, 0))
        self.assertFalse(self.cache.set_if_not_exist_func("k", f, 0))
        self.assertFalse(self.cache.set_if_not_exist_func_lock("k", f, 0))
        self.assertEqual(len(calls), 1)

    def test_get_or_set(self):
        self.assertEqual(self.cache.get_or_set("k", "v1", 0), "v1")
        self.assertEqual(self.cache.get_or_set("k", "v2", 0), "v1")
        self.assertEqual(self.cache.get_or_set("p", lambda: "made", 0), "made")
        self.assertEqual(self.cache.get("p"), "made")

    def test_get_or_set_func(self):
        self.assertEqual(self.cache.get_or_set_func("k", lambda: 7, 0), 7)
        self.assertEqual(self.cache.get_or_set_func_lock("k", lambda: 8, 0), 7)
        self.assertIsNone(self.cache.get_or_set_func("none", lambda: None, 0))
        self.assertFalse(self.cache.contains("none"))

    def test_producer_error_propagates(self):
        def f():
            raise ValueError("boom")

        with self.assertRaises(ValueError):
            self.cache.get_or_set_func_lock("k", f, 0)
        self.assertFalse(self.cache.contains("k"))

    def test_update_keeps_ttl(self):
        self.cache.set("k", "v1", 60)
        self.assertEqual(self.cache.update("k", "v2"), ("v1", True))
        self.assertEqual(self.cache.get("k"), "v2")
        self.assertGreater(self.cache.get_expire("k"), 59)

    def test_update_never_expiring(self):
        self.cache.set("k", "v1", 0)
        self.assertEqual(self.cache.update("k", "v2"), ("v1", True))
        self.assertEqual(self.cache.get_expire("k"), 0)

    def test_update_missing_and_none(self):
        self.assertEqual(self.cache.update("missing", "v"), (None, False))
        self.assertFalse(self.cache.contains("missing"))
        self.cache.set("k", "v", 0)
        self.assertEqual(self.cache.update("k", None), ("v", True))
        self.assertFalse(self.cache.contains("k"))

    def test_update_expire(self):
        self.assertEqual(self.cache.update_expire("missing", 10), -1)
        self.assertFalse(self.cache.contains("missing"))

        self.cache.set("k", "v", 0)
        self.assertEqual(self.cache.update_expire("k", 10), 0)
        self.assertGreater(self.cache.get_expire("k"), 9)

        previous = self.cache.update_expire("k", 0)
        self.assertGreater(previous, 9)
        self.assertEqual(self.cache.get_expire("k"), 0)

        self.cache.update_expire("k", -1)
        self.assertIsNone(self.cache.get("k"))

    def test_remove(self):
        self.cache.set_map({"a": 1, "b": 2, "c": 3}, 0)
        self.assertEqual(self.cache.remove("a", "b", "c"), 3)
        self.assertEqual(self.cache.size(), 0)
        self.assertIsNone(self.cache.remove())

    def test_removes(self):
        self.cache.set_map({"a": 1, "b": 2}, 0)
        self.cache.removes(["a"])
        self.assertEqual(self.cache.keys(), ["b"])

    def test_keys_are_stringified(self):
        self.cache.set(1, "one", 0)
        self.assertEqual(self.cache.get(1), "one")
        self.assertEqual(self.cache.keys(), ["1"])
        self.assertEqual(self.cache.key_strings(), ["1"])

    def test_prefix_isolation_and_clear(self):
        other = RedisAdapter(redis_client=self.redis_client, key_prefix="other:")
        self.cache.set_map({"a": 1, "b": 2}, 0)
        other.set("a", "x", 0)
        self.assertEqual(self.cache.size(), 2)
        self.assertEqual(other.data(), {"a": "x"})

        self.cache.clear()
        self.assertEqual(self.cache.size(), 0)
        self.assertEqual(other.get("a"), "x")

    def test_values_and_stats(self):
        self.cache.set_map({"a": 1, "b": 2}, 0)
        self.assertEqual(sorted(self.cache.values()), [1, 2])
        stats = self.cache.get_stats()
        self.assertEqual(stats["type"], "redis")
        self.assertEqual(stats["prefix"], "test:")
        self.assertEqual(stats["size"], 2)

    def test_corrupted_value_reads_as_missing(self):
        self.redis_client.set("test:bad", b"xyz")
        self.assertIsNone(self.cache.get("bad"))

    def test_ping(self):
        self.assertTrue(self.cache.ping())


class TestCacheOverRedis(RedisAdapterTestCase):
    def test_single_flight_through_facade(self):
        cache = Cache(self.cache)
        calls = []
        lock = threading.Lock()
        barrier = threading.Barrier(20)
        results = []

        def f():
            with lock:
                calls.append(1)
            time.sleep(0.05)
            return 42

        def worker():
            barrier.wait()
            value = cache.get_or_set_func_lock("k", f, 0)
            with lock:
                results.append(value)

        threads = [threading.Thread(target=worker) for _ in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(results, [42] * 20)
        self.assertEqual(len(calls), 1)
        self.assertEqual(self.cache.get("k"), 42)


if __name__ == '__main__':
    unittest.main()
