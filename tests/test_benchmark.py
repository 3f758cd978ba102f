import unittest

from kvcache.benchmark import run_benchmark
from kvcache.l1_memory import MemoryAdapter
from kvcache.manager import Cache
from kvcache.timer import Timer


class TestBenchmark(unittest.TestCase):
    def setUp(self):
        self.timer = Timer(tick=0.01)

    def tearDown(self):
        self.timer.close()

    def test_run_benchmark_memory(self):
        cache = Cache(MemoryAdapter(timer=self.timer))
        results = run_benchmark("memory", cache, operations=200, threads=4)
        cache.close()

        for name in ("set", "get_hit", "get_miss", "get_or_set_func_lock"):
            self.assertGreater(results[name], 0)
        self.assertEqual(results["hits"], 200)
        # One producer call per contended key.
        self.assertEqual(results["producer_calls"], 50)
        self.assertEqual(cache.size(), 0)

    def test_run_benchmark_lru(self):
        cache = Cache(MemoryAdapter(capacity=50, timer=self.timer))
        results = run_benchmark("lru", cache, operations=200, threads=4)
        cache.close()

        # Only the most recent keys survive eviction.
        self.assertEqual(results["hits"], 50)


if __name__ == '__main__':
    unittest.main()
