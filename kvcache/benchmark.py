import threading
import time
from typing import Dict

try:
    import fakeredis
except ImportError:
    print("fakeredis not installed, skipping Redis benchmark")
    fakeredis = None

from kvcache.l1_memory import MemoryAdapter
from kvcache.l2_redis import RedisAdapter
from kvcache.manager import Cache


def _rate(operations: int, duration: float) -> float:
    return operations / duration if duration > 0 else float("inf")


def run_benchmark(name: str, cache: Cache, operations: int = 10000, threads: int = 8) -> Dict[str, float]:
    print(f"\n--- Benchmarking {name} ---")
    results: Dict[str, float] = {}

    # SET Benchmark
    start = time.perf_counter()
    for i in range(operations):
        cache.set(f"key:{i}", f"value:{i}")
    duration = time.perf_counter() - start
    results["set"] = _rate(operations, duration)
    print(f"SET: {operations} ops in {duration:.4f}s ({results['set']:.2f} ops/s)")

    # GET Hit Benchmark
    start = time.perf_counter()
    hits = 0
    for i in range(operations):
        if cache.get(f"key:{i}") is not None:
            hits += 1
    duration = time.perf_counter() - start
    results["get_hit"] = _rate(operations, duration)
    results["hits"] = hits
    print(f"GET (Hit): {operations} ops in {duration:.4f}s ({results['get_hit']:.2f} ops/s), {hits} hits")

    # GET Miss Benchmark
    start = time.perf_counter()
    for i in range(operations):
        cache.get(f"key:miss:{i}")
    duration = time.perf_counter() - start
    results["get_miss"] = _rate(operations, duration)
    print(f"GET (Miss): {operations} ops in {duration:.4f}s ({results['get_miss']:.2f} ops/s)")

    # Contended single-flight: every thread asks for the same missing keys.
    calls = []
    lock = threading.Lock()

    def producer():
        with lock:
            calls.append(1)
        return "computed"

    def worker():
        for i in range(operations // threads):
            cache.get_or_set_func_lock(f"flight:{i}", producer)

    workers = [threading.Thread(target=worker) for _ in range(threads)]
    start = time.perf_counter()
    for t in workers:
        t.start()
    for t in workers:
        t.join()
    duration = time.perf_counter() - start
    total = (operations // threads) * threads
    results["get_or_set_func_lock"] = _rate(total, duration)
    results["producer_calls"] = len(calls)
    print(
        f"GET_OR_SET_FUNC_LOCK: {total} ops over {threads} threads in {duration:.4f}s "
        f"({results['get_or_set_func_lock']:.2f} ops/s), {len(calls)} producer calls"
    )

    cache.clear()
    return results


def main():
    ops = 5000

    # 1. Memory adapter
    cache_mem = Cache(MemoryAdapter())
    run_benchmark("Memory adapter", cache_mem, ops)
    cache_mem.close()

    # 2. Memory adapter with LRU eviction
    cache_lru = Cache(MemoryAdapter(capacity=ops // 2))
    run_benchmark(f"Memory adapter (LRU capacity {ops // 2})", cache_lru, ops)
    cache_lru.close()

    # 3. Redis adapter (Fake)
    if fakeredis:
        cache_redis = Cache(RedisAdapter(redis_client=fakeredis.FakeRedis()))
        run_benchmark("Redis adapter (FakeRedis)", cache_redis, ops)
        cache_redis.close()


if __name__ == "__main__":
    main()
