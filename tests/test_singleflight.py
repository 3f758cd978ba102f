import threading
import time
import unittest

from kvcache.singleflight import SingleFlight


class TestSingleFlight(unittest.TestCase):
    def test_concurrent_calls_share_one_execution(self):
        flight = SingleFlight()
        calls = []
        lock = threading.Lock()
        barrier = threading.Barrier(20)
        results = []

        def fn():
            with lock:
                calls.append(1)
            time.sleep(0.1)
            return 42

        def worker():
            barrier.wait()
            value = flight.do("k", fn)
            with lock:
                results.append(value)

        threads = [threading.Thread(target=worker) for _ in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(results, [42] * 20)
        self.assertEqual(len(calls), 1)
        self.assertEqual(flight.in_flight(), 0)

    def test_error_is_shared_and_entry_dropped(self):
        flight = SingleFlight()
        started = threading.Event()
        release = threading.Event()
        errors = []

        def fn():
            started.set()
            release.wait(2)
            raise ValueError("boom")

        def leader():
            try:
                flight.do("k", fn)
            except ValueError as e:
                errors.append(e)

        def follower():
            try:
                flight.do("k", lambda: "unused")
            except ValueError as e:
                errors.append(e)

        t1 = threading.Thread(target=leader)
        t1.start()
        self.assertTrue(started.wait(2))
        t2 = threading.Thread(target=follower)
        t2.start()
        time.sleep(0.05)
        release.set()
        t1.join()
        t2.join()

        self.assertEqual(len(errors), 2)
        self.assertIs(errors[0], errors[1])
        self.assertEqual(flight.in_flight(), 0)
        # A later call runs again.
        self.assertEqual(flight.do("k", lambda: "again"), "again")

    def test_do_shared_marks_followers(self):
        flight = SingleFlight()
        started = threading.Event()
        release = threading.Event()
        results = {}

        def fn():
            started.set()
            release.wait(2)
            return "v"

        def leader():
            results["leader"] = flight.do_shared("k", fn)

        def follower():
            results["follower"] = flight.do_shared("k", lambda: "unused")

        t1 = threading.Thread(target=leader)
        t1.start()
        self.assertTrue(started.wait(2))
        t2 = threading.Thread(target=follower)
        t2.start()
        time.sleep(0.05)
        release.set()
        t1.join()
        t2.join()

        self.assertEqual(results["leader"], ("v", False))
        self.assertEqual(results["follower"], ("v", True))
        self.assertEqual(flight.do_shared("k", lambda: "again"), ("again", False))

    def test_different_keys_run_independently(self):
        flight = SingleFlight()
        self.assertEqual(flight.do("a", lambda: 1), 1)
        self.assertEqual(flight.do("b", lambda: 2), 2)


if __name__ == '__main__':
    unittest.main()
