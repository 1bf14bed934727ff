import os
import sys
import threading
import time
import unittest
from concurrent.futures import TimeoutError as FutureTimeoutError

# Ensure src is in path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', '..')))

from src.utils.concurrency import DaemonThreadPoolExecutor, PathLockRegistry


class TestDaemonThreadPoolExecutor(unittest.TestCase):
    def test_daemon_submit(self):
        """Verify that submitted tasks run in daemon threads."""
        def check_daemon():
            return threading.current_thread().daemon

        with DaemonThreadPoolExecutor(max_workers=1) as executor:
            future = executor.submit(check_daemon)
            self.assertTrue(future.result(timeout=5), "Worker thread should be a daemon thread")

    def test_daemon_map(self):
        """Verify that mapped tasks run in daemon threads, results in order."""
        def square_in_daemon(x):
            return threading.current_thread().daemon, x * x

        with DaemonThreadPoolExecutor(max_workers=2) as executor:
            results = list(executor.map(square_in_daemon, [1, 2, 3]))
        self.assertEqual([r[1] for r in results], [1, 4, 9])
        self.assertTrue(all(r[0] for r in results))

    def test_map_timeout(self):
        """map() raises TimeoutError when results are late."""
        release = threading.Event()
        executor = DaemonThreadPoolExecutor(max_workers=1)
        try:
            results = executor.map(lambda _: release.wait(5), [1], timeout=0.1)
            with self.assertRaises(FutureTimeoutError):
                next(results)
        finally:
            release.set()
            executor.shutdown(wait=True)

    def test_exception_delivered_through_future(self):
        def fail():
            raise ValueError("bad input")

        with DaemonThreadPoolExecutor(max_workers=1) as executor:
            future = executor.submit(fail)
            with self.assertRaises(ValueError):
                future.result(timeout=5)

    def test_submit_after_shutdown(self):
        executor = DaemonThreadPoolExecutor(max_workers=1)
        executor.shutdown()
        with self.assertRaises(RuntimeError):
            executor.submit(lambda: None)

    def test_shutdown_cancels_queued_futures(self):
        started = threading.Event()
        release = threading.Event()

        def block():
            started.set()
            release.wait(5)

        executor = DaemonThreadPoolExecutor(max_workers=1)
        running = executor.submit(block)
        self.assertTrue(started.wait(5))
        queued = executor.submit(time.sleep, 0)

        executor.shutdown(wait=False, cancel_futures=True)
        release.set()

        self.assertTrue(queued.cancelled())
        self.assertIsNone(running.result(timeout=5))

    def test_invalid_worker_count(self):
        with self.assertRaises(ValueError):
            DaemonThreadPoolExecutor(max_workers=0)


class TestPathLockRegistry(unittest.TestCase):
    def test_same_path_same_lock(self):
        registry = PathLockRegistry()
        a = registry.lock_for("photos/cat.jpg")
        b = registry.lock_for(os.path.join(os.getcwd(), "photos", ".", "cat.jpg"))
        self.assertIs(a, b)
        self.assertEqual(len(registry), 1)

    def test_different_paths_different_locks(self):
        registry = PathLockRegistry()
        self.assertIsNot(registry.lock_for("a.jpg"), registry.lock_for("b.jpg"))

    def test_hold_blocks_other_threads(self):
        registry = PathLockRegistry()
        acquired_elsewhere = []

        def try_acquire():
            lock = registry.lock_for("x.png")
            acquired_elsewhere.append(lock.acquire(blocking=False))
            if acquired_elsewhere[-1]:
                lock.release()

        with registry.hold("x.png"):
            t = threading.Thread(target=try_acquire)
            t.start()
            t.join()

        self.assertEqual(acquired_elsewhere, [False])

    def test_hold_is_reentrant(self):
        registry = PathLockRegistry()
        with registry.hold("x.png"):
            with registry.hold("x.png"):
                pass

    def test_entry_dropped_after_release(self):
        registry = PathLockRegistry()
        with registry.hold("a.jpg"):
            self.assertEqual(len(registry), 1)
        with registry.hold("b.jpg"):
            pass
        self.assertEqual(len(registry), 0)

    def test_entry_kept_while_another_thread_waits(self):
        registry = PathLockRegistry()
        waiting = threading.Event()
        order = []

        def second_writer():
            waiting.set()
            with registry.hold("x.png"):
                order.append("second")

        with registry.hold("x.png"):
            t = threading.Thread(target=second_writer)
            t.start()
            waiting.wait(1)
            time.sleep(0.05)
            order.append("first")
        t.join(1)

        self.assertEqual(order, ["first", "second"])
        self.assertEqual(len(registry), 0)


if __name__ == '__main__':
    unittest.main()
