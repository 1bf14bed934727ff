"""
Concurrency Helpers
===================

- DaemonThreadPoolExecutor: an Executor whose workers are daemon threads, so
  a pending tag write never keeps the interpreter alive on exit.
- PathLockRegistry: one lock per normalized file path, used to serialize
  writes that target the same image.
"""

import os
import queue
import threading
import time
from concurrent.futures import Executor, Future
from contextlib import contextmanager
from typing import Dict, Iterator


class DaemonThreadPoolExecutor(Executor):
    """
    A ThreadPoolExecutor-like class that guarantees worker threads are daemons.

    Workers are started lazily, one per submission, up to max_workers.
    """

    def __init__(self, max_workers=None, thread_name_prefix='DaemonWorker'):
        if max_workers is None:
            max_workers = min(8, (os.cpu_count() or 1) + 2)
        if max_workers <= 0:
            raise ValueError("max_workers must be greater than 0")

        self._max_workers = max_workers
        self._thread_name_prefix = thread_name_prefix
        self._work_queue = queue.SimpleQueue()
        self._threads = []
        self._shutdown = False
        self._lock = threading.Lock()

    def submit(self, fn, /, *args, **kwargs):
        with self._lock:
            if self._shutdown:
                raise RuntimeError('cannot schedule new futures after shutdown')

            future = Future()
            self._work_queue.put((future, fn, args, kwargs))
            if len(self._threads) < self._max_workers:
                worker = threading.Thread(
                    target=self._worker_loop,
                    name=f"{self._thread_name_prefix}-{len(self._threads)}",
                    daemon=True
                )
                worker.start()
                self._threads.append(worker)
            return future

    def _worker_loop(self):
        while True:
            item = self._work_queue.get()
            if item is None:
                return

            future, fn, args, kwargs = item
            if not future.set_running_or_notify_cancel():
                continue
            try:
                result = fn(*args, **kwargs)
            except BaseException as exc:
                future.set_exception(exc)
            else:
                future.set_result(result)

    def shutdown(self, wait=True, *, cancel_futures=False):
        with self._lock:
            self._shutdown = True
            if cancel_futures:
                while True:
                    try:
                        item = self._work_queue.get_nowait()
                    except queue.Empty:
                        break
                    if item is not None:
                        item[0].cancel()
            for _ in self._threads:
                self._work_queue.put(None)
            threads = list(self._threads)

        if wait:
            for worker in threads:
                worker.join()

    def map(self, fn, *iterables, timeout=None, chunksize=1):
        """
        Returns an iterator equivalent to map(fn, *iterables).

        Results are yielded in submission order. With a timeout, a
        concurrent.futures.TimeoutError is raised if the remaining results
        are not ready within that many seconds of the call.
        """
        end_time = None if timeout is None else time.monotonic() + timeout
        futures = [self.submit(fn, *args) for args in zip(*iterables)]

        def result_iterator():
            try:
                for future in futures:
                    if end_time is None:
                        yield future.result()
                    else:
                        yield future.result(max(0.0, end_time - time.monotonic()))
            finally:
                for future in futures:
                    future.cancel()

        return result_iterator()


class PathLockRegistry:
    """
    Hands out one re-entrant lock per file path.

    Paths are normalized (absolute, case-folded where the OS is
    case-insensitive) so different spellings of the same file share a lock.
    An entry lives only while some hold() on that path is waiting or
    running, so the registry does not grow with every path ever saved.
    """

    def __init__(self):
        self._locks: Dict[str, threading.RLock] = {}
        self._holders: Dict[str, int] = {}
        self._guard = threading.Lock()

    @staticmethod
    def normalize(path) -> str:
        return os.path.normcase(os.path.abspath(os.fspath(path)))

    def lock_for(self, path) -> threading.RLock:
        """Return the lock currently registered for a path, creating it if needed."""
        key = self.normalize(path)
        with self._guard:
            return self._get_or_create(key)

    def _get_or_create(self, key: str) -> threading.RLock:
        lock = self._locks.get(key)
        if lock is None:
            lock = threading.RLock()
            self._locks[key] = lock
        return lock

    @contextmanager
    def hold(self, path) -> Iterator[None]:
        """Hold the lock for a path for the duration of the with-block."""
        key = self.normalize(path)
        with self._guard:
            lock = self._get_or_create(key)
            self._holders[key] = self._holders.get(key, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._holders[key] -= 1
                if not self._holders[key]:
                    del self._holders[key]
                    del self._locks[key]

    def __len__(self):
        with self._guard:
            return len(self._locks)
