"""Tests for the bounded connection pool."""

import threading
import time

import pytest

from bloomd_client import BloomdConnectionError, BloomdTimeoutError, ConnectionPool, PoolClosedError


class FakeConnection:
    def __init__(self, tracker: "Tracker"):
        self._tracker = tracker
        self.usable = True
        self.closed = False

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.usable = False
            self._tracker.closed()


class Tracker:
    """Factory that counts how many fake connections are open at once."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.dialed = 0
        self.open = 0
        self.max_open = 0
        self._lock = threading.Lock()

    def __call__(self) -> FakeConnection:
        if self.fail:
            raise OSError("connection refused")
        with self._lock:
            self.dialed += 1
            self.open += 1
            self.max_open = max(self.max_open, self.open)
        return FakeConnection(self)

    def closed(self) -> None:
        with self._lock:
            self.open -= 1


class TestConnectionPool:
    def test_prewarm(self):
        tracker = Tracker()
        pool = ConnectionPool(tracker, initial_connections=3, max_connections=5)
        assert tracker.dialed == 3
        assert pool.idle_count == 3
        assert pool.live_count == 3

    def test_release_reuses(self):
        tracker = Tracker()
        pool = ConnectionPool(tracker, initial_connections=0, max_connections=2)
        conn = pool.acquire()
        pool.release(conn)
        assert pool.acquire() is conn
        assert tracker.dialed == 1

    def test_discard_is_never_reused(self):
        tracker = Tracker()
        pool = ConnectionPool(tracker, initial_connections=0, max_connections=1)
        conn = pool.acquire()
        pool.discard(conn)
        assert conn.closed
        assert pool.live_count == 0
        other = pool.acquire()
        assert other is not conn
        assert tracker.dialed == 2

    def test_release_of_unusable_connection_discards(self):
        pool = ConnectionPool(Tracker(), initial_connections=0, max_connections=1)
        conn = pool.acquire()
        conn.usable = False
        pool.release(conn)
        assert pool.live_count == 0
        assert pool.idle_count == 0

    def test_double_release_is_ignored(self):
        pool = ConnectionPool(Tracker(), initial_connections=0, max_connections=2)
        conn = pool.acquire()
        pool.release(conn)
        pool.discard(conn)
        pool.discard(conn)
        assert pool.live_count == 0

    def test_acquire_times_out_at_capacity(self):
        pool = ConnectionPool(Tracker(), initial_connections=0, max_connections=1)
        pool.acquire()
        with pytest.raises(BloomdTimeoutError):
            pool.acquire(timeout=0.05)

    @pytest.mark.timeout(5)
    def test_waiter_wakes_on_release(self):
        pool = ConnectionPool(Tracker(), initial_connections=0, max_connections=1)
        conn = pool.acquire()
        timer = threading.Timer(0.05, pool.release, args=(conn,))
        timer.start()
        assert pool.acquire(timeout=2.0) is conn
        timer.join()

    def test_dial_failure_frees_slot(self):
        tracker = Tracker(fail=True)
        pool = ConnectionPool(tracker, initial_connections=0, max_connections=1)
        with pytest.raises(BloomdConnectionError):
            pool.acquire()
        assert pool.live_count == 0
        tracker.fail = False
        pool.acquire(timeout=0.1)

    def test_prewarm_failure_raises(self):
        with pytest.raises(BloomdConnectionError):
            ConnectionPool(Tracker(fail=True), initial_connections=2, max_connections=2)

    def test_close_is_terminal(self):
        tracker = Tracker()
        pool = ConnectionPool(tracker, initial_connections=2, max_connections=3)
        in_use = pool.acquire()
        pool.close()
        pool.close()
        assert in_use.closed
        assert tracker.open == 0
        with pytest.raises(PoolClosedError):
            pool.acquire()
        pool.release(in_use)
        assert pool.idle_count == 0

    @pytest.mark.timeout(5)
    def test_discard_closes_before_waiter_dials(self):
        tracker = Tracker()
        pool = ConnectionPool(tracker, initial_connections=0, max_connections=1)
        conn = pool.acquire()
        acquired = []
        t = threading.Thread(target=lambda: acquired.append(pool.acquire(timeout=2.0)))
        t.start()
        time.sleep(0.05)
        pool.discard(conn)
        t.join(timeout=2)
        assert len(acquired) == 1
        assert conn.closed
        assert tracker.max_open == 1

    @pytest.mark.timeout(5)
    def test_close_wakes_waiters(self):
        pool = ConnectionPool(Tracker(), initial_connections=0, max_connections=1)
        pool.acquire()
        errors = []

        def waiter():
            try:
                pool.acquire()
            except PoolClosedError as e:
                errors.append(e)

        t = threading.Thread(target=waiter)
        t.start()
        time.sleep(0.05)
        pool.close()
        t.join(timeout=2)
        assert len(errors) == 1

    @pytest.mark.timeout(10)
    def test_concurrent_use_never_exceeds_max(self):
        tracker = Tracker()
        pool = ConnectionPool(tracker, initial_connections=1, max_connections=3)
        in_use = []
        peak = []
        lock = threading.Lock()
        results: list[Exception | None] = []

        def worker(n: int):
            try:
                for i in range(n):
                    conn = pool.acquire(timeout=5.0)
                    with lock:
                        assert conn not in in_use
                        in_use.append(conn)
                        peak.append(len(in_use))
                    time.sleep(0.001)
                    with lock:
                        in_use.remove(conn)
                    if i % 7 == 0:
                        pool.discard(conn)
                    else:
                        pool.release(conn)
                results.append(None)
            except Exception as e:
                results.append(e)

        threads = [threading.Thread(target=worker, args=(30,)) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        for r in results:
            assert r is None, r
        assert len(results) == 8
        assert max(peak) <= 3
        assert tracker.max_open <= 3
