"""
Unit tests for ConnectionTracker and its drain.
"""

import logging
import socket
import threading
import time

import pytest

from gracefulhttp.core.connection import Connection
from gracefulhttp.core.tracker import ConnectionTracker, DrainResult


@pytest.fixture
def pairs():
    """Factory for Connection objects backed by socket pairs."""
    opened = []

    def make(**kwargs) -> Connection:
        server_sock, client_sock = socket.socketpair()
        opened.extend([server_sock, client_sock])
        options = dict(read_timeout=5.0, write_timeout=5.0, idle_timeout=30.0)
        options.update(kwargs)
        return Connection(socket=server_sock, address=("127.0.0.1", 40000), **options)

    yield make

    for s in opened:
        try:
            s.close()
        except OSError:
            pass


def wait_for(predicate, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


class TestTracking:
    """Tests for track() and the worker threads."""

    def test_runs_handler_on_thread(self, pairs):
        """Test that the handler runs off the calling thread."""
        tracker = ConnectionTracker()
        seen = []
        done = threading.Event()

        def handler(conn):
            seen.append(threading.current_thread().name)
            done.set()

        conn = pairs()
        assert tracker.track(conn, handler) is True
        assert done.wait(2.0)

        assert seen == [f"conn-{conn.id}"]
        assert wait_for(lambda: tracker.active_count == 0)
        assert tracker.total_accepted == 1

    def test_connection_closed_after_handler(self, pairs):
        """Test that a handler leaving its socket open is cleaned up."""
        tracker = ConnectionTracker()
        conn = pairs()

        tracker.track(conn, lambda c: None)

        assert wait_for(lambda: conn.is_closed)

    def test_rejects_when_not_accepting(self, pairs):
        """Test that tracking stops after stop_accepting()."""
        tracker = ConnectionTracker()
        tracker.stop_accepting()
        conn = pairs()

        assert tracker.track(conn, lambda c: None) is False
        assert conn.is_closed
        assert tracker.total_rejected == 1
        assert tracker.active_count == 0

    def test_handler_crash_logged(self, pairs, caplog):
        """Test that an escaping exception is logged and the entry removed."""
        tracker = ConnectionTracker()

        def handler(conn):
            raise RuntimeError("crash")

        with caplog.at_level(logging.ERROR, logger="gracefulhttp.core.tracker"):
            tracker.track(pairs(), handler)
            assert wait_for(lambda: tracker.active_count == 0)

        assert "Connection handler crashed" in caplog.text


class TestDrain:
    """Tests for drain()."""

    def test_drain_empty(self):
        """Test that an empty tracker drains at once."""
        result = ConnectionTracker().drain(timeout=1.0)

        assert result.clean is True
        assert result.forced == 0

    def test_drain_stops_accepting(self):
        """Test that drain() refuses new connections."""
        tracker = ConnectionTracker()
        tracker.drain(timeout=0.1)

        assert tracker.accepting is False

    def test_waits_for_busy_connection(self, pairs):
        """Test that an in-flight request is allowed to finish."""
        tracker = ConnectionTracker()
        started = threading.Event()
        finished = []

        def handler(conn):
            conn.mark_processing()
            started.set()
            time.sleep(0.3)
            finished.append(conn.id)

        conn = pairs()
        tracker.track(conn, handler)
        assert started.wait(2.0)

        result = tracker.drain(timeout=5.0)

        assert result.clean is True
        assert finished == [conn.id]
        assert result.duration >= 0.2

    def test_closes_idle_keep_alive(self, pairs):
        """Test that an idle keep-alive connection is closed straight away."""
        tracker = ConnectionTracker()
        waiting = threading.Event()

        def handler(conn):
            conn.requests_handled = 1
            conn.set_keep_alive()
            waiting.set()
            conn.read_request()

        tracker.track(pairs(), handler)
        assert waiting.wait(2.0)

        result = tracker.drain(timeout=5.0)

        assert result.clean is True
        assert result.duration < 1.0

    def test_forces_hung_connection(self, pairs):
        """Test that the deadline aborts a request that never finishes."""
        tracker = ConnectionTracker()
        release = threading.Event()
        started = threading.Event()

        def handler(conn):
            conn.mark_processing()
            started.set()
            release.wait(5.0)

        conn = pairs()
        tracker.track(conn, handler)
        assert started.wait(2.0)

        result = tracker.drain(timeout=0.2)
        release.set()

        assert result == DrainResult(clean=False, forced=1, duration=result.duration)
        assert 0.2 <= result.duration < 1.0
        assert conn.is_closed
        assert tracker.active_count == 0

    def test_force_close_all(self, pairs):
        """Test aborting everything without waiting."""
        tracker = ConnectionTracker()
        release = threading.Event()
        conns = [pairs() for _ in range(3)]
        for conn in conns:
            tracker.track(conn, lambda c: release.wait(5.0))

        assert tracker.force_close_all() == 3
        release.set()

        assert all(conn.is_closed for conn in conns)
