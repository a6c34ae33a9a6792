"""
=============================================================================
CONNECTION TRACKER
=============================================================================

Runs every accepted connection on its own thread and knows, at any moment,
which connections are still open. That knowledge is what makes a bounded
drain possible.

=============================================================================
THREAD-PER-CONNECTION
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   accept loop ──► track(conn, handler)                               │
    │                        │                                             │
    │                        ├── accepting?  no ──► conn.abort(), False    │
    │                        │                                             │
    │                        └── yes ──► _active[conn.id] = (conn, thread) │
    │                                    thread.start()                    │
    │                                          │                           │
    │                                          ▼                           │
    │                                    handler(conn)  (keep-alive loop)  │
    │                                          │                           │
    │                                    finally: _active.pop(conn.id)     │
    │                                             notify drain waiter      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

A blocking thread per connection keeps the request path straight-line
code. The cost is one thread stack per open connection, which the read,
idle and write timeouts keep bounded.

=============================================================================
DRAIN
=============================================================================

    drain(timeout)
        │
        ├── stop_accepting()          new connections are refused
        │
        ├── loop until deadline:
        │       close_if_idle() on every connection (NEW / KEEP_ALIVE)
        │       nothing left?  ──► DrainResult(clean=True)
        │       wait for a connection to finish, at most poll_interval
        │
        └── deadline passed:
                abort() every connection still open
                ──► DrainResult(clean=False, forced=N)

Busy connections are never interrupted before the deadline. Threads stuck
in a handler after abort() are daemon threads: they no longer hold a
socket and cannot keep the process alive.

=============================================================================
INTERVIEW QUESTIONS ABOUT DRAINING
=============================================================================

Q: "Why close idle keep-alive connections immediately but not busy ones?"
A: "An idle connection has no request to lose, and the client will
   simply reconnect elsewhere. A busy one is somebody's request in
   flight; cutting it turns a deploy into an outage."

Q: "Why can't you just kill the stuck thread at the deadline?"
A: "Python has no safe thread cancellation. What you CAN do is pull
   the socket out from under it: shutdown(SHUT_RDWR) wakes any
   blocked recv/send, and the client sees the connection close."

=============================================================================
"""

import threading
import time
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Tuple

from .connection import Connection


logger = logging.getLogger(__name__)


@dataclass
class DrainResult:
    """
    Outcome of ConnectionTracker.drain().

    Attributes:
        clean: True if every connection finished before the deadline.
        forced: Connections aborted at the deadline.
        duration: Seconds the drain took.
    """

    clean: bool
    forced: int = 0
    duration: float = 0.0


class ConnectionTracker:
    """
    Registry of open connections and their worker threads.

    Args:
        new_connection_grace: A connection that has not sent a single byte
                              counts as idle during a drain only once it is
                              older than this many seconds.
        poll_interval: Upper bound between idle sweeps while draining.
    """

    def __init__(self, new_connection_grace: float = 5.0, poll_interval: float = 0.05):
        self.new_connection_grace = new_connection_grace
        self.poll_interval = poll_interval

        self._lock = threading.Lock()
        self._changed = threading.Condition(self._lock)
        self._active: Dict[str, Tuple[Connection, threading.Thread]] = {}
        self._accepting = True

        self.total_accepted = 0
        self.total_rejected = 0

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def accepting(self) -> bool:
        return self._accepting

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._active)

    @property
    def connections(self) -> List[Connection]:
        with self._lock:
            return [conn for conn, _ in self._active.values()]

    # =========================================================================
    # TRACKING
    # =========================================================================

    def track(self, conn: Connection, handler: Callable[[Connection], None]) -> bool:
        """
        Start ``handler(conn)`` on a new thread.

        Returns:
            False if the tracker is no longer accepting; ``conn`` has been
            closed in that case.
        """
        with self._lock:
            if not self._accepting:
                self.total_rejected += 1
                thread = None
            else:
                thread = threading.Thread(
                    target=self._run,
                    args=(conn, handler),
                    name=f"conn-{conn.id}",
                    daemon=True,
                )
                self._active[conn.id] = (conn, thread)
                self.total_accepted += 1

        if thread is None:
            logger.debug(f"[{conn.id}] Rejected, server is draining")
            conn.abort()
            return False

        thread.start()
        return True

    def _run(self, conn: Connection, handler: Callable[[Connection], None]) -> None:
        try:
            handler(conn)
        except Exception:
            logger.exception(f"[{conn.id}] Connection handler crashed")
        finally:
            if not conn.is_closed:
                conn.abort()
            with self._lock:
                self._active.pop(conn.id, None)
                self._changed.notify_all()

    # =========================================================================
    # DRAINING
    # =========================================================================

    def stop_accepting(self) -> None:
        with self._lock:
            self._accepting = False

    def _close_idle_locked(self) -> int:
        closed = 0
        for conn, _ in list(self._active.values()):
            if conn.close_if_idle(self.new_connection_grace):
                closed += 1
        if closed:
            logger.debug(f"Closed {closed} idle connection(s)")
        return closed

    def drain(self, timeout: float) -> DrainResult:
        """
        Wait up to ``timeout`` seconds for every connection to finish,
        then abort the rest.
        """
        started = time.monotonic()
        deadline = started + timeout
        self.stop_accepting()

        with self._lock:
            while True:
                self._close_idle_locked()
                if not self._active:
                    return DrainResult(clean=True, duration=time.monotonic() - started)

                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                self._changed.wait(min(self.poll_interval, remaining))

        forced = self.force_close_all()
        return DrainResult(clean=False, forced=forced, duration=time.monotonic() - started)

    def force_close_all(self) -> int:
        """Abort every tracked connection; returns how many there were."""
        with self._lock:
            stuck = [conn for conn, _ in self._active.values()]
            self._active.clear()
            self._changed.notify_all()

        for conn in stuck:
            logger.debug(f"[{conn.id}] Forcing close in state {conn.state.value}")
            conn.abort()
        return len(stuck)
