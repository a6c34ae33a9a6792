"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

Wraps one accepted client socket: buffered request reading, per-phase
timeouts, a state machine the drain logic can inspect, and two ways to
close (graceful and forced).

=============================================================================
TCP IS A BYTE STREAM
=============================================================================

TCP does not preserve message boundaries. One request may arrive over
several recv() calls, and one recv() may contain the tail of one request
and the head of the next. read_request() therefore buffers until it has:

    1. the header terminator \r\n\r\n
    2. Content-Length more bytes of body

and keeps anything beyond that in _buffer for the next call.

=============================================================================
CONNECTION STATE MACHINE
=============================================================================

    NEW ──────► READING ──────► PROCESSING ──────► WRITING ────────┐
     │  first      │                                    │           │
     │  byte       │                                    │           ▼
     │             │                       next byte ◄──────── KEEP_ALIVE
     │             │                       (→ READING)  │           │
     │             ▼                                    │           │
     └──────────► CLOSING ◄─────────────────────────────┴───────────┘
                    │
                    ▼
                  CLOSED

NEW and KEEP_ALIVE mean "no request in progress". During a drain these
connections are closed straight away (close_if_idle), everything else is
left to finish until the deadline, then abort()ed.

=============================================================================
TIMEOUTS
=============================================================================

    ┌──────────────────┬───────────────────────────────────────────────────┐
    │ Phase            │ Timeout                                           │
    ├──────────────────┼───────────────────────────────────────────────────┤
    │ NEW, waiting     │ read_timeout  → TimeoutError (answered with 408)  │
    │ KEEP_ALIVE, wait │ idle_timeout  → None (connection quietly closed)  │
    │ READING          │ read_timeout from the first byte → TimeoutError   │
    │ WRITING          │ write_timeout → send fails, connection closed     │
    └──────────────────┴───────────────────────────────────────────────────┘

=============================================================================
THREAD SAFETY
=============================================================================

The worker thread owns the socket I/O. The drain thread only ever calls
close_if_idle() and abort(). State changes that race with those two go
through _lock, so a connection is never torn down between "first byte
of a request arrived" and "state is READING".

=============================================================================
"""

import socket
import threading
import time
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional
import uuid


logger = logging.getLogger(__name__)


class RequestTooLargeError(ValueError):
    """The buffered request grew past max_request_size."""


class ConnectionState(Enum):
    """Connection lifecycle states."""
    NEW = "new"                # Accepted, no byte of a request yet
    READING = "reading"        # Receiving a request
    PROCESSING = "processing"  # Handler chain is running
    WRITING = "writing"        # Sending the response
    KEEP_ALIVE = "keep_alive"  # Response sent, waiting for the next request
    CLOSING = "closing"        # Graceful close in progress
    CLOSED = "closed"          # Socket released


IDLE_STATES = (ConnectionState.NEW, ConnectionState.KEEP_ALIVE)
TERMINAL_STATES = (ConnectionState.CLOSING, ConnectionState.CLOSED)


@dataclass
class Connection:
    """
    A client connection.

    Attributes:
        socket: The accepted client socket.
        address: Client's (ip, port).
        id: Short identifier used in debug logs.
        state: Current ConnectionState.
        created_at: time.monotonic() at accept.
        last_activity: time.monotonic() of the last successful I/O.
        requests_handled: Complete requests read so far.
    """

    socket: socket.socket
    address: tuple[str, int]

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.monotonic)
    last_activity: float = field(default_factory=time.monotonic)
    requests_handled: int = 0

    buffer_size: int = 8192
    read_timeout: float = 5.0
    write_timeout: float = 10.0
    idle_timeout: float = 15.0
    max_request_size: int = 10 * 1024 * 1024

    _buffer: bytes = field(default=b"", repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def __post_init__(self):
        self.socket.setblocking(True)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def age(self) -> float:
        return time.monotonic() - self.created_at

    @property
    def is_closed(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def pending_bytes(self) -> bytes:
        """Bytes received but not yet returned as a complete request."""
        return self._buffer

    # =========================================================================
    # READING
    # =========================================================================

    def read_request(self) -> Optional[bytes]:
        """
        Read one complete request.

        Returns:
            The request bytes, or None when the peer closed the connection,
            a keep-alive connection stayed idle past idle_timeout, or the
            connection was closed from another thread.

        Raises:
            TimeoutError: The first request never arrived, or a request
                          took longer than read_timeout once started.
            RequestTooLargeError: The request exceeds max_request_size.
        """
        keep_alive_wait = self.requests_handled > 0

        # ─────────────────────────────────────────────────────────────────
        # WAIT FOR THE FIRST BYTE (idle phase)
        # ─────────────────────────────────────────────────────────────────
        if not self._buffer:
            wait = self.idle_timeout if keep_alive_wait else self.read_timeout
            try:
                chunk = self._recv(wait)
            except socket.timeout:
                if keep_alive_wait:
                    logger.debug(f"[{self.id}] Keep-alive idle timeout")
                    return None
                raise TimeoutError("Request read timeout")
            if not chunk:
                return None
            self._buffer = chunk

        with self._lock:
            if self.is_closed:
                return None
            self.state = ConnectionState.READING

        # ─────────────────────────────────────────────────────────────────
        # READ THE REST (read_timeout from the first byte)
        # ─────────────────────────────────────────────────────────────────
        deadline = time.monotonic() + self.read_timeout
        try:
            while b"\r\n\r\n" not in self._buffer:
                self._check_size()
                chunk = self._recv(deadline - time.monotonic())
                if not chunk:
                    return None
                self._buffer += chunk
            self._check_size()

            header_end = self._buffer.find(b"\r\n\r\n")
            body_start = header_end + 4
            content_length = self._parse_content_length(self._buffer[:header_end])

            while len(self._buffer) - body_start < content_length:
                chunk = self._recv(deadline - time.monotonic())
                if not chunk:
                    break
                self._buffer += chunk
                self._check_size()
        except socket.timeout:
            raise TimeoutError("Request read timeout")

        request_end = body_start + content_length
        request_data = self._buffer[:request_end]
        self._buffer = self._buffer[request_end:]

        self.requests_handled += 1
        return request_data

    def _recv(self, timeout: float) -> bytes:
        """
        One recv() bounded by ``timeout`` seconds.

        Raises socket.timeout when the time is up. Any other socket error,
        including the socket being closed under us, reads as EOF.
        """
        if timeout <= 0:
            raise socket.timeout("timed out")
        try:
            self.socket.settimeout(timeout)
            data = self.socket.recv(self.buffer_size)
        except socket.timeout:
            raise
        except OSError:
            return b""
        self.last_activity = time.monotonic()
        return data

    def _check_size(self) -> None:
        if len(self._buffer) > self.max_request_size:
            raise RequestTooLargeError(f"Request too large: {len(self._buffer)} bytes")

    def _parse_content_length(self, headers: bytes) -> int:
        """Content-Length from raw header bytes, 0 if missing or invalid."""
        header_str = headers.decode("utf-8", errors="replace").lower()
        for line in header_str.split("\r\n"):
            if line.startswith("content-length:"):
                try:
                    return max(0, int(line.split(":", 1)[1].strip()))
                except ValueError:
                    return 0
        return 0

    # =========================================================================
    # PROCESSING / WRITING
    # =========================================================================

    def mark_processing(self) -> None:
        with self._lock:
            if not self.is_closed:
                self.state = ConnectionState.PROCESSING

    def send_response(self, data: bytes) -> bool:
        """
        Send ``data`` within write_timeout.

        Returns:
            True if every byte was handed to the kernel.
        """
        with self._lock:
            if self.is_closed:
                return False
            self.state = ConnectionState.WRITING

        try:
            self.socket.settimeout(self.write_timeout)
            self.socket.sendall(data)
        except OSError as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False
        self.last_activity = time.monotonic()
        return True

    def set_keep_alive(self) -> None:
        """Response sent, wait for the next request."""
        with self._lock:
            if not self.is_closed:
                self.state = ConnectionState.KEEP_ALIVE

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self) -> None:
        """
        Graceful close: FIN, drain what the client still sends, release.

            Server                              Client
               │   FIN ──────────────────────────► │  shutdown(SHUT_WR)
               │ ◄──────────────────────── FIN    │
            close()                             close()
        """
        with self._lock:
            if self.is_closed:
                return
            self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass

        try:
            self.socket.settimeout(0.5)
            while self.socket.recv(1024):
                pass
        except OSError:
            pass

        self._release()
        logger.debug(f"[{self.id}] Connection closed after {self.requests_handled} requests")

    def abort(self) -> None:
        """
        Forced close from another thread.

        shutdown(SHUT_RDWR) wakes a worker blocked in recv()/sendall();
        it then sees EOF or an error and unwinds on its own.
        """
        with self._lock:
            if self.state is ConnectionState.CLOSED:
                return
            self.state = ConnectionState.CLOSING
        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self._release()
        logger.debug(f"[{self.id}] Connection aborted")

    def close_if_idle(self, new_connection_grace: float) -> bool:
        """
        Abort the connection if no request is in progress.

        KEEP_ALIVE connections are always idle. NEW connections only count
        as idle once older than ``new_connection_grace`` seconds, so a
        client that connected a moment ago still gets its first request
        read.

        Returns:
            True if the connection was closed.
        """
        with self._lock:
            idle = (
                self.state is ConnectionState.KEEP_ALIVE
                or (self.state is ConnectionState.NEW and self.age > new_connection_grace)
            )
            if not idle:
                return False
            self.state = ConnectionState.CLOSING
        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self._release()
        return True

    def _release(self) -> None:
        try:
            self.socket.close()
        except OSError:
            pass
        with self._lock:
            self.state = ConnectionState.CLOSED

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
