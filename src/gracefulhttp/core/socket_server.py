"""
=============================================================================
LISTENING SOCKET
=============================================================================

Owns the listening socket: bind, listen, the accept loop, and stopping it.
Signal handling lives in the ShutdownOrchestrator, not here.

=============================================================================
SOCKET LIFECYCLE (server side)
=============================================================================

    1. socket()    create the file descriptor
    2. bind()      reserve host:port            ← failure = StartupError
    3. listen()    kernel starts queueing SYNs (backlog)
    4. accept()    loop, one Connection per client
    5. close()     stop(): no more connections are accepted

Binding happens in its own step (bind()) before the accept loop starts.
That lets the orchestrator report "ready" only once the port is really
held, and fail before any readiness is reported when it is not.

=============================================================================
STOPPING FROM ANOTHER THREAD
=============================================================================

The accept loop polls with a short timeout so it notices stop():

    ┌─────────────────────────────────────────────────────────────────┐
    │   while running:                                                 │
    │       try:                                                       │
    │           accept()            ← at most ACCEPT_POLL seconds      │
    │       except timeout:                                            │
    │           continue            ← re-check running                 │
    │       except OSError:                                            │
    │           transient?  sleep, retry  ← EMFILE, ECONNABORTED ... │
    │           otherwise   break         ← listener closed by stop()  │
    └─────────────────────────────────────────────────────────────────┘

stop() closes the listener itself, so by the time it returns the kernel
refuses new connections. The loop exits within one poll interval.

Running out of file descriptors (EMFILE) or a client resetting before
accept() (ECONNABORTED) must not kill the server. Those errors are
retried with a backoff doubling from 5ms up to 1s; the first successful
accept() resets it.

=============================================================================
"""

import errno
import socket
import time
import logging
from typing import Callable, Optional, Tuple

from ..config import ServerConfig
from ..errors import StartupError
from .connection import Connection


logger = logging.getLogger(__name__)


ACCEPT_POLL = 0.5

TRANSIENT_ACCEPT_ERRORS = frozenset({
    errno.EMFILE,
    errno.ENFILE,
    errno.ECONNABORTED,
    errno.ENOBUFS,
    errno.ENOMEM,
})
ACCEPT_BACKOFF_MIN = 0.005
ACCEPT_BACKOFF_MAX = 1.0


class SocketServer:
    """
    Bound listening socket plus accept loop.

    Usage:
        server = SocketServer(config)
        server.bind()                       # raises StartupError
        server.serve(handle_connection)     # blocks until stop()
    """

    def __init__(self, config: ServerConfig):
        self.config = config
        self._socket: Optional[socket.socket] = None
        self._stop_requested = False

    @property
    def address(self) -> Tuple[str, int]:
        """
        The address actually bound. With port 0 in the configuration this
        is where the OS-assigned port shows up.
        """
        if self._socket is not None:
            try:
                host, port = self._socket.getsockname()[:2]
                return host, port
            except OSError:
                pass
        return self.config.host, self.config.port

    def _create_socket(self) -> socket.socket:
        host = self.config.host
        family = socket.AF_INET6 if ":" in host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)

        # Restarting right after a stop must not fail on TIME_WAIT.
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

        sock.settimeout(ACCEPT_POLL)
        return sock

    def bind(self) -> None:
        """
        Bind and listen. One attempt, no retry.

        Raises:
            StartupError: If the address cannot be bound.
        """
        host, port = self.config.host, self.config.port
        sock = self._create_socket()

        try:
            sock.bind((host, port))
            sock.listen(self.config.backlog)
        except OSError as e:
            sock.close()
            logger.error(f"Failed to bind to {host}:{port}: {e}")
            raise StartupError(f"Could not listen on {self.config.listen_addr}: {e}") from e

        self._socket = sock
        self._stop_requested = False
        bound_host, bound_port = self.address
        logger.info(f"Listening on {bound_host}:{bound_port}")

    def serve(self, connection_handler: Callable[[Connection], None]) -> None:
        """
        Accept connections until stop() is called.

        Each accepted socket is wrapped in a Connection configured with the
        session timeouts and handed to ``connection_handler``. Returns
        at once if stop() already ran.
        """
        if self._stop_requested:
            return
        if self._socket is None:
            raise RuntimeError("serve() called before bind()")

        try:
            self._accept_loop(connection_handler)
        finally:
            self._close_listener()

    def _accept_loop(self, connection_handler: Callable[[Connection], None]) -> None:
        backoff = 0.0
        while not self._stop_requested:
            listener = self._socket
            if listener is None:
                break
            try:
                client_socket, client_address = listener.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._stop_requested:
                    break
                if e.errno in TRANSIENT_ACCEPT_ERRORS:
                    backoff = min(max(backoff * 2, ACCEPT_BACKOFF_MIN), ACCEPT_BACKOFF_MAX)
                    logger.warning(f"Accept error: {e}; retrying in {backoff * 1000:.0f}ms")
                    time.sleep(backoff)
                    continue
                logger.error(f"Accept error: {e}")
                break
            backoff = 0.0

            if self._stop_requested:
                client_socket.close()
                break

            logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")
            conn = Connection(
                socket=client_socket,
                address=client_address[:2],
                buffer_size=self.config.buffer_size,
                read_timeout=self.config.read_timeout,
                write_timeout=self.config.write_timeout,
                idle_timeout=self.config.idle_timeout,
                max_request_size=self.config.max_request_size,
            )
            connection_handler(conn)

    def stop(self) -> None:
        """
        Stop accepting. Safe to call from any thread, more than once.

        When this returns the listener is closed and new connection
        attempts are refused by the kernel.
        """
        if not self._stop_requested:
            logger.info("Stopped accepting new connections")
        self._stop_requested = True
        self._close_listener()

    def _close_listener(self) -> None:
        sock, self._socket = self._socket, None
        if sock is None:
            return
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        try:
            sock.close()
        except OSError:
            pass
