"""
=============================================================================
HTTP SERVER SESSION
=============================================================================

Ties the listening socket, the connection tracker, the request parser and
the handler chain into one server session. The session knows how to serve
and how to stop; WHEN to stop is decided by the ShutdownOrchestrator.

=============================================================================
ARCHITECTURE OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │                    ┌──────────────────────┐                          │
    │                    │ ShutdownOrchestrator │  signals, liveness,      │
    │                    └──────────┬───────────┘  drain deadline          │
    │                               │                                      │
    │                               ▼                                      │
    │                        ┌─────────────┐                               │
    │                        │ HTTPServer  │                               │
    │                        └──────┬──────┘                               │
    │            ┌──────────────────┼──────────────────┐                   │
    │            ▼                  ▼                  ▼                   │
    │    ┌──────────────┐  ┌───────────────────┐  ┌──────────────┐         │
    │    │ SocketServer │  │ ConnectionTracker │  │   Handler    │         │
    │    │ (listener)   │  │ (thread per conn) │  │    chain     │         │
    │    └──────────────┘  └───────────────────┘  └──────────────┘         │
    │                                                                      │
    │    Handler chain:  Correlation ──► AccessLog ──► Router              │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
REQUEST LIFECYCLE
=============================================================================

    1. ACCEPT          SocketServer accepts, wraps the socket in a Connection
    2. TRACK           ConnectionTracker starts a thread for it
    3. READ            Connection.read_request() (read_timeout / idle_timeout)
    4. PARSE           RequestParser → HTTPRequest
    5. HANDLE          middleware chain → Router → handler
    6. WRITE           Connection.send_response() (write_timeout)
    7. KEEP-ALIVE?     loop to 3, unless the client or a drain says close

=============================================================================
SHUTDOWN PRIMITIVE
=============================================================================

    shutdown(timeout)
        1. keep-alives off     every response from now on says close
        2. stop accepting      listener closed, accept loop exits
        3. drain(timeout)      idle connections closed, busy ones waited
                               for, leftovers aborted at the deadline

=============================================================================
"""

import logging
from typing import Callable, Optional

from .config import ServerConfig
from .core import Connection, ConnectionTracker, DrainResult, RequestTooLargeError, SocketServer
from .http import (
    HTTPRequest, HTTPResponse, RequestParser, HTTPParseError,
    HTTPStatus, ResponseBuilder, Router,
)
from .lifecycle import LivenessFlag, ShutdownOrchestrator
from .middleware import Middleware, MiddlewarePipeline


logger = logging.getLogger(__name__)


# Bytes of a rejected request scanned for its request line and headers.
PARTIAL_HEAD_LIMIT = 64 * 1024


class HTTPServer:
    """
    One HTTP/1.1 server session.

    Usage:
        server = HTTPServer(ServerConfig(listen_addr=":8080"))

        @server.get("/hello")
        def hello(request):
            return ok("Hello, World!\\n")

        server.use(CorrelationMiddleware())
        server.run()        # blocks until SIGINT/SIGTERM and drain
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        liveness: Optional[LivenessFlag] = None,
        router: Optional[Router] = None,
    ):
        self.config = config or ServerConfig()
        self.config.validate()

        self.liveness = liveness or LivenessFlag()

        # ─────────────────────────────────────────────────────────────────
        # CORE COMPONENTS
        # ─────────────────────────────────────────────────────────────────
        self._socket_server = SocketServer(self.config)
        self._tracker = ConnectionTracker()
        self._parser = RequestParser(max_request_size=self.config.max_request_size)

        # ─────────────────────────────────────────────────────────────────
        # APPLICATION COMPONENTS
        # ─────────────────────────────────────────────────────────────────
        self._router = router or Router()
        self._middleware = MiddlewarePipeline()

        # middleware.wrap(router.handle), built at bind()
        self._handler: Optional[Callable[[HTTPRequest], HTTPResponse]] = None

        self._keep_alives_enabled = self.config.keep_alive

    # =========================================================================
    # CONFIGURATION
    # =========================================================================

    def use(self, middleware: Middleware) -> "HTTPServer":
        """Add middleware; first added runs outermost."""
        self._middleware.add(middleware)
        return self

    @property
    def router(self) -> Router:
        return self._router

    @property
    def middleware(self) -> MiddlewarePipeline:
        return self._middleware

    @property
    def tracker(self) -> ConnectionTracker:
        return self._tracker

    def route(self, path: str, method: Optional[str] = None):
        return self._router.route(path, method)

    def get(self, path: str):
        return self._router.get(path)

    def post(self, path: str):
        return self._router.post(path)

    # =========================================================================
    # SESSION
    # =========================================================================

    @property
    def address(self) -> tuple[str, int]:
        return self._socket_server.address

    @property
    def keep_alives_enabled(self) -> bool:
        return self._keep_alives_enabled

    def set_keep_alives_enabled(self, enabled: bool) -> None:
        self._keep_alives_enabled = enabled and self.config.keep_alive

    def bind(self) -> None:
        """
        Build the handler chain and bind the listener.

        Raises:
            StartupError: If the address cannot be bound.
        """
        self._handler = self._middleware.wrap(self._router.handle)
        self._socket_server.bind()

    def serve_forever(self) -> None:
        """Accept connections until shutdown() stops the listener."""
        if self._handler is None:
            self._handler = self._middleware.wrap(self._router.handle)
        self._socket_server.serve(self._handle_connection)

    def shutdown(self, timeout: float) -> DrainResult:
        """
        Stop accepting and drain open connections within ``timeout``.

        Keep-alives are disabled first, so a request finishing during the
        drain answers with ``Connection: close``.
        """
        self.set_keep_alives_enabled(False)
        self._socket_server.stop()
        return self._tracker.drain(timeout)

    def force_close(self) -> int:
        """Stop accepting and abort every open connection at once."""
        self.set_keep_alives_enabled(False)
        self._socket_server.stop()
        self._tracker.stop_accepting()
        return self._tracker.force_close_all()

    def run(self, **orchestrator_options) -> DrainResult:
        """
        Serve until SIGINT/SIGTERM, then drain (blocking).

        Keyword arguments go to ShutdownOrchestrator, e.g. ``signals=()``
        to skip signal handler installation.
        """
        orchestrator_options.setdefault("shutdown_timeout", self.config.shutdown_timeout)
        orchestrator = ShutdownOrchestrator(self, self.liveness, **orchestrator_options)
        return orchestrator.run()

    # =========================================================================
    # REQUEST HANDLING
    # =========================================================================

    def _handle_connection(self, conn: Connection) -> None:
        """Called by SocketServer for every accepted connection."""
        self._tracker.track(conn, self._process_connection)

    def _process_connection(self, conn: Connection) -> None:
        """
        Keep-alive loop for one connection (runs on its own thread).

            read ─► parse ─► handle ─► write ─► keep-alive? ─► read ...
        """
        with conn:
            while not conn.is_closed:
                try:
                    raw_request = conn.read_request()
                except TimeoutError:
                    self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT, "Request timeout", conn.pending_bytes)
                    break
                except RequestTooLargeError:
                    self._send_error(conn, HTTPStatus.PAYLOAD_TOO_LARGE, "Request too large", conn.pending_bytes)
                    break

                if raw_request is None:
                    break

                try:
                    request = self._parser.parse(raw_request, conn.address)
                except HTTPParseError as e:
                    self._send_error(conn, HTTPStatus(e.status_code), str(e), raw_request)
                    break

                conn.mark_processing()
                response = self._handler(request)

                # ─────────────────────────────────────────────────────────
                # CONNECTION HEADERS
                # ─────────────────────────────────────────────────────────
                keep_alive = (
                    self._keep_alives_enabled
                    and request.is_keep_alive
                    and response.headers.get("Connection", "").lower() != "close"
                )
                if keep_alive:
                    response.headers.setdefault("Connection", "keep-alive")
                    response.headers.setdefault(
                        "Keep-Alive", f"timeout={int(self.config.idle_timeout)}"
                    )
                else:
                    response.headers["Connection"] = "close"
                    response.headers.pop("Keep-Alive", None)

                if not conn.send_response(response.to_bytes(self.config.server_name)):
                    break

                # A drain may have started while this request was in flight.
                if not keep_alive or not self._keep_alives_enabled:
                    break

                conn.set_keep_alive()

    def _send_error(
        self,
        conn: Connection,
        status: HTTPStatus,
        message: str,
        raw: bytes = b"",
    ) -> None:
        """
        Answer a request that could not be parsed or read in full.

        The error still goes through the middleware chain, so it gets an
        X-Request-Id and an access record like any routed response.
        """
        logger.debug(f"[{conn.id}] {status.value} {message}")
        response = (ResponseBuilder()
            .status(status)
            .json({"error": message})
            .close_connection()
            .build())

        handler = self._middleware.wrap(lambda request: response)
        response = handler(partial_request(raw, conn.address))
        response.headers["Connection"] = "close"
        conn.send_response(response.to_bytes(self.config.server_name))


def partial_request(raw: bytes, client_address: tuple[str, int]) -> HTTPRequest:
    """
    Best-effort HTTPRequest from bytes the parser rejected.

    Method and path fall back to "-" when the request line is unusable.
    Headers are read leniently so X-Request-Id and User-Agent survive.
    """
    head = raw[:PARTIAL_HEAD_LIMIT].split(b"\r\n\r\n", 1)[0].decode("utf-8", errors="replace")
    lines = head.split("\r\n")

    parts = lines[0].split(" ")
    method, path = (parts[0], parts[1]) if len(parts) == 3 else ("-", "-")

    headers = {}
    for line in lines[1:]:
        name, sep, value = line.partition(":")
        if sep and name.strip():
            headers[name.strip().lower()] = value.strip()

    return HTTPRequest(
        method=method,
        path=path.split("?", 1)[0],
        headers=headers,
        client_address=client_address,
    )


# =============================================================================
# MODULE SUMMARY
# =============================================================================
#
# HTTPServer is the session: bind(), serve_forever(), shutdown(timeout),
# force_close(). It holds no signal logic and no notion of readiness
# beyond owning the LivenessFlag that the orchestrator and the health
# handler share.
#
# KEY DESIGN DECISIONS:
# - Thread per connection, tracked, so a drain can see every connection
# - Keep-alive switched off before the listener closes
# - Handler errors become 500s inside the Router, below the middleware
# - Parse and read errors still pass through the middleware chain
# =============================================================================
