"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Every tunable of the server session in one dataclass.

=============================================================================
THE FOUR CLOCKS
=============================================================================

A connection's life is bounded by four independent durations:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │  accept ──► [ read_timeout ] ──► handler ──► [ write_timeout ] ──┐   │
    │              first byte to                   sendall() of the     │   │
    │              last body byte                  response             │   │
    │                                                                   │   │
    │         ┌──────────────── keep-alive ◄────────────────────────────┘   │
    │         │   [ idle_timeout ] waiting for the next request's           │
    │         │   first byte, then read_timeout applies again               │
    │         ▼                                                             │
    │                                                                      │
    │  SIGTERM ──► [ shutdown_timeout ] for everything above to finish     │
    │              before remaining connections are force-closed           │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    1. Defaults below
    2. Environment (ServerConfig.from_env), 12-factor style
    3. Code: ServerConfig(listen_addr="127.0.0.1:0", ...)

=============================================================================
INTERVIEW QUESTIONS ABOUT CONFIGURATION
=============================================================================

Q: "Why is the shutdown timeout separate from the request timeouts?"
A: "They answer different questions. read/write timeouts protect the
   server from slow clients. The shutdown timeout is a promise to the
   orchestrator (Kubernetes, systemd) about how long a stop takes;
   it must be shorter than the platform's SIGKILL grace period."

Q: "Why validate at startup?"
A: "Fail fast. A typo in HTTP_LISTEN_ADDR should stop the process at
   boot, not surface as a bind error hours later on a restart."

=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Tuple


def parse_listen_addr(listen_addr: str) -> Tuple[str, int]:
    """
    Split "host:port" into (host, port).

        ":9000"          → ("0.0.0.0", 9000)   empty host = all interfaces
        "127.0.0.1:0"    → ("127.0.0.1", 0)    0 = ephemeral port
        "[::1]:8080"     → ("::1", 8080)

    Raises:
        ValueError: If the string has no port or the port is not 0-65535.
    """
    host, sep, port_str = listen_addr.rpartition(":")
    if not sep:
        raise ValueError(f"Invalid listen address {listen_addr!r}: expected host:port")

    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]

    try:
        port = int(port_str)
    except ValueError:
        raise ValueError(f"Invalid port in listen address {listen_addr!r}")

    if not 0 <= port < 65536:
        raise ValueError(f"Invalid port: {port}. Must be 0-65535.")

    return host or "0.0.0.0", port


@dataclass
class ServerConfig:
    """
    Configuration for the server session and its shutdown.

    Development:
        ServerConfig(listen_addr="127.0.0.1:8080", log_level="DEBUG")

    Production (container):
        ServerConfig(listen_addr=":9000", shutdown_timeout=25.0)
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────

    listen_addr: str = ":9000"
    """
    Address to bind, "host:port". An empty host binds all interfaces,
    port 0 lets the OS pick a free port.
    """

    backlog: int = 128
    """Accept queue length passed to listen()."""

    buffer_size: int = 8192
    """Bytes requested per recv() call."""

    # ─────────────────────────────────────────────────────────────────────
    # TIMEOUTS (seconds)
    # ─────────────────────────────────────────────────────────────────────

    read_timeout: float = 5.0
    """Max time to read one complete request once its first byte arrived."""

    write_timeout: float = 10.0
    """Max time to write one response."""

    idle_timeout: float = 15.0
    """Max time a keep-alive connection may wait for its next request."""

    shutdown_timeout: float = 30.0
    """Drain deadline after a termination signal."""

    # ─────────────────────────────────────────────────────────────────────
    # HTTP
    # ─────────────────────────────────────────────────────────────────────

    keep_alive: bool = True
    """Allow several requests per connection (disabled during drain)."""

    max_request_size: int = 10 * 1024 * 1024
    """Requests larger than this are answered with 413."""

    server_name: str = "gracefulhttp/1.0"
    """Value of the Server response header."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """DEBUG, INFO, WARNING, ERROR or CRITICAL."""

    log_format: str = "text"
    """Access log line format: "text" or "json"."""

    @property
    def host(self) -> str:
        return parse_listen_addr(self.listen_addr)[0]

    @property
    def port(self) -> int:
        return parse_listen_addr(self.listen_addr)[1]

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Build a configuration from environment variables.

            HTTP_LISTEN_ADDR       listen address     (default :9000)
            HTTP_READ_TIMEOUT      seconds            (default 5)
            HTTP_WRITE_TIMEOUT     seconds            (default 10)
            HTTP_IDLE_TIMEOUT      seconds            (default 15)
            HTTP_SHUTDOWN_TIMEOUT  seconds            (default 30)
            HTTP_LOG_LEVEL         logging level      (default INFO)
            HTTP_LOG_FORMAT        text | json        (default text)

        Example:
            HTTP_LISTEN_ADDR=127.0.0.1:8080 python -m gracefulhttp
        """
        return cls(
            listen_addr=os.getenv("HTTP_LISTEN_ADDR", ":9000"),
            read_timeout=float(os.getenv("HTTP_READ_TIMEOUT", "5")),
            write_timeout=float(os.getenv("HTTP_WRITE_TIMEOUT", "10")),
            idle_timeout=float(os.getenv("HTTP_IDLE_TIMEOUT", "15")),
            shutdown_timeout=float(os.getenv("HTTP_SHUTDOWN_TIMEOUT", "30")),
            log_level=os.getenv("HTTP_LOG_LEVEL", "INFO"),
            log_format=os.getenv("HTTP_LOG_FORMAT", "text"),
        )

    def validate(self) -> None:
        """
        Check every value, raising ValueError on the first bad one.
        """
        parse_listen_addr(self.listen_addr)

        for name in ("read_timeout", "write_timeout", "idle_timeout", "shutdown_timeout"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0")

        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.log_format not in ("text", "json"):
            raise ValueError(f"log_format must be 'text' or 'json', got {self.log_format!r}")


# =============================================================================
# MODULE SUMMARY
# =============================================================================
#
# 1. listen_addr is a single "host:port" string, split by parse_listen_addr
# 2. read/write/idle timeouts bound each connection phase
# 3. shutdown_timeout bounds the drain after SIGINT/SIGTERM
# 4. from_env() for containers, validate() at startup
#
# =============================================================================
