"""
=============================================================================
CORE SERVER COMPONENTS
=============================================================================

Low-level networking: the listening socket, per-connection I/O, and the
registry of live connections that makes a bounded drain possible.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         SOCKET SERVER                                │
    │  • Binds host:port, runs the accept() loop on the caller's thread   │
    │  • stop() closes the listener from any thread                       │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ every accepted socket
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                       CONNECTION TRACKER                             │
    │  • One daemon thread per connection                                 │
    │  • Knows which connections are open, and which of them are idle     │
    │  • drain(timeout): close idle, wait for busy, abort at deadline     │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ worker thread runs the keep-alive loop
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                          CONNECTION                                  │
    │  • Buffered request reading (TCP is a stream, not messages)         │
    │  • read / write / idle timeouts                                     │
    │  • NEW → READING → PROCESSING → WRITING → KEEP_ALIVE → ...          │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .socket_server import SocketServer
from .connection import Connection, ConnectionState, RequestTooLargeError
from .tracker import ConnectionTracker, DrainResult

__all__ = [
    "SocketServer",           # Listening socket + accept loop
    "Connection",             # Client socket wrapper
    "ConnectionState",        # Connection lifecycle states
    "RequestTooLargeError",   # Request exceeded max_request_size
    "ConnectionTracker",      # Thread per connection, drain
    "DrainResult",            # Outcome of a drain
]
