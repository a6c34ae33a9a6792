"""
=============================================================================
SERVER ERRORS
=============================================================================

Lifecycle failures that end the process. Request-level problems never use
these: they become HTTP error responses (HTTPParseError in the parser,
500 from the router).

    ┌─────────────────────┬───────────────────────────────┬─────────────┐
    │ Exception           │ Raised when                   │ Exit status │
    ├─────────────────────┼───────────────────────────────┼─────────────┤
    │ StartupError        │ bind() fails                  │ 1           │
    │                     │ signal handlers can't install │             │
    │ ShutdownError       │ draining itself blew up       │ 1           │
    └─────────────────────┴───────────────────────────────┴─────────────┘

A drain that merely hits its deadline is NOT an error: the remaining
connections are force-closed and a warning is logged.
"""


class ServerError(Exception):
    """Base class for fatal server lifecycle errors."""

    exit_code = 1


class StartupError(ServerError):
    """The server could not start. No retry is attempted."""


class ShutdownError(ServerError):
    """The server could not complete its shutdown sequence."""
