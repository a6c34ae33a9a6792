"""
=============================================================================
REQUEST CONTEXT
=============================================================================

An immutable, per-request value carried on the HTTPRequest through every
middleware stage and into the route handler.

=============================================================================
EXPLICIT CONTEXT, NOT AMBIENT STATE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     Context flow through the chain                   │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Connection loop         RequestContext()         correlation_id    │
    │        │                                           = None            │
    │        ▼                                                             │
    │   CorrelationMiddleware ──► ctx.with_correlation_id("171...")        │
    │        │                     request.with_context(new_ctx)           │
    │        ▼                                                             │
    │   AccessLogMiddleware   ──► reads request.context.correlation_id     │
    │        │                                                             │
    │        ▼                                                             │
    │   Router / handler      ──► same value, read-only                    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Each stage that adds information builds a NEW context and a NEW request
object. Nothing is looked up from thread-locals or module globals, so two
servers in one process (or two concurrent requests on one server) can never
see each other's values.

=============================================================================
INTERVIEW QUESTIONS ABOUT REQUEST CONTEXT
=============================================================================

Q: "Why not store the request id in a thread-local?"
A: "A thread-local ties the value to the worker thread instead of the
   request. It leaks across keep-alive requests if someone forgets to
   reset it, and it silently breaks once work hops threads. Passing
   the value explicitly makes the dependency visible in signatures."

Q: "Why frozen?"
A: "A downstream stage cannot overwrite the correlation id by
   accident. The only way to 'change' it is to build a new context,
   and with_correlation_id() refuses to replace an existing id."

=============================================================================
"""

from dataclasses import dataclass, replace
from typing import Optional


@dataclass(frozen=True)
class RequestContext:
    """
    Per-request scope.

    Attributes:
        correlation_id: Identifier tying together every log line for one
                        request. None until CorrelationMiddleware runs.
    """

    correlation_id: Optional[str] = None

    @property
    def has_correlation_id(self) -> bool:
        return bool(self.correlation_id)

    def with_correlation_id(self, correlation_id: str) -> "RequestContext":
        """
        Return a context carrying ``correlation_id``.

        First writer wins: if this context already has an id, it is
        returned unchanged.
        """
        if self.has_correlation_id:
            return self
        return replace(self, correlation_id=correlation_id)
