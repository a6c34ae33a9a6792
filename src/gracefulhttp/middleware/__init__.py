"""
=============================================================================
MIDDLEWARE FRAMEWORK
=============================================================================

Code that runs between receiving a request and the final handler.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   Incoming Request                                                   │
    │        │                                                             │
    │        ▼                                                             │
    │   ┌──────────────────────┐                                           │
    │   │ CorrelationMiddleware│ ──► X-Request-Id in, context, header out  │
    │   └──────────┬───────────┘                                           │
    │              ▼                                                       │
    │   ┌──────────────────────┐                                           │
    │   │ AccessLogMiddleware  │ ──► one access record per request         │
    │   └──────────┬───────────┘                                           │
    │              ▼                                                       │
    │   ┌──────────────────────┐                                           │
    │   │ Router               │ ──► handler, 404 / 405 / 500              │
    │   └──────────────────────┘                                           │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The order matters: the access log reads the correlation id from the
request context, so correlation must wrap it.

=============================================================================
"""

from .base import (
    Middleware,
    MiddlewarePipeline,
    NextHandler,
    FunctionMiddleware,
    function_middleware,
)
from .correlation import CorrelationMiddleware, RequestIdGenerator, REQUEST_ID_HEADER
from .access_log import AccessLogMiddleware, AccessLogRecord, UNKNOWN_REQUEST_ID

__all__ = [
    "Middleware",
    "MiddlewarePipeline",
    "NextHandler",
    "FunctionMiddleware",
    "function_middleware",
    "CorrelationMiddleware",
    "RequestIdGenerator",
    "REQUEST_ID_HEADER",
    "AccessLogMiddleware",
    "AccessLogRecord",
    "UNKNOWN_REQUEST_ID",
]
