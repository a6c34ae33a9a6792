"""
=============================================================================
HTTP PROTOCOL IMPLEMENTATION
=============================================================================

Translates raw bytes from TCP into structured HTTP/1.1 messages and back.

    ┌─────────────────────────────────────────────────────────────────────┐
    │ REQUEST PARSER (request.py)                                         │
    │   b"GET /hello HTTP/1.1\\r\\nHost: ...\\r\\n\\r\\n"                        │
    │        ──► HTTPRequest(method="GET", path="/hello", ...)            │
    │   Every request carries an immutable RequestContext.                │
    └─────────────────────────────────────────────────────────────────────┘

    ┌─────────────────────────────────────────────────────────────────────┐
    │ RESPONSE BUILDER (response.py)                                      │
    │   ResponseBuilder().status(...).text(...).build()                   │
    │        ──► b"HTTP/1.1 200 OK\\r\\nContent-Length: ...\\r\\n\\r\\n..."     │
    └─────────────────────────────────────────────────────────────────────┘

    ┌─────────────────────────────────────────────────────────────────────┐
    │ ROUTER (router.py)                                                  │
    │   Exact-path handler registry: 404, 405, and 500 on handler errors  │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .request import HTTPRequest, RequestParser, HTTPParseError, parse_request
from .response import (
    HTTPResponse,
    ResponseBuilder,
    ok,                  # 200 OK
    no_content,          # 204 No Content
    error_response,      # any status, plain-text message
    not_found,           # 404 Not Found
    method_not_allowed,  # 405 Method Not Allowed
    internal_error,      # 500 Internal Server Error
    service_unavailable, # 503 Service Unavailable
)
from .router import Router, Route, ANY_METHOD
from .status_codes import HTTPStatus

__all__ = [
    # Request parsing
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",
    "parse_request",

    # Response building
    "HTTPResponse",
    "ResponseBuilder",
    "ok",
    "no_content",
    "error_response",
    "not_found",
    "method_not_allowed",
    "internal_error",
    "service_unavailable",

    # Routing
    "Router",
    "Route",
    "ANY_METHOD",

    # Status codes
    "HTTPStatus",
]
