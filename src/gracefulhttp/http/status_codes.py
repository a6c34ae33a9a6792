"""
=============================================================================
HTTP STATUS CODES
=============================================================================

The status codes this server can put on the wire, with their reason phrases.

=============================================================================
WHO PRODUCES WHICH CODE
=============================================================================

    ┌────────┬───────────────────────────────────────────────────────────┐
    │  Code  │ Produced by                                               │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  200   │ Route handlers (/, /hello, /json-as-text)                 │
    │  204   │ Health handler while the liveness flag is READY           │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  400   │ Request parser (malformed request line or headers)        │
    │  404   │ Router (no route for the path)                            │
    │  405   │ Router (path registered, method not allowed)              │
    │  408   │ Connection loop (client too slow to send a request)       │
    │  413   │ Request parser / connection (request too large)           │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  500   │ Router (route handler raised)                             │
    │  503   │ Health handler while STARTING or DRAINING                 │
    │  505   │ Request parser (unsupported HTTP version)                 │
    └────────┴───────────────────────────────────────────────────────────┘

=============================================================================
INTERVIEW QUESTIONS ABOUT STATUS CODES
=============================================================================

Q: "Why does the health check answer 204 instead of 200?"
A: "The probe only needs the status line. 204 No Content says 'yes'
   without a body, so there is nothing to cache, parse or log."

Q: "Why 503 while draining rather than closing the listener first?"
A: "503 Service Unavailable tells the load balancer to stop routing
   to this instance while requests already in flight still finish.
   A refused connection looks like a crash instead."

=============================================================================
"""

from enum import IntEnum


class HTTPStatus(IntEnum):
    """
    HTTP status codes and reason phrases.

    IntEnum, so members compare equal to plain integers:

        >>> HTTPStatus.NO_CONTENT == 204
        True
        >>> HTTPStatus.NO_CONTENT.phrase
        'No Content'
    """

    # 2xx SUCCESS
    OK = 200                            # Normal response with a body
    NO_CONTENT = 204                    # Ready health check, no body

    # 4xx CLIENT ERRORS
    BAD_REQUEST = 400                   # Malformed request syntax
    NOT_FOUND = 404                     # No route for this path
    METHOD_NOT_ALLOWED = 405            # Route exists, method does not
    REQUEST_TIMEOUT = 408               # Client took too long to send request
    PAYLOAD_TOO_LARGE = 413             # Request exceeds max_request_size

    # 5xx SERVER ERRORS
    INTERNAL_SERVER_ERROR = 500         # Route handler raised
    SERVICE_UNAVAILABLE = 503           # Not ready, or draining
    HTTP_VERSION_NOT_SUPPORTED = 505    # Not HTTP/1.0 or HTTP/1.1

    @property
    def phrase(self) -> str:
        """
        Reason phrase for the status line.

            HTTP/1.1 503 Service Unavailable
                     ─── ───────────────────
                      │           │
                      │           └── Reason phrase
                      └────────────── Status code
        """
        return _STATUS_PHRASES.get(self, "Unknown")

    @property
    def is_success(self) -> bool:
        return 200 <= self < 300

    @property
    def is_error(self) -> bool:
        return self >= 400


_STATUS_PHRASES = {
    HTTPStatus.OK: "OK",
    HTTPStatus.NO_CONTENT: "No Content",
    HTTPStatus.BAD_REQUEST: "Bad Request",
    HTTPStatus.NOT_FOUND: "Not Found",
    HTTPStatus.METHOD_NOT_ALLOWED: "Method Not Allowed",
    HTTPStatus.REQUEST_TIMEOUT: "Request Timeout",
    HTTPStatus.PAYLOAD_TOO_LARGE: "Payload Too Large",
    HTTPStatus.INTERNAL_SERVER_ERROR: "Internal Server Error",
    HTTPStatus.SERVICE_UNAVAILABLE: "Service Unavailable",
    HTTPStatus.HTTP_VERSION_NOT_SUPPORTED: "HTTP Version Not Supported",
}
