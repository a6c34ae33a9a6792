"""
=============================================================================
HTTP RESPONSE BUILDER
=============================================================================

HTTPResponse is what every handler and middleware stage returns. Stages
further out in the chain may still add headers to it (CorrelationMiddleware
sets X-Request-Id) because nothing is written to the socket until the
connection loop calls to_bytes() on the final object.

    ┌─────────────────────────────────────────────────────────────────────┐
    │   handler returns ──► stages add headers ──► to_bytes() ──► socket  │
    │                                               (only here are bytes  │
    │                                                produced)            │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
INTERVIEW QUESTIONS ABOUT HTTP RESPONSES
=============================================================================

Q: "How does the client know when the response body ends?"
A: "Content-Length. This server always sets it (except on 204, which
   by definition has no body and must not carry the header)."

Q: "Why build headers on an object instead of writing them directly?"
A: "Every header has to be on the wire before the first body byte.
   Keeping the response as a value until serialisation means a stage
   can never be too late to add one."

=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Any, Union
import json

from .status_codes import HTTPStatus


DEFAULT_SERVER_NAME = "gracefulhttp/1.0"


@dataclass
class HTTPResponse:
    """
    An HTTP response waiting to be serialised.

    Use ResponseBuilder or the helpers at the bottom of this module to
    construct one.
    """

    status: HTTPStatus = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        """e.g. "HTTP/1.1 204 No Content"."""
        return f"{self.version} {int(self.status)} {self.status.phrase}"

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        self.headers[name] = value
        return self

    def to_bytes(self, server_name: str = DEFAULT_SERVER_NAME) -> bytes:
        """
        Serialise status line, headers and body.

            HTTP/1.1 200 OK\\r\\n
            Content-Type: text/plain; charset=utf-8\\r\\n
            X-Request-Id: 1718200000000000000\\r\\n
            Content-Length: 14\\r\\n        ← added unless status is 204
            Date: Mon, 16 Oct 2026 ...\\r\\n ← added
            Server: gracefulhttp/1.0\\r\\n   ← added
            \\r\\n
            Hello, World!

        The response object itself is not modified.
        """
        response_headers = dict(self.headers)

        if self.status == HTTPStatus.NO_CONTENT:
            response_headers.pop("Content-Length", None)
        else:
            response_headers.setdefault("Content-Length", str(len(self.body)))
        response_headers.setdefault("Date", format_http_date(datetime.now(timezone.utc)))
        response_headers.setdefault("Server", server_name)

        lines = [self.status_line]
        lines.extend(f"{name}: {value}" for name, value in response_headers.items())
        lines.append("")

        head = "\r\n".join(lines).encode("utf-8") + b"\r\n"
        body = b"" if self.status == HTTPStatus.NO_CONTENT else self.body
        return head + body


class ResponseBuilder:
    """
    Fluent builder for HTTPResponse.

        response = (ResponseBuilder()
            .status(HTTPStatus.SERVICE_UNAVAILABLE)
            .no_cache()
            .build())

    Every method except build() returns self.
    """

    def __init__(self):
        self._status = HTTPStatus.OK
        self._headers: Dict[str, str] = {}
        self._body: bytes = b""

    # =========================================================================
    # STATUS & HEADERS
    # =========================================================================

    def status(self, status: HTTPStatus) -> "ResponseBuilder":
        self._status = status
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        self._headers[name] = value
        return self

    def headers(self, headers: Dict[str, str]) -> "ResponseBuilder":
        self._headers.update(headers)
        return self

    def content_type(self, content_type: str) -> "ResponseBuilder":
        return self.header("Content-Type", content_type)

    # =========================================================================
    # BODY
    # =========================================================================

    def body(self, body: Union[str, bytes]) -> "ResponseBuilder":
        self._body = body.encode("utf-8") if isinstance(body, str) else body
        return self

    def text(self, text: str, content_type: str = "text/plain; charset=utf-8") -> "ResponseBuilder":
        self._body = text.encode("utf-8")
        self._headers["Content-Type"] = content_type
        return self

    def html(self, html: str) -> "ResponseBuilder":
        self._body = html.encode("utf-8")
        self._headers["Content-Type"] = "text/html; charset=utf-8"
        return self

    def json(self, data: Any) -> "ResponseBuilder":
        self._body = json.dumps(data, ensure_ascii=False).encode("utf-8")
        self._headers["Content-Type"] = "application/json; charset=utf-8"
        return self

    # =========================================================================
    # CACHING & CONNECTION
    # =========================================================================

    def no_cache(self) -> "ResponseBuilder":
        """Cache-Control: no-store. Health answers must never be cached."""
        self._headers["Cache-Control"] = "no-store"
        return self

    def nosniff(self) -> "ResponseBuilder":
        """Stop browsers from guessing a different Content-Type."""
        self._headers["X-Content-Type-Options"] = "nosniff"
        return self

    def close_connection(self) -> "ResponseBuilder":
        self._headers["Connection"] = "close"
        return self

    def build(self) -> HTTPResponse:
        return HTTPResponse(
            status=self._status,
            headers=dict(self._headers),
            body=self._body,
        )


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

_DAYS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
_MONTHS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
           "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]


def format_http_date(dt: datetime) -> str:
    """
    Format a UTC datetime as an HTTP-date (RFC 7231).

    Example: "Fri, 16 Oct 2026 12:00:00 GMT"
    """
    return (
        f"{_DAYS[dt.weekday()]}, "
        f"{dt.day:02d} {_MONTHS[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def ok(body: Union[str, bytes, dict, list] = "") -> HTTPResponse:
    """200 OK; dict/list become JSON, str becomes text/plain."""
    builder = ResponseBuilder().status(HTTPStatus.OK)
    if isinstance(body, (dict, list)):
        builder.json(body)
    elif isinstance(body, str):
        builder.text(body)
    else:
        builder.body(body)
    return builder.build()


def no_content() -> HTTPResponse:
    return ResponseBuilder().status(HTTPStatus.NO_CONTENT).build()


def error_response(status: HTTPStatus, message: str) -> HTTPResponse:
    """JSON error body: {"error": message}."""
    return ResponseBuilder().status(status).json({"error": message}).build()


def not_found(message: str = "Not Found") -> HTTPResponse:
    return error_response(HTTPStatus.NOT_FOUND, message)


def method_not_allowed(allowed_methods: list[str]) -> HTTPResponse:
    """405 with the Allow header RFC 7231 requires."""
    response = error_response(HTTPStatus.METHOD_NOT_ALLOWED, "Method Not Allowed")
    return response.set_header("Allow", ", ".join(allowed_methods))


def internal_error(message: str = "Internal Server Error") -> HTTPResponse:
    return error_response(HTTPStatus.INTERNAL_SERVER_ERROR, message)


def service_unavailable() -> HTTPResponse:
    """503 with no body."""
    return ResponseBuilder().status(HTTPStatus.SERVICE_UNAVAILABLE).build()
