"""
=============================================================================
HTTP REQUEST PARSER
=============================================================================

Turns the raw bytes of one HTTP/1.x request into an HTTPRequest.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     HTTP REQUEST STRUCTURE                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    GET /hello?lang=en HTTP/1.1\r\n          ← request line           │
    │    Host: localhost:9000\r\n                 ┐                        │
    │    User-Agent: curl/8.4.0\r\n               │ headers                │
    │    X-Request-Id: 7f3c2a\r\n                 ┘                        │
    │    \r\n                                     ← end of headers         │
    │    (body, exactly Content-Length bytes)                              │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The parsed request also carries a RequestContext. The parser always
starts it empty; middleware stages derive new requests with
with_context() instead of mutating the one they were given.

=============================================================================
INTERVIEW QUESTIONS ABOUT PARSING
=============================================================================

Q: "Why lowercase header names at parse time?"
A: "Header names are case-insensitive (RFC 7230). Normalising once
   means 'X-Request-Id', 'x-request-id' and 'X-REQUEST-ID' all hit
   the same dictionary key with no .lower() scattered around."

Q: "How do you handle malformed requests?"
A: "Raise HTTPParseError carrying the status code to send back:
   400 for bad syntax (including a method that is not a token), 413 when the
   request is too large, 505 for an unsupported version."

=============================================================================
"""

from dataclasses import dataclass, field, replace
from typing import Optional, Dict
from urllib.parse import parse_qs, urlparse, unquote
import re

from ..context import RequestContext


class HTTPParseError(Exception):
    """
    Raised when a request cannot be parsed.

    Carries the HTTP status code the connection loop should answer with.
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class HTTPRequest:
    """
    A parsed HTTP request.

    Attributes:
        method:         GET, POST, ...
        path:           URL-decoded path without the query string.
        version:        "HTTP/1.1" or "HTTP/1.0".
        headers:        Header values keyed by LOWERCASE name.
        query_params:   "?a=1&a=2" → {"a": ["1", "2"]}
        body:           Exactly Content-Length bytes.
        client_address: (ip, port) of the peer.
        context:        Per-request RequestContext (see context.py).
        raw:            The unparsed request bytes.
    """

    method: str
    path: str
    version: str = "HTTP/1.1"

    headers: Dict[str, str] = field(default_factory=dict)
    query_params: Dict[str, list[str]] = field(default_factory=dict)
    body: bytes = b""

    client_address: tuple[str, int] = ("", 0)
    context: RequestContext = field(default_factory=RequestContext)
    raw: bytes = field(default=b"", repr=False)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def content_length(self) -> int:
        try:
            return int(self.headers.get("content-length", 0))
        except ValueError:
            return 0

    @property
    def user_agent(self) -> str:
        return self.headers.get("user-agent", "")

    @property
    def remote_addr(self) -> str:
        """Peer address as "ip:port", the form used in access logs."""
        ip, port = self.client_address
        return f"{ip}:{port}"

    @property
    def is_keep_alive(self) -> bool:
        """
        Whether the client asked to keep the connection open.

            HTTP/1.1: open unless "Connection: close"
            HTTP/1.0: closed unless "Connection: keep-alive"
        """
        connection = self.headers.get("connection", "").lower()
        if self.version == "HTTP/1.1":
            return connection != "close"
        return connection == "keep-alive"

    # =========================================================================
    # ACCESSORS
    # =========================================================================

    def get_header(self, name: str, default: str = "") -> str:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower(), default)

    def get_query(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """First value of a query parameter."""
        values = self.query_params.get(name, [])
        return values[0] if values else default

    def with_context(self, context: RequestContext) -> "HTTPRequest":
        """
        Return a copy of this request carrying ``context``.

        The original request is left untouched, so an outer stage still
        sees the context it was handed.
        """
        return replace(self, context=context)


class RequestParser:
    """
    Parses raw request bytes into HTTPRequest objects.

    REQUEST_LINE_PATTERN: ^(token) ([^ ]+) (HTTP/\\d\\.\\d)$
        method, request-target, version separated by single spaces.
        Any RFC 9110 token is a method; the Router decides 404 / 405
        inside the middleware chain.

    HEADER_PATTERN: ^([^:]+):\\s*(.*)$
        name, colon, optional whitespace, value
    """

    REQUEST_LINE_PATTERN = re.compile(r"^([!#$%&'*+.^_`|~0-9A-Za-z-]+) ([^ ]+) (HTTP/\d\.\d)$")
    HEADER_PATTERN = re.compile(r"^([^:]+):\s*(.*)$")

    def __init__(self, max_request_size: int = 10 * 1024 * 1024):
        self.max_request_size = max_request_size

    def parse(
        self,
        data: bytes,
        client_address: tuple[str, int] = ("", 0)
    ) -> HTTPRequest:
        """
        Parse one complete request.

        Args:
            data: Request bytes as returned by Connection.read_request().
            client_address: Peer (ip, port).

        Returns:
            HTTPRequest with an empty RequestContext.

        Raises:
            HTTPParseError: If the request is malformed.
        """
        if len(data) > self.max_request_size:
            raise HTTPParseError(
                f"Request too large: {len(data)} bytes",
                status_code=413,
            )

        # ─────────────────────────────────────────────────────────────────
        # SPLIT HEAD AND BODY
        # ─────────────────────────────────────────────────────────────────
        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        header_section = data[:header_end].decode("utf-8", errors="replace")
        body = data[header_end + 4:]

        lines = header_section.split("\r\n")
        method, path, query_params, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        # ─────────────────────────────────────────────────────────────────
        # BODY: trust only Content-Length
        # ─────────────────────────────────────────────────────────────────
        try:
            content_length = int(headers.get("content-length", 0))
        except ValueError:
            raise HTTPParseError("Invalid Content-Length header")
        if content_length < 0:
            raise HTTPParseError("Invalid Content-Length header")
        if len(body) < content_length:
            raise HTTPParseError(
                f"Incomplete body: expected {content_length} bytes, got {len(body)}"
            )

        return HTTPRequest(
            method=method,
            path=path,
            version=version,
            headers=headers,
            query_params=query_params,
            body=body[:content_length],
            client_address=client_address,
            raw=data,
        )

    def _parse_request_line(
        self,
        line: str
    ) -> tuple[str, str, Dict[str, list[str]], str]:
        """Split "METHOD target VERSION" and validate each part."""
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line}")

        method, target, version = match.groups()

        if version not in ("HTTP/1.0", "HTTP/1.1"):
            raise HTTPParseError(
                f"Unsupported HTTP version: {version}",
                status_code=505,
            )

        parsed = urlparse(target)
        path = unquote(parsed.path) or "/"
        query_params = parse_qs(parsed.query, keep_blank_values=True)

        return method, path, query_params, version

    def _parse_headers(self, lines: list[str]) -> Dict[str, str]:
        """
        Parse header lines into a dict with lowercase names.

        Repeated headers are joined with ", ". Obsolete folded lines
        (leading whitespace) continue the previous header. Lines without
        a colon are skipped.
        """
        headers: Dict[str, str] = {}
        current_name = None

        for line in lines:
            if not line:
                continue

            if line[0] in (" ", "\t"):
                if current_name is not None:
                    headers[current_name] += " " + line.strip()
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                continue

            name, value = match.groups()
            name = name.strip().lower()
            value = value.strip()
            current_name = name

            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers


def parse_request(
    data: bytes,
    client_address: tuple[str, int] = ("", 0),
    max_size: int = 10 * 1024 * 1024
) -> HTTPRequest:
    """Parse ``data`` with a one-off RequestParser."""
    return RequestParser(max_request_size=max_size).parse(data, client_address)
