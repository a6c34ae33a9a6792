"""
=============================================================================
ACCESS LOG MIDDLEWARE
=============================================================================

Writes one access record per request, tagged with its correlation id.

=============================================================================
LOG FORMATS
=============================================================================

    TEXT (default):
    ┌─────────────────────────────────────────────────────────────────────┐
    │ 1718016936123456789 GET /hello 10.0.0.7:53122 curl/8.4.0            │
    │ ───────────────────────────────────────────────────────────────── │
    │ correlation id      method path remote addr  user agent             │
    └─────────────────────────────────────────────────────────────────────┘

    JSON (for log aggregators):
    ┌─────────────────────────────────────────────────────────────────────┐
    │ {"request_id": "1718016936123456789", "method": "GET",              │
    │  "path": "/hello", "remote_addr": "10.0.0.7:53122",                 │
    │  "user_agent": "curl/8.4.0"}                                        │
    └─────────────────────────────────────────────────────────────────────┘

A request that never passed the correlation stage is logged with the id
"unknown".

=============================================================================
EXACTLY ONCE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │   try:                                                              │
    │       return next(request)      ← may return or raise               │
    │   finally:                                                          │
    │       emit record               ← runs in both cases, once          │
    └─────────────────────────────────────────────────────────────────────┘

The record is written after the inner handler is done, whatever happened
there, and an exception from the inner handler propagates unchanged. A
failure inside the log sink itself (a broken handler, a full disk) is
ignored: logging must never turn a served request into an error.

=============================================================================
"""

import json
import logging
from dataclasses import dataclass
from typing import Optional

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


# Configure separately from application logs:
#   logging.getLogger("gracefulhttp.access").addHandler(file_handler)
access_logger = logging.getLogger("gracefulhttp.access")


UNKNOWN_REQUEST_ID = "unknown"


@dataclass
class AccessLogRecord:
    """
    One access log entry.

    Attributes:
        request_id:  Correlation id, or "unknown".
        method:      HTTP method.
        path:        Request path without the query string.
        remote_addr: Peer as "ip:port".
        user_agent:  User-Agent header, "" when absent.
    """

    request_id: str
    method: str
    path: str
    remote_addr: str
    user_agent: str

    @classmethod
    def from_request(cls, request: HTTPRequest) -> "AccessLogRecord":
        return cls(
            request_id=request.context.correlation_id or UNKNOWN_REQUEST_ID,
            method=request.method,
            path=request.path,
            remote_addr=request.remote_addr,
            user_agent=request.user_agent,
        )

    def to_dict(self) -> dict:
        return {
            "request_id": self.request_id,
            "method": self.method,
            "path": self.path,
            "remote_addr": self.remote_addr,
            "user_agent": self.user_agent,
        }

    def to_text(self) -> str:
        return (
            f"{self.request_id} {self.method} {self.path} "
            f"{self.remote_addr} {self.user_agent or '-'}"
        )


class AccessLogMiddleware(Middleware):
    """
    Access logging.

    Must sit inside CorrelationMiddleware so the id is already in the
    request context:

        pipeline.add(CorrelationMiddleware())
        pipeline.add(AccessLogMiddleware())

    Args:
        log_format: "text" or "json".
        logger: Sink for the records, "gracefulhttp.access" by default.
        log_level: Level the records are written at.
    """

    def __init__(
        self,
        log_format: str = "text",
        logger: Optional[logging.Logger] = None,
        log_level: int = logging.INFO,
    ):
        if log_format not in ("text", "json"):
            raise ValueError(f"log_format must be 'text' or 'json', got {log_format!r}")
        self.log_format = log_format
        self.logger = logger or access_logger
        self.log_level = log_level

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        try:
            return next(request)
        finally:
            self._emit(AccessLogRecord.from_request(request))

    def format(self, record: AccessLogRecord) -> str:
        if self.log_format == "json":
            return json.dumps(record.to_dict())
        return record.to_text()

    def _emit(self, record: AccessLogRecord) -> None:
        try:
            self.logger.log(self.log_level, self.format(record))
        except Exception:
            # sink failures are not the client's problem
            pass


# =============================================================================
# MODULE SUMMARY
# =============================================================================
#
# One record per request, written in a finally block, with the correlation
# id from the request context ("unknown" when missing).
#
# PRODUCTION TIPS:
# - Use the JSON format with log aggregators
# - Point "gracefulhttp.access" at its own handler to split access logs
#   from application logs
# =============================================================================
