"""
=============================================================================
CORRELATION MIDDLEWARE
=============================================================================

Gives every request an identifier and echoes it back in X-Request-Id.

    inbound X-Request-Id: "abc-123"     ──►  outbound X-Request-Id: "abc-123"
    inbound header missing or empty     ──►  outbound X-Request-Id: <new id>

The id is stored in the request's RequestContext, so every later stage
(the access log, the handler, the 500 error log) sees the same value.

=============================================================================
ID GENERATION
=============================================================================

The default id is the wall clock in nanoseconds, as a decimal string:

    1718016936123456789

Two threads can read the same nanosecond, and clocks can step backwards.
RequestIdGenerator therefore hands out values under a lock and bumps a
value that is not greater than the last one it issued:

    clock:   ...789   ...789   ...785 (clock stepped back)
    issued:  ...789   ...790   ...791

Ids from one generator are strictly increasing, so they never collide
within a process. Across processes they are only "very likely" unique;
inject your own id_factory (e.g. lambda: uuid.uuid4().hex) when that
matters.

=============================================================================
INTERVIEW QUESTIONS ABOUT REQUEST IDS
=============================================================================

Q: "Why trust a client-supplied request id?"
A: "It is not a security token, just a join key for logs. Keeping the
   upstream id verbatim is what lets one trace span the gateway, this
   service and whatever it calls."

Q: "Why must this middleware run OUTSIDE the access log?"
A: "The access log reads the id from the context. If it ran first it
   would only ever see 'unknown'."

=============================================================================
"""

import threading
import time
from typing import Callable, Optional

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


REQUEST_ID_HEADER = "X-Request-Id"


class RequestIdGenerator:
    """
    Strictly increasing nanosecond-timestamp ids. Safe to share between
    threads.

    Args:
        clock: Nanosecond clock, time.time_ns by default.
    """

    def __init__(self, clock: Callable[[], int] = time.time_ns):
        self._clock = clock
        self._last = 0
        self._lock = threading.Lock()

    def __call__(self) -> str:
        with self._lock:
            value = self._clock()
            if value <= self._last:
                value = self._last + 1
            self._last = value
        return str(value)


class CorrelationMiddleware(Middleware):
    """
    Establishes the correlation id of each request.

    Args:
        id_factory: Returns a new id when the request has none.
        header: Header read on the way in and set on the way out.

    Never rejects a request and never raises on its own.
    """

    def __init__(
        self,
        id_factory: Optional[Callable[[], str]] = None,
        header: str = REQUEST_ID_HEADER,
    ):
        self._id_factory = id_factory or RequestIdGenerator()
        self.header = header

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        correlation_id = request.get_header(self.header) or self._id_factory()

        # with_correlation_id keeps an id that is already set.
        context = request.context.with_correlation_id(correlation_id)
        request = request.with_context(context)

        response = next(request)
        response.headers[self.header] = context.correlation_id
        return response
