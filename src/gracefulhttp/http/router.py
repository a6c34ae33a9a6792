"""
=============================================================================
HANDLER REGISTRY
=============================================================================

Maps an exact request path to a handler, optionally per HTTP method. This
is the innermost layer of the request chain:

    CorrelationMiddleware → AccessLogMiddleware → Router.handle → handler

=============================================================================
WHAT THE ROUTER ANSWERS
=============================================================================

    ┌──────────────────────────────┬──────────────────────────────────────┐
    │ Situation                    │ Response                             │
    ├──────────────────────────────┼──────────────────────────────────────┤
    │ path + method registered     │ whatever the handler returns         │
    │ path registered, method not  │ 405 with Allow header                │
    │ path unknown                 │ 404                                  │
    │ handler raises               │ 500 (traceback logged)               │
    └──────────────────────────────┴──────────────────────────────────────┘

Handler errors are turned into a 500 HERE, inside the middleware chain, so
the correlation and access-log stages always see a response object and the
500 still carries the X-Request-Id header.

=============================================================================
"""

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional
import logging

from .request import HTTPRequest
from .response import HTTPResponse, internal_error, method_not_allowed, not_found


logger = logging.getLogger(__name__)


Handler = Callable[[HTTPRequest], HTTPResponse]

ANY_METHOD = "*"


@dataclass
class Route:
    """
    One registered route.

    ``method`` is None when the handler accepts every method.
    """

    path: str
    method: Optional[str]
    handler: Handler


class Router:
    """
    Exact-path handler registry.

        router = Router()
        router.add_route("/health", health.handle)

        @router.get("/hello")
        def hello(request):
            return ok("Hello, World!\\n")

    Paths are matched verbatim: "/hello" does not match "/hello/".
    """

    def __init__(self):
        # path → {method or ANY_METHOD: Route}
        self._table: Dict[str, Dict[str, Route]] = {}

    def add_route(
        self,
        path: str,
        handler: Handler,
        method: Optional[str] = None,
    ) -> Route:
        """
        Register ``handler`` for ``path``.

        Raises:
            ValueError: If the same path/method pair is already taken.
        """
        if not path.startswith("/"):
            raise ValueError(f"Route path must start with '/': {path!r}")

        key = method.upper() if method else ANY_METHOD
        by_method = self._table.setdefault(path, {})
        if key in by_method:
            raise ValueError(f"Route already registered: {key} {path}")

        route = Route(path=path, method=method.upper() if method else None, handler=handler)
        by_method[key] = route
        logger.debug(f"Registered route {key} {path}")
        return route

    def match(self, method: str, path: str) -> Optional[Route]:
        """Exact method first, then a catch-all registration."""
        by_method = self._table.get(path)
        if not by_method:
            return None
        return by_method.get(method.upper()) or by_method.get(ANY_METHOD)

    def get_allowed_methods(self, path: str) -> List[str]:
        """Methods registered for ``path``; used for the Allow header."""
        return sorted(m for m in self._table.get(path, {}) if m != ANY_METHOD)

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        """Dispatch ``request`` and never raise."""
        route = self.match(request.method, request.path)

        if route is None:
            allowed = self.get_allowed_methods(request.path)
            if allowed:
                return method_not_allowed(allowed)
            return not_found(f"No route matches {request.path}")

        try:
            return route.handler(request)
        except Exception:
            request_id = request.context.correlation_id or "unknown"
            logger.exception(
                f"Handler for {request.method} {request.path} failed (request {request_id})"
            )
            return internal_error()

    # =========================================================================
    # DECORATOR-STYLE REGISTRATION
    # =========================================================================

    def route(self, path: str, method: Optional[str] = None) -> Callable[[Handler], Handler]:
        def decorator(handler: Handler) -> Handler:
            self.add_route(path, handler, method=method)
            return handler
        return decorator

    def get(self, path: str) -> Callable[[Handler], Handler]:
        return self.route(path, "GET")

    def post(self, path: str) -> Callable[[Handler], Handler]:
        return self.route(path, "POST")

    @property
    def routes(self) -> List[Route]:
        return [route for by_method in self._table.values() for route in by_method.values()]

    def __len__(self) -> int:
        return len(self.routes)
