"""
=============================================================================
BASE MIDDLEWARE INTERFACE
=============================================================================

The middleware protocol and the pipeline that chains middleware around a
final handler (Chain of Responsibility).

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   Request ─────────────────────────────────────────────────►         │
    │                                                                      │
    │   ┌─────────────┐     ┌─────────────┐     ┌─────────────┐            │
    │   │ Correlation │────►│  AccessLog  │────►│   Router    │            │
    │   └──────┬──────┘     └──────┬──────┘     └──────┬──────┘            │
    │          │                   │                   │                   │
    │      [before]            [before]             [exec]                 │
    │      set id in           (nothing)            dispatch               │
    │      context                                                         │
    │                                                                      │
    │      [after]             [finally]                                   │
    │      X-Request-Id        one access                                  │
    │      on response         record                                      │
    │                                                                      │
    │   ◄───────────────────────────────────────────────── Response        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Each stage receives the next handler explicitly. Nothing is looked up
from globals or thread-locals: what a stage wants to pass inward goes
into the request's RequestContext.

=============================================================================
INTERVIEW INSIGHT: CHAIN OF RESPONSIBILITY
=============================================================================

Q: "What design pattern would you use for middleware?"
A: "Chain of Responsibility. Each middleware either handles the request
   or delegates to the next handler, and sees the response on the way
   back out. Adding, removing or reordering stages needs no change to
   the handlers."

Q: "Why does the order of correlation and access logging matter?"
A: "The access log reads the id from the context. If logging ran
   outside correlation it would only ever see 'unknown'. Outermost
   also means the id lands on every response, 404s and 500s included."

=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Callable, List, Optional
import logging

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


logger = logging.getLogger(__name__)


# The next middleware, or the final handler.
NextHandler = Callable[[HTTPRequest], HTTPResponse]


class Middleware(ABC):
    """
    Abstract base class for middleware.

        class Stamp(Middleware):
            def __call__(self, request, next):
                # before: inspect request, derive a new one via with_context()
                response = next(request)
                # after: adjust the response
                response.set_header("X-Stamp", "1")
                return response

    Not calling next() short-circuits the chain.
    """

    @abstractmethod
    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        """
        Process the request.

        Args:
            request: The incoming request.
            next: The rest of the chain.

        Returns:
            The response, from next() or produced here.
        """
        pass

    @property
    def name(self) -> str:
        return self.__class__.__name__


class MiddlewarePipeline:
    """
    Chains middleware around a final handler.

    First added = outermost:

        pipeline = MiddlewarePipeline()
        pipeline.add(CorrelationMiddleware())   # outermost
        pipeline.add(AccessLogMiddleware())     # inside correlation
        handler = pipeline.wrap(router.handle)

        handler(request)
            == correlation(request, lambda r: access_log(r, router.handle))
    """

    def __init__(self):
        self._middleware: List[Middleware] = []

    def add(self, middleware: Middleware) -> "MiddlewarePipeline":
        """Append ``middleware``; returns self for chaining."""
        self._middleware.append(middleware)
        logger.debug(f"Added middleware: {middleware.name}")
        return self

    def use(self, *middleware: Middleware) -> "MiddlewarePipeline":
        for mw in middleware:
            self.add(mw)
        return self

    def wrap(self, handler: NextHandler) -> NextHandler:
        """
        Build the chain around ``handler``.

        =====================================================================
        HOW WRAPPING WORKS
        =====================================================================

        Given [MW1, MW2] and handler:

            current = handler
            current = MW2 around current
            current = MW1 around current

            Final: MW1 → MW2 → handler

        Wrapping in reverse keeps the first-added middleware outermost.

        =====================================================================
        """
        current = handler
        for middleware in reversed(self._middleware):
            current = self._create_wrapped_handler(middleware, current)
        return current

    def _create_wrapped_handler(
        self,
        middleware: Middleware,
        next_handler: NextHandler
    ) -> NextHandler:
        # Closure over this middleware and the next link.
        def wrapped(request: HTTPRequest) -> HTTPResponse:
            return middleware(request, next_handler)

        return wrapped

    def __len__(self) -> int:
        return len(self._middleware)

    def __iter__(self):
        return iter(self._middleware)


# =============================================================================
# FUNCTION MIDDLEWARE
# =============================================================================

class FunctionMiddleware(Middleware):
    """
    Wraps a plain ``(request, next) -> response`` function as middleware.

        pipeline.add(FunctionMiddleware(my_func, name="my_func"))
    """

    def __init__(
        self,
        func: Callable[[HTTPRequest, NextHandler], HTTPResponse],
        name: Optional[str] = None
    ):
        self._func = func
        self._name = name or func.__name__

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        return self._func(request, next)

    @property
    def name(self) -> str:
        return self._name


def function_middleware(
    func: Callable[[HTTPRequest, NextHandler], HTTPResponse]
) -> FunctionMiddleware:
    """
    Decorator form of FunctionMiddleware.

        @function_middleware
        def stamp(request, next):
            response = next(request)
            response.set_header("X-Stamp", "1")
            return response

        pipeline.add(stamp)
    """
    return FunctionMiddleware(func)
