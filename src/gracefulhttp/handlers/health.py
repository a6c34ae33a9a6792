"""
=============================================================================
HEALTH CHECK HANDLER
=============================================================================

Answers load balancer and orchestrator probes from the LivenessFlag.

    ┌──────────────────┬────────────────────────────────────────────────┐
    │ Liveness state   │ GET /health                                    │
    ├──────────────────┼────────────────────────────────────────────────┤
    │ STARTING         │ 503 Service Unavailable, empty body            │
    │ READY            │ 204 No Content                                 │
    │ DRAINING         │ 503 Service Unavailable, empty body            │
    └──────────────────┴────────────────────────────────────────────────┘

Both carry Cache-Control: no-store. Nothing else is checked: the probe
says whether this instance should receive traffic, not whether its
dependencies are up.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   SIGTERM ──► set_draining() ──► /health = 503                       │
    │                                      │                               │
    │                                      ▼                               │
    │                            LB marks instance down                    │
    │                            (new traffic goes elsewhere)              │
    │                                      │                               │
    │                                      ▼                               │
    │                            listener closes, drain                    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
INTERVIEW QUESTIONS ABOUT HEALTH CHECKS
=============================================================================

Q: "Why use Cache-Control: no-store on health endpoints?"
A: "A cached 'healthy' answer from an instance that is shutting down
   keeps traffic flowing to it. Probes must always hit the process."

Q: "Why 204 rather than 200 with a JSON body?"
A: "The status code is the whole answer. An empty body is the cheapest
   thing to produce and to check."

=============================================================================
"""

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, ResponseBuilder
from ..http.status_codes import HTTPStatus
from ..lifecycle.liveness import LivenessFlag


class HealthHandler:
    """
    Health endpoint bound to one LivenessFlag.

        health = HealthHandler(liveness)
        server.route("/health")(health.handle)
    """

    def __init__(self, liveness: LivenessFlag):
        self.liveness = liveness

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        status = HTTPStatus.NO_CONTENT if self.liveness.is_ready() else HTTPStatus.SERVICE_UNAVAILABLE
        return (ResponseBuilder()
            .status(status)
            .no_cache()
            .build())

    __call__ = handle
