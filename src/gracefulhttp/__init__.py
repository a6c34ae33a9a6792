"""
=============================================================================
GRACEFULHTTP
=============================================================================

An HTTP/1.1 server built on raw sockets whose focus is the request
lifecycle around the handlers:

    - every request gets a correlation id (X-Request-Id, in and out)
    - every request produces exactly one access log record
    - /health reports readiness: 204 when serving, 503 otherwise
    - SIGINT/SIGTERM trigger a bounded, ordered drain

=============================================================================
QUICK START
=============================================================================

    from gracefulhttp import create_app, ServerConfig
    from gracefulhttp.http import ok

    app = create_app(ServerConfig(listen_addr="127.0.0.1:8080"))

    @app.route("/ping")
    def ping(request):
        return ok("pong\\n")

    app.run()       # blocks until SIGINT/SIGTERM, then drains

Or from the shell:

    HTTP_LISTEN_ADDR=:8080 python -m gracefulhttp

=============================================================================
LIFECYCLE
=============================================================================

    STARTING ──► SERVING ──► DRAINING ──► STOPPED
       │            │            │            │
       │            │            │            └── "Server stopped"
       │            │            └── /health 503, listener closed,
       │            │                in-flight requests finish
       │            └── /health 204
       └── /health 503

=============================================================================
"""

__version__ = "1.0.0"

from .app import build_pipeline, configure_logging, create_app
from .config import ServerConfig
from .errors import ServerError, ShutdownError, StartupError
from .lifecycle import LivenessFlag, ServerState, ShutdownOrchestrator
from .server import HTTPServer

__all__ = [
    "HTTPServer",
    "ServerConfig",
    "LivenessFlag",
    "ServerState",
    "ShutdownOrchestrator",
    "ServerError",
    "StartupError",
    "ShutdownError",
    "build_pipeline",
    "configure_logging",
    "create_app",
    "__version__",
]
