"""
=============================================================================
APPLICATION FACTORY
=============================================================================

Assembles a ready-to-run server:

    create_app(config)
        │
        ├── HTTPServer(config, liveness)
        ├── middleware: CorrelationMiddleware ─► AccessLogMiddleware
        └── routes:     /  /hello  /json-as-text  /health

    app = create_app(ServerConfig.from_env())
    app.run()

=============================================================================
"""

import logging
from typing import Callable, Optional

from .config import ServerConfig
from .handlers import HealthHandler, index, hello, json_as_text
from .lifecycle import LivenessFlag
from .middleware import AccessLogMiddleware, CorrelationMiddleware, MiddlewarePipeline
from .server import HTTPServer


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(config: ServerConfig) -> None:
    """Configure the root logger from ``config.log_level``."""
    level = getattr(logging, config.log_level.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
    )
    logging.getLogger("gracefulhttp").setLevel(level)


def build_pipeline(
    log_format: str = "text",
    id_factory: Optional[Callable[[], str]] = None,
    access_logger: Optional[logging.Logger] = None,
) -> MiddlewarePipeline:
    """
    The standard chain: correlation outermost, access log inside it.

        Correlation(AccessLog(handler))
    """
    pipeline = MiddlewarePipeline()
    pipeline.add(CorrelationMiddleware(id_factory=id_factory))
    pipeline.add(AccessLogMiddleware(log_format=log_format, logger=access_logger))
    return pipeline


def create_app(
    config: Optional[ServerConfig] = None,
    liveness: Optional[LivenessFlag] = None,
) -> HTTPServer:
    """
    Build an HTTPServer with the standard middleware and default routes.

    Args:
        config: Server configuration, defaults if omitted.
        liveness: Flag shared by /health and the shutdown orchestrator.
    """
    config = config or ServerConfig()
    server = HTTPServer(config, liveness=liveness)

    server.middleware.use(*build_pipeline(log_format=config.log_format))

    server.route("/")(index)
    server.route("/hello")(hello)
    server.route("/json-as-text")(json_as_text)
    server.route("/health")(HealthHandler(server.liveness).handle)

    return server
