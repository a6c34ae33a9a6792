"""
=============================================================================
ENTRY POINT
=============================================================================

    python -m gracefulhttp

All configuration comes from the environment:

    HTTP_LISTEN_ADDR        ":9000"
    HTTP_READ_TIMEOUT       5
    HTTP_WRITE_TIMEOUT      10
    HTTP_IDLE_TIMEOUT       15
    HTTP_SHUTDOWN_TIMEOUT   30
    HTTP_LOG_LEVEL          INFO
    HTTP_LOG_FORMAT         text | json

=============================================================================
EXIT STATUS
=============================================================================

    0           stopped after SIGINT/SIGTERM (drained or forcibly closed)
    1           StartupError (bind, signals) or ShutdownError
    128+signum  second signal while draining

=============================================================================
"""

import logging
import sys

from .app import configure_logging, create_app
from .config import ServerConfig
from .errors import ServerError


logger = logging.getLogger("gracefulhttp")


def main() -> int:
    try:
        config = ServerConfig.from_env()
        config.validate()
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 1

    configure_logging(config)

    try:
        create_app(config).run()
    except ServerError as e:
        logger.error(str(e))
        return e.exit_code
    return 0


if __name__ == "__main__":
    sys.exit(main())
