"""
=============================================================================
SHUTDOWN ORCHESTRATOR
=============================================================================

Drives one server session from bind to full stop and turns SIGINT/SIGTERM
into a bounded, ordered drain.

=============================================================================
STATE MACHINE
=============================================================================

    ┌──────────┐   bound + listening    ┌─────────┐
    │ STARTING │ ─────────────────────► │ SERVING │
    └──────────┘   set_ready()          └────┬────┘
         │                                   │ SIGINT / SIGTERM
         │ bind or signal                    │ request_shutdown()
         │ registration fails                ▼
         ▼                              ┌──────────┐
    StartupError                        │ DRAINING │
                                        └────┬─────┘
                                             │ all connections closed
                                             │ or shutdown_timeout elapsed
                                             ▼
                                        ┌─────────┐
                                        │ STOPPED │ ──► run() returns
                                        └─────────┘

=============================================================================
THREADS
=============================================================================

    main thread                          watcher thread
    ───────────                          ──────────────
    install signal handlers
    server.bind()
    start watcher ────────────────────►  wait for shutdown request
    set_ready()                                │
    server.serve_forever()  (blocks)           │
          │                                    │
          │ ◄── SIGTERM: handler sets event ──►│
          │                                    ▼
          │                              set_draining()          (1)
          │     accept loop exits ◄───── server.shutdown():
          │                                keep-alive off,
          │                                stop accepting        (2)
          │                                drain(timeout)        (3)
          ▼                                    │
    wait for STOPPED ◄──────────────────── STOPPED, event set
    restore signal handlers
    return DrainResult

(1) happens-before (2) happens-before (3): health checks fail before the
listener closes, and the listener is closed before the drain wait starts.

If the accept loop ends on its own (a fatal accept error), run() requests
the shutdown itself, so the process drains and stops instead of reporting
ready with nothing listening.

=============================================================================
SIGNALS
=============================================================================

    first SIGINT/SIGTERM    graceful drain as above
    second one, any kind    immediate hard exit, status 128 + signum

The second-signal rule gives operators a way out of a drain stuck on a
hung request without reaching for SIGKILL. The exit action is injectable
(on_repeat_signal) so tests can observe it without dying.

=============================================================================
INTERVIEW QUESTIONS ABOUT GRACEFUL SHUTDOWN
=============================================================================

Q: "Walk me through a graceful shutdown."
A: "1. Catch SIGTERM.
    2. Mark not-ready so health checks fail and the LB stops routing.
    3. Close the listener: no new connections.
    4. Let in-flight requests finish, close idle keep-alives.
    5. At the deadline, force-close whatever is left, log it.
    6. Exit."

Q: "Why a deadline at all?"
A: "Platforms send SIGKILL after their own grace period (Kubernetes:
   30s by default). Finishing on our own terms, with a log line saying
   what was cut off, beats being killed mid-write with no trace."

Q: "Why is a missed deadline a warning and not an error?"
A: "It is a policy outcome, not a malfunction. The process still
   stopped in bounded time, which is the actual requirement."

=============================================================================
"""

import logging
import os
import signal
import threading
from enum import Enum
from typing import TYPE_CHECKING, Callable, Dict, Iterable, Optional

from ..core.tracker import DrainResult
from ..errors import ShutdownError, StartupError
from .liveness import LivenessFlag

if TYPE_CHECKING:
    from ..server import HTTPServer


logger = logging.getLogger(__name__)


DEFAULT_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ServerState(Enum):
    STARTING = "starting"
    SERVING = "serving"
    DRAINING = "draining"
    STOPPED = "stopped"


def hard_exit(signum: int) -> None:
    """Leave the process immediately, skipping cleanup."""
    os._exit(128 + signum)


class ShutdownOrchestrator:
    """
    Runs a server session and shuts it down on a termination signal.

    Args:
        server: The session to drive (bind, serve_forever, shutdown,
                force_close, address).
        liveness: Flag shared with the health handler.
        shutdown_timeout: Drain deadline in seconds.
        signals: Signals that start the drain. Pass () to install none,
                 e.g. when running off the main thread.
        on_repeat_signal: Called with the signal number when a signal
                          arrives while already draining.

    Usage:
        orchestrator = ShutdownOrchestrator(server, liveness)
        result = orchestrator.run()      # blocks until STOPPED
    """

    def __init__(
        self,
        server: "HTTPServer",
        liveness: LivenessFlag,
        shutdown_timeout: float = 30.0,
        signals: Iterable[int] = DEFAULT_SIGNALS,
        on_repeat_signal: Callable[[int], None] = hard_exit,
    ):
        self._server = server
        self._liveness = liveness
        self.shutdown_timeout = shutdown_timeout
        self._signals = tuple(signals)
        self._on_repeat_signal = on_repeat_signal

        self._state = ServerState.STARTING
        self._shutdown_requested = threading.Event()
        self._stopped = threading.Event()
        self._watcher: Optional[threading.Thread] = None
        self._original_handlers: Dict[int, object] = {}

        self._reason: Optional[str] = None
        self._result: Optional[DrainResult] = None
        self._error: Optional[BaseException] = None

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def state(self) -> ServerState:
        return self._state

    @property
    def shutdown_requested(self) -> bool:
        return self._shutdown_requested.is_set()

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    @property
    def result(self) -> Optional[DrainResult]:
        return self._result

    def _set_state(self, state: ServerState) -> None:
        logger.debug(f"Server state {self._state.value} -> {state.value}")
        self._state = state

    # =========================================================================
    # MAIN FLOW
    # =========================================================================

    def run(self) -> DrainResult:
        """
        Bind, serve, and block until the drain has finished.

        Returns:
            The DrainResult of the shutdown.

        Raises:
            StartupError: Signal registration or bind failed.
            ShutdownError: The drain itself failed. Connections have been
                           force-closed before this is raised.
        """
        self._install_signal_handlers()
        try:
            self._server.bind()

            self._watcher = threading.Thread(
                target=self._watch,
                name="shutdown-orchestrator",
                daemon=True,
            )
            self._watcher.start()

            self._set_state(ServerState.SERVING)
            self._liveness.set_ready()
            host, port = self._server.address
            logger.info(f"Server is ready to handle requests at {host}:{port}")

            try:
                self._server.serve_forever()
            except BaseException:
                self.request_shutdown("serve loop failed")
                self._stopped.wait()
                raise

            # Nothing is listening any more; drain rather than report READY forever.
            if self.request_shutdown("serve loop exited"):
                logger.error("Accept loop exited without a shutdown request")

            self._stopped.wait()
        finally:
            self._restore_signal_handlers()

        if self._error is not None:
            raise ShutdownError(f"Could not gracefully shutdown the server: {self._error}") from self._error

        logger.info("Server stopped")
        return self._result

    def request_shutdown(self, reason: str = "requested") -> bool:
        """
        Start the drain. Safe from any thread and from signal handlers.

        Returns:
            False if a shutdown was already requested.
        """
        if self._shutdown_requested.is_set():
            return False
        self._reason = reason
        self._shutdown_requested.set()
        return True

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until STOPPED; True unless the timeout expired."""
        return self._stopped.wait(timeout)

    # =========================================================================
    # DRAIN (watcher thread)
    # =========================================================================

    def _watch(self) -> None:
        self._shutdown_requested.wait()
        logger.info(f"Server is shutting down... ({self._reason})")

        self._set_state(ServerState.DRAINING)
        self._liveness.set_draining()

        try:
            result = self._server.shutdown(self.shutdown_timeout)
            if result.clean:
                logger.info(f"All connections drained in {result.duration:.2f}s")
            else:
                logger.warning(
                    f"Drain deadline of {self.shutdown_timeout:g}s exceeded, "
                    f"forcibly closed {result.forced} connection(s)"
                )
            self._result = result
        except Exception as e:
            logger.critical(f"Could not gracefully shutdown the server: {e}", exc_info=True)
            self._error = e
            self._result = DrainResult(clean=False, forced=self._force_close())
        finally:
            self._set_state(ServerState.STOPPED)
            self._stopped.set()

    def _force_close(self) -> int:
        try:
            return self._server.force_close()
        except Exception:
            logger.exception("Forced close of remaining connections failed")
            return 0

    # =========================================================================
    # SIGNALS
    # =========================================================================

    def _handle_signal(self, signum, frame) -> None:
        name = signal.Signals(signum).name
        if self._shutdown_requested.is_set():
            logger.critical(f"Received {name} while draining, exiting immediately")
            self._on_repeat_signal(signum)
            return
        logger.info(f"Received {name}, initiating shutdown...")
        self.request_shutdown(name)

    def _install_signal_handlers(self) -> None:
        """
        Raises:
            StartupError: If any handler cannot be installed (for example
                          when called off the main thread).
        """
        try:
            for sig in self._signals:
                self._original_handlers[sig] = signal.signal(sig, self._handle_signal)
        except (ValueError, OSError) as e:
            self._restore_signal_handlers()
            logger.error(f"Failed to register signal handlers: {e}")
            raise StartupError(f"Could not register signal handlers: {e}") from e

    def _restore_signal_handlers(self) -> None:
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler if handler is not None else signal.SIG_DFL)
        self._original_handlers.clear()
