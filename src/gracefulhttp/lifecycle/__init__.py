"""
Process lifecycle: readiness reporting and signal-driven graceful shutdown.

    LivenessFlag            STARTING → READY → DRAINING, read by /health
    ShutdownOrchestrator    bind, serve, SIGINT/SIGTERM → bounded drain
"""

from .liveness import LivenessFlag, LivenessState
from .orchestrator import ServerState, ShutdownOrchestrator, hard_exit

__all__ = [
    "LivenessFlag",
    "LivenessState",
    "ServerState",
    "ShutdownOrchestrator",
    "hard_exit",
]
