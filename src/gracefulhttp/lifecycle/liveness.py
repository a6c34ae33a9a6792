"""
=============================================================================
LIVENESS FLAG
=============================================================================

One tri-state value answering "should traffic be routed here?".

    ┌──────────┐  set_ready()  ┌─────────┐  set_draining()  ┌──────────┐
    │ STARTING │ ────────────► │  READY  │ ───────────────► │ DRAINING │
    └──────────┘               └─────────┘                  └──────────┘
          │                                                       ▲
          └───────────────────── set_draining() ──────────────────┘

Transitions only move right. Once DRAINING, set_ready() is a no-op for the
rest of the process lifetime, so a late "ready" can never put an instance
that is shutting down back into the load balancer.

=============================================================================
CONCURRENCY
=============================================================================

Readers (every health check, on any connection thread) do a single
attribute load: no lock, never blocks.

Writers go through a lock. There is only one writer in practice (the
orchestrator), but the check-then-set in set_ready() must not interleave
with set_draining() or the flag could move backwards.

=============================================================================
INTERVIEW QUESTIONS ABOUT LIVENESS
=============================================================================

Q: "Why not a module-level global?"
A: "A global couples every server in the process together. Tests that
   start two servers would see each other's state. Injecting the flag
   into both the health handler and the orchestrator keeps them
   independent and makes the dependency explicit."

Q: "Why fail health checks BEFORE closing the listener?"
A: "Load balancers poll. Flipping the flag first gives them the
   earliest possible signal; requests that still arrive are served
   until the listener closes."

=============================================================================
"""

import threading
from enum import Enum


class LivenessState(Enum):
    STARTING = "starting"
    READY = "ready"
    DRAINING = "draining"


class LivenessFlag:
    """
    Monotone STARTING → READY → DRAINING indicator.

        flag = LivenessFlag()
        flag.is_ready()     # False
        flag.set_ready()
        flag.is_ready()     # True
        flag.set_draining()
        flag.set_ready()    # ignored
        flag.is_ready()     # False, permanently
    """

    def __init__(self):
        self._state = LivenessState.STARTING
        self._write_lock = threading.Lock()

    @property
    def state(self) -> LivenessState:
        return self._state

    def is_ready(self) -> bool:
        return self._state is LivenessState.READY

    def set_ready(self) -> bool:
        """
        STARTING → READY.

        Returns:
            True if the state changed.
        """
        with self._write_lock:
            if self._state is not LivenessState.STARTING:
                return False
            self._state = LivenessState.READY
            return True

    def set_draining(self) -> bool:
        """
        Any state → DRAINING.

        Returns:
            True if the state changed.
        """
        with self._write_lock:
            if self._state is LivenessState.DRAINING:
                return False
            self._state = LivenessState.DRAINING
            return True

    def __repr__(self) -> str:
        return f"LivenessFlag({self._state.value})"
