"""
Phase lifecycle states and the edges allowed between them.

    not_started -> resumed_done                         (success, no mutation)
    not_started -> gate_failed                          (failure)
    not_started -> installing -> install_failed         (failure)
    installing  -> waiting -> converged                 (success)
    waiting -> timed_out -> diagnosed -> self_healed -> waiting   (once)
    waiting -> timed_out -> diagnosed -> reported       (failure)

self_healed -> waiting is the only re-entrant edge.
"""

from enum import Enum


class PhaseState(str, Enum):
    """State of one phase run."""
    NOT_STARTED = "not_started"
    RESUMED_DONE = "resumed_done"
    GATE_FAILED = "gate_failed"
    INSTALLING = "installing"
    INSTALL_FAILED = "install_failed"
    WAITING = "waiting"
    TIMED_OUT = "timed_out"
    DIAGNOSED = "diagnosed"
    SELF_HEALED = "self_healed"
    CONVERGED = "converged"
    REPORTED = "reported"

    @property
    def terminal(self) -> bool:
        return self in TERMINAL_STATES

    @property
    def successful(self) -> bool:
        return self in (PhaseState.RESUMED_DONE, PhaseState.CONVERGED)


TERMINAL_STATES = frozenset({
    PhaseState.RESUMED_DONE,
    PhaseState.GATE_FAILED,
    PhaseState.INSTALL_FAILED,
    PhaseState.CONVERGED,
    PhaseState.REPORTED,
})

TRANSITIONS: dict[PhaseState, frozenset[PhaseState]] = {
    PhaseState.NOT_STARTED: frozenset({
        PhaseState.RESUMED_DONE,
        PhaseState.GATE_FAILED,
        PhaseState.INSTALLING,
    }),
    PhaseState.INSTALLING: frozenset({
        PhaseState.INSTALL_FAILED,
        PhaseState.WAITING,
    }),
    PhaseState.WAITING: frozenset({
        PhaseState.CONVERGED,
        PhaseState.TIMED_OUT,
    }),
    PhaseState.TIMED_OUT: frozenset({PhaseState.DIAGNOSED}),
    PhaseState.DIAGNOSED: frozenset({
        PhaseState.SELF_HEALED,
        PhaseState.REPORTED,
    }),
    PhaseState.SELF_HEALED: frozenset({PhaseState.WAITING}),
}
