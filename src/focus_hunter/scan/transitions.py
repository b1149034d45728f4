"""
State Transition Table
======================

Explicit table of allowed scan state transitions.

Transition Rules:
    IDLE      → HOMING
    HOMING    → SWEEPING
    SWEEPING  → EVALUATED
    EVALUATED → RETURNING
    RETURNING → DONE
    any non-terminal state → FAULTED

DONE and FAULTED have no outgoing transitions.
"""

from typing import Dict, FrozenSet

from focus_hunter.models.state import ScanState


ALLOWED_TRANSITIONS: Dict[ScanState, FrozenSet[ScanState]] = {
    ScanState.IDLE: frozenset({ScanState.HOMING, ScanState.FAULTED}),
    ScanState.HOMING: frozenset({ScanState.SWEEPING, ScanState.FAULTED}),
    ScanState.SWEEPING: frozenset({ScanState.EVALUATED, ScanState.FAULTED}),
    ScanState.EVALUATED: frozenset({ScanState.RETURNING, ScanState.FAULTED}),
    ScanState.RETURNING: frozenset({ScanState.DONE, ScanState.FAULTED}),
    ScanState.DONE: frozenset(),
    ScanState.FAULTED: frozenset(),
}


def can_transition(current: ScanState, target: ScanState) -> bool:
    """Whether `current → target` is an allowed transition."""
    return target in ALLOWED_TRANSITIONS[current]
