"""
Scan State Models
=================

Discrete states of the scan state machine.

Transitions:
    IDLE → HOMING → SWEEPING → EVALUATED → RETURNING → DONE
    any non-terminal state → FAULTED

DONE and FAULTED are terminal. A new scan starts from a fresh session.
"""

from enum import Enum


class ScanState(str, Enum):
    """
    Discrete states for the scan orchestrator.

    Attributes:
        IDLE: Session created, nothing commanded yet
        HOMING: Axis moving to the sweep start, waiting for completion
        SWEEPING: Axis moving to the sweep end, frames are being scored
        EVALUATED: Sweep finished, best observation selected
        RETURNING: Axis moving back to the winning position
        DONE: Terminal, winner available
        FAULTED: Terminal, fault cause available
    """

    IDLE = "IDLE"
    HOMING = "HOMING"
    SWEEPING = "SWEEPING"
    EVALUATED = "EVALUATED"
    RETURNING = "RETURNING"
    DONE = "DONE"
    FAULTED = "FAULTED"

    @property
    def is_terminal(self) -> bool:
        return self in (ScanState.DONE, ScanState.FAULTED)
