"""
Data Models
===========

Data models for the focus hunter.

This module re-exports all data models for convenient access.

Models:
    Acquisition:
        - Frame: Single camera frame with optional capture-time position
        - PositionSample: Timestamped axis position (with invalid sentinel)

    Scan:
        - ScanState: Enum of scan states (IDLE ... DONE, FAULTED)
        - ScanRequest: Sweep bounds and speed
        - ScoredObservation: Correlated (position, score) pair

    Output:
        - ScanResult: Winner of a completed scan
        - ScanFault: Cause of a faulted scan
        - ScanOutcome: Terminal outcome returned by run_scan

    Faults:
        - FaultReason: Machine-readable fault codes
        - DeviceFault: Event on a device error channel
"""

from focus_hunter.models.fault_codes import DeviceFault, FaultReason
from focus_hunter.models.frame import Frame
from focus_hunter.models.input import ScanRequest
from focus_hunter.models.observation import ScoredObservation
from focus_hunter.models.output import ScanFault, ScanOutcome, ScanResult
from focus_hunter.models.position import PositionSample
from focus_hunter.models.state import ScanState

__all__ = [
    # Acquisition
    "Frame",
    "PositionSample",
    # Scan
    "ScanState",
    "ScanRequest",
    "ScoredObservation",
    # Output
    "ScanResult",
    "ScanFault",
    "ScanOutcome",
    # Faults
    "FaultReason",
    "DeviceFault",
]
