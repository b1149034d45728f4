"""
Scan Output Models
==================

This module defines the output contract of a scan.

Output Contract:
    {
        "state": "DONE",
        "result": {
            "winning_position": 4.21,
            "winning_score": 812.4,
            "observation_count": 137,
            "winning_frame_id": 88,
            "winning_frame_timestamp": 5012.337,
            "rejected_frames": 2
        },
        "fault": null,
        "elapsed_s": 11.2
    }

    or, for a faulted scan:

    {
        "state": "FAULTED",
        "result": null,
        "fault": {
            "reason": "NO_USABLE_FRAMES",
            "message": "Sweep produced no scored frames",
            "state": "EVALUATED"
        },
        "elapsed_s": 10.4
    }

Design Rules:
    - Exactly one of `result` / `fault` is set
    - No automatic retries; a caller re-invokes the scan
"""

from typing import Optional

from pydantic import BaseModel, Field

from focus_hunter.models.fault_codes import FaultReason
from focus_hunter.models.state import ScanState


class ScanResult(BaseModel):
    """
    Winning position of a completed scan.

    Attributes:
        winning_position: Axis position of the sharpest frame (mm)
        winning_score: Sharpness score of that frame
        observation_count: Number of scored frames in the sweep
        winning_frame_id: Id of the sharpest frame
        winning_frame_timestamp: Capture timestamp of the sharpest frame
        rejected_frames: Corrupt frames dropped during the sweep
    """

    winning_position: float = Field(..., description="Winning position (mm)")
    winning_score: float = Field(..., description="Winning sharpness score")
    observation_count: int = Field(..., ge=1, description="Scored frames in sweep")
    winning_frame_id: int = Field(..., description="Id of the winning frame")
    winning_frame_timestamp: float = Field(..., description="Capture time of winner")
    rejected_frames: int = Field(default=0, ge=0, description="Corrupt frames dropped")


class ScanFault(BaseModel):
    """
    Cause of a faulted scan.

    Attributes:
        reason: Machine-readable fault code
        message: Human-readable detail
        state: State the scan was in when the fault occurred
    """

    reason: FaultReason = Field(..., description="Machine-readable fault code")
    message: str = Field(default="", description="Human-readable detail")
    state: ScanState = Field(..., description="State at the time of the fault")


class ScanOutcome(BaseModel):
    """
    Terminal outcome of run_scan.

    Attributes:
        state: DONE or FAULTED
        result: Winner, when DONE
        fault: Cause, when FAULTED
        elapsed_s: Wall time of the scan
    """

    state: ScanState = Field(..., description="Terminal scan state")
    result: Optional[ScanResult] = Field(default=None)
    fault: Optional[ScanFault] = Field(default=None)
    elapsed_s: float = Field(default=0.0, ge=0.0)

    @property
    def succeeded(self) -> bool:
        return self.state == ScanState.DONE and self.result is not None
