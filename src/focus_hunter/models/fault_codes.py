"""
Fault Codes
===========

Fixed set of machine-readable causes for a faulted scan.

Each faulted scan carries exactly ONE fault reason that explains why
the scan terminated without a winner.

Rules:
    - No free-text classification, the message is supplementary
    - One clear cause per code
    - Corrupt frames are NOT a fault (they are dropped silently)
"""

import time
from dataclasses import dataclass, field
from enum import Enum


class FaultReason(str, Enum):
    """
    Machine-readable scan fault codes.

    Attributes:
        DEVICE_UNAVAILABLE: Camera or axis failed to open / connect
        SOURCE_START_FAILED: Camera refused to start acquisition
        SOURCE_DISCONNECTED: Camera reported connection loss mid-scan
        AXIS_DISCONNECTED: Axis reported connection loss mid-scan
        NO_USABLE_FRAMES: Sweep finished with zero valid observations
        MOTION_TIMEOUT: Axis did not reach its target in time
        MOVE_FAILED: Axis rejected a move command
        CONCURRENT_OPERATION: A move or scan was already active
        CANCELLED: Scan aborted by the caller
    """

    # Device availability
    DEVICE_UNAVAILABLE = "DEVICE_UNAVAILABLE"
    SOURCE_START_FAILED = "SOURCE_START_FAILED"

    # Asynchronous device faults
    SOURCE_DISCONNECTED = "SOURCE_DISCONNECTED"
    AXIS_DISCONNECTED = "AXIS_DISCONNECTED"

    # Sweep outcome
    NO_USABLE_FRAMES = "NO_USABLE_FRAMES"

    # Motion
    MOTION_TIMEOUT = "MOTION_TIMEOUT"
    MOVE_FAILED = "MOVE_FAILED"
    CONCURRENT_OPERATION = "CONCURRENT_OPERATION"

    # Caller
    CANCELLED = "CANCELLED"


@dataclass(frozen=True, slots=True)
class DeviceFault:
    """
    Event delivered on a device's error channel.

    Attributes:
        device: Which device raised it ("camera" or "axis")
        kind: Fault reason the orchestrator should attach
        message: Human-readable detail from the driver
        timestamp: Monotonic time the fault was raised
    """

    device: str
    kind: FaultReason
    message: str = ""
    timestamp: float = field(default_factory=time.monotonic)
