"""
Error Taxonomy
==============

Exceptions raised by the devices and the scan core.

Every error carries the FaultReason the orchestrator attaches when the
error terminates a scan. CorruptFrameError is the exception to that rule:
it is recovered locally (frame dropped) and never faults a scan.
"""

from focus_hunter.models.fault_codes import FaultReason


class FocusHunterError(Exception):
    """Base class for all focus_hunter errors."""

    reason: FaultReason = FaultReason.DEVICE_UNAVAILABLE


class DeviceUnavailableError(FocusHunterError):
    """Raised when a camera or axis cannot be opened."""

    reason = FaultReason.DEVICE_UNAVAILABLE


class SourceStartError(FocusHunterError):
    """Raised when a frame source refuses to start acquisition."""

    reason = FaultReason.SOURCE_START_FAILED


class CorruptFrameError(FocusHunterError):
    """Raised when a frame violates the pixel-count invariant or is blank."""
    pass


class MotionTimeoutError(FocusHunterError):
    """Raised when a waited move exceeds its time bound."""

    reason = FaultReason.MOTION_TIMEOUT


class NoUsableFramesError(FocusHunterError):
    """Raised when a sweep produced zero scored observations."""

    reason = FaultReason.NO_USABLE_FRAMES


class ConcurrentOperationError(FocusHunterError):
    """Raised when a move or scan is requested while one is active."""

    reason = FaultReason.CONCURRENT_OPERATION


class DeviceDisconnectedError(FocusHunterError):
    """Raised when a device loses its connection mid-operation."""

    reason = FaultReason.AXIS_DISCONNECTED

    def __init__(self, message: str, reason: FaultReason = FaultReason.AXIS_DISCONNECTED) -> None:
        super().__init__(message)
        self.reason = reason


class MoveFailedError(FocusHunterError):
    """Raised when the axis rejects a move command."""

    reason = FaultReason.MOVE_FAILED


class OperationCancelledError(FocusHunterError):
    """Raised when a blocking operation is interrupted by cancellation."""

    reason = FaultReason.CANCELLED
