"""
Position Sample
===============

Timestamped axis position read back from a MotionAxis.

A sample with timestamp -1 is the "no valid sample" sentinel. It is
returned when the axis is disconnected or a read fails, and must never
be treated as a real position.
"""

from dataclasses import dataclass


INVALID_TIMESTAMP = -1.0


@dataclass(frozen=True, slots=True)
class PositionSample:
    """
    Axis position at a point in time.

    Attributes:
        timestamp: Monotonic seconds when the position was read
        position: Axis coordinate in millimeters
    """

    timestamp: float
    position: float

    @classmethod
    def invalid(cls) -> "PositionSample":
        """Return the sentinel sample."""
        return cls(timestamp=INVALID_TIMESTAMP, position=-1.0)

    @property
    def is_valid(self) -> bool:
        return self.timestamp >= 0.0

    def __repr__(self) -> str:
        if not self.is_valid:
            return "PositionSample(INVALID)"
        return f"PositionSample(t={self.timestamp:.4f}, pos={self.position:.4f}mm)"
