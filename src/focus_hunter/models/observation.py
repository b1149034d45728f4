"""
Scored Observation
==================

Result of correlating one Frame with one PositionSample and scoring it.

Exactly one ScoredObservation exists per successfully scored frame.
Corrupt, rejected or uncorrelated frames produce none.
"""

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class ScoredObservation:
    """
    A (position, score) pair recorded during a sweep.

    Attributes:
        frame_id: Id of the scored frame
        frame_timestamp: Capture timestamp of the frame
        position: Correlated axis position (mm)
        position_timestamp: Timestamp of the chosen position sample
        score: Sharpness score (higher = sharper)
        arrival_index: Order in which the observation was recorded
        correlation_skew_s: |position_timestamp - frame_timestamp|
    """

    frame_id: int
    frame_timestamp: float
    position: float
    position_timestamp: float
    score: float
    arrival_index: int = 0
    correlation_skew_s: float = 0.0

    def __repr__(self) -> str:
        return (
            f"ScoredObservation(frame={self.frame_id}, "
            f"pos={self.position:.4f}mm, score={self.score:.3f})"
        )

    def to_dict(self) -> dict:
        """Export as dictionary for logging."""
        return {
            "frame_id": self.frame_id,
            "position": round(self.position, 4),
            "score": round(self.score, 4),
            "arrival_index": self.arrival_index,
            "correlation_skew_s": round(self.correlation_skew_s, 6),
        }
