"""
Scan Request Model
==================

Schema for the parameters of a single scan.

Example:
    request = ScanRequest(start_mm=0.0, end_mm=10.0, speed_mm_s=1.0)
"""

from pydantic import BaseModel, Field


class ScanRequest(BaseModel):
    """
    Sweep bounds and speed for one scan.

    Attributes:
        start_mm: Position the axis homes to before sweeping
        end_mm: Position the sweep ends at
        speed_mm_s: Axis speed for all moves of the scan
    """

    start_mm: float = Field(
        ...,
        description="Sweep start position (mm)",
    )

    end_mm: float = Field(
        ...,
        description="Sweep end position (mm)",
    )

    speed_mm_s: float = Field(
        ...,
        gt=0.0,
        description="Axis speed (mm/s)",
    )

    @property
    def distance_mm(self) -> float:
        return abs(self.end_mm - self.start_mm)

    def clamped(self, min_position: float, max_position: float) -> "ScanRequest":
        """Return a copy with both bounds clamped to the axis limits."""
        return self.model_copy(update={
            "start_mm": min(max(self.start_mm, min_position), max_position),
            "end_mm": min(max(self.end_mm, min_position), max_position),
        })
