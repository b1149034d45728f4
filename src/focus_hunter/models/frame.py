"""
Frame Data Model
================

Internal frame representation passed from a FrameSource to the scan core.

Design Rules:
    - This is the ONLY frame format passed to downstream stages
    - Pixel data is single-channel, row-major (flat or already 2-D)
    - Frames are NOT validated on construction: a corrupt frame must reach
      the validation step so it can be counted and dropped there
    - A driver may reuse its buffers, so consumers copy what they retain
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np

from focus_hunter.models.position import PositionSample


@dataclass(frozen=True, slots=True, eq=False)
class Frame:
    """
    Single acquired camera frame.

    Immutable (frozen) to prevent accidental modification of metadata.

    Attributes:
        frame_id: Monotonically increasing counter from the source
        timestamp: Monotonic seconds at capture (unit-consistent within a run)
        width: Frame width in pixels
        height: Frame height in pixels
        pixels: Single-channel samples, row-major
        position_hint: Axis position stamped by the source at capture time,
            if the source can provide one
    """

    frame_id: int
    timestamp: float
    width: int
    height: int
    pixels: np.ndarray
    position_hint: Optional[PositionSample] = None

    @property
    def pixel_count(self) -> int:
        return int(self.pixels.size)

    @property
    def has_expected_size(self) -> bool:
        """Whether pixel data length matches width * height."""
        return self.pixel_count == self.width * self.height

    def as_image(self) -> np.ndarray:
        """
        Return the pixel data as a (height, width) array.

        Raises:
            ValueError: If pixel data length does not match the dimensions
        """
        if not self.has_expected_size:
            raise ValueError(
                f"Frame {self.frame_id} has {self.pixel_count} pixels, "
                f"expected {self.width}x{self.height}"
            )
        return self.pixels.reshape(self.height, self.width)

    def copy(self) -> "Frame":
        """Return a frame that owns a private copy of the pixel buffer."""
        return Frame(
            frame_id=self.frame_id,
            timestamp=self.timestamp,
            width=self.width,
            height=self.height,
            pixels=np.array(self.pixels, copy=True),
            position_hint=self.position_hint,
        )

    def __repr__(self) -> str:
        """Compact repr that doesn't dump the pixel data."""
        return (
            f"Frame(frame_id={self.frame_id}, "
            f"timestamp={self.timestamp:.4f}, "
            f"size={self.width}x{self.height})"
        )
