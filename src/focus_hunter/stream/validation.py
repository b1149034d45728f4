"""
Frame Validation
================

Integrity checks applied to every frame before it is scored.

A frame is corrupt when:
    - its pixel data length does not match width * height
    - it is smaller than 3x3 (no interior pixels to score)
    - every pixel is zero (dropped transfer)

Corrupt frames are not a fault: the caller counts and drops them.
"""

import numpy as np

from focus_hunter.errors import CorruptFrameError
from focus_hunter.models.frame import Frame


MIN_DIMENSION = 3


def validate_frame(frame: Frame) -> np.ndarray:
    """
    Validate a frame and return its pixels as a (height, width) image.

    Args:
        frame: Frame delivered by the dispatcher

    Returns:
        2-D view of the pixel data

    Raises:
        CorruptFrameError: If the frame fails any integrity check
    """
    if frame.pixels is None or not frame.has_expected_size:
        size = 0 if frame.pixels is None else frame.pixel_count
        raise CorruptFrameError(
            f"Frame {frame.frame_id}: {size} pixels for "
            f"{frame.width}x{frame.height}"
        )

    if frame.width < MIN_DIMENSION or frame.height < MIN_DIMENSION:
        raise CorruptFrameError(
            f"Frame {frame.frame_id}: {frame.width}x{frame.height} "
            f"is below {MIN_DIMENSION}x{MIN_DIMENSION}"
        )

    image = frame.as_image()
    if not np.any(image):
        raise CorruptFrameError(f"Frame {frame.frame_id}: all pixels are zero")

    return image


def is_frame_valid(frame: Frame) -> bool:
    """Return True if validate_frame would accept the frame."""
    try:
        validate_frame(frame)
    except CorruptFrameError:
        return False
    return True
