"""
Stream Module
=============

Frame delivery between acquisition and consumers.

Components:
    - FrameDispatcher: Ordered queue with a single dispatch thread
    - validate_frame: Integrity checks run before scoring
"""

from focus_hunter.stream.dispatcher import FrameDispatcher, FrameListener
from focus_hunter.stream.validation import is_frame_valid, validate_frame

__all__ = [
    "FrameDispatcher",
    "FrameListener",
    "validate_frame",
    "is_frame_valid",
]
