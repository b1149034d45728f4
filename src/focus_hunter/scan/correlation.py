"""
Position Correlation
====================

Matches a frame to the axis position it was captured at.

Candidates:
    1. The frame's position_hint, stamped by the source at capture time
    2. The sample polled from the axis when the frame is processed

The valid candidate whose timestamp is closest to the frame timestamp
wins; the capture-time hint wins ties. A frame with no valid candidate,
or whose best skew exceeds max_skew_s, is uncorrelated.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from focus_hunter.models.frame import Frame
from focus_hunter.models.position import PositionSample


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Correlation:
    """
    Chosen position for one frame.

    Attributes:
        sample: The selected position sample
        skew_s: |sample.timestamp - frame.timestamp|
        from_hint: True if the capture-time hint was selected
    """

    sample: PositionSample
    skew_s: float
    from_hint: bool


class PositionCorrelator:
    """
    Nearest-in-time position selection.

    Attributes:
        max_skew_s: Largest accepted skew, None for no bound
    """

    def __init__(self, max_skew_s: Optional[float] = None) -> None:
        if max_skew_s is not None and max_skew_s < 0:
            raise ValueError("max_skew_s must be >= 0")
        self.max_skew_s = max_skew_s
        self._hint_selected = 0
        self._poll_selected = 0
        self._uncorrelated = 0

    def correlate(
        self,
        frame: Frame,
        polled: Optional[PositionSample] = None,
    ) -> Optional[Correlation]:
        """
        Pick the position sample for a frame.

        Args:
            frame: Frame being processed
            polled: Sample read from the axis for this frame

        Returns:
            Correlation, or None if the frame cannot be correlated.
        """
        best: Optional[Correlation] = None

        hint = frame.position_hint
        if hint is not None and hint.is_valid:
            best = Correlation(hint, abs(hint.timestamp - frame.timestamp), True)

        if polled is not None and polled.is_valid:
            skew = abs(polled.timestamp - frame.timestamp)
            if best is None or skew < best.skew_s:
                best = Correlation(polled, skew, False)

        if best is None:
            self._uncorrelated += 1
            return None

        if self.max_skew_s is not None and best.skew_s > self.max_skew_s:
            self._uncorrelated += 1
            logger.debug(
                f"Frame {frame.frame_id} uncorrelated: skew {best.skew_s * 1000:.2f}ms "
                f"> {self.max_skew_s * 1000:.2f}ms"
            )
            return None

        if best.from_hint:
            self._hint_selected += 1
        else:
            self._poll_selected += 1
        return best

    def metrics(self) -> dict:
        return {
            "hint_selected": self._hint_selected,
            "poll_selected": self._poll_selected,
            "uncorrelated": self._uncorrelated,
        }
