"""
Scan Session
============

Mutable per-scan aggregate shared by the control thread and the
frame-processing thread.

Design Rules:
    - Every mutation happens under the session lock
    - State changes are validated against the transition table
    - Observations are accepted only while SWEEPING
    - Only the current best frame is copied and retained
"""

import logging
import threading
import time
from typing import List, Optional, Tuple

from focus_hunter.errors import NoUsableFramesError
from focus_hunter.models.fault_codes import FaultReason
from focus_hunter.models.frame import Frame
from focus_hunter.models.input import ScanRequest
from focus_hunter.models.observation import ScoredObservation
from focus_hunter.models.output import ScanFault, ScanResult
from focus_hunter.models.position import PositionSample
from focus_hunter.models.state import ScanState
from focus_hunter.scan.transitions import can_transition


logger = logging.getLogger(__name__)


class ScanSession:
    """
    State of one scan.

    Attributes:
        request: Sweep bounds and speed (clamped to the axis limits once known)
        state: Current ScanState
        observations: Scored observations in arrival order
        rejected_frames: Corrupt frames dropped
        uncorrelated_frames: Frames without a usable position
        late_frames: Frames delivered outside SWEEPING
        limits: Cached (min, max) axis limits
        fault: Cause, once FAULTED
    """

    def __init__(self, request: ScanRequest) -> None:
        self.lock = threading.RLock()
        self.request = request
        self.limits: Optional[Tuple[float, float]] = None
        self.started_at = time.monotonic()
        self.finished_at: Optional[float] = None

        self._state = ScanState.IDLE
        self._observations: List[ScoredObservation] = []
        self._best: Optional[ScoredObservation] = None
        self._best_frame: Optional[Frame] = None
        self._fault: Optional[ScanFault] = None

        self.rejected_frames = 0
        self.uncorrelated_frames = 0
        self.late_frames = 0

    # =========================================================================
    # State
    # =========================================================================

    @property
    def state(self) -> ScanState:
        with self.lock:
            return self._state

    @property
    def is_accepting(self) -> bool:
        """Whether frames may currently be recorded."""
        with self.lock:
            return self._state == ScanState.SWEEPING

    @property
    def fault(self) -> Optional[ScanFault]:
        with self.lock:
            return self._fault

    def transition(self, target: ScanState) -> bool:
        """
        Move to `target` if the transition table allows it.

        Returns:
            True if the state changed.
        """
        with self.lock:
            current = self._state
            if not can_transition(current, target):
                logger.debug(f"Transition {current.value} → {target.value} refused")
                return False
            self._state = target
            if target.is_terminal:
                self.finished_at = time.monotonic()

        logger.info(f"Scan state: {current.value} → {target.value}")
        return True

    def fail(self, reason: FaultReason, message: str = "") -> bool:
        """
        Transition to FAULTED with a cause.

        The first fault wins; later calls and calls on a terminal
        session are ignored.

        Returns:
            True if this call faulted the session.
        """
        with self.lock:
            current = self._state
            if not can_transition(current, ScanState.FAULTED):
                return False
            self._fault = ScanFault(reason=reason, message=message, state=current)
            self._state = ScanState.FAULTED
            self.finished_at = time.monotonic()

        logger.warning(
            f"Scan FAULTED in {current.value}: reason={reason.value} {message}"
        )
        return True

    # =========================================================================
    # Observations
    # =========================================================================

    def record(
        self,
        frame: Frame,
        sample: PositionSample,
        score: float,
        skew_s: float = 0.0,
    ) -> Optional[ScoredObservation]:
        """
        Append an observation if the session is still SWEEPING.

        The frame's pixels are copied only when it becomes the new best.

        Returns:
            The recorded observation, or None if the frame arrived late.
        """
        with self.lock:
            if self._state != ScanState.SWEEPING:
                self.late_frames += 1
                return None

            observation = ScoredObservation(
                frame_id=frame.frame_id,
                frame_timestamp=frame.timestamp,
                position=sample.position,
                position_timestamp=sample.timestamp,
                score=score,
                arrival_index=len(self._observations),
                correlation_skew_s=skew_s,
            )
            self._observations.append(observation)

            if self._best is None or score > self._best.score:
                self._best = observation
                self._best_frame = frame.copy()

            return observation

    def count_rejected(self) -> None:
        with self.lock:
            self.rejected_frames += 1

    def count_uncorrelated(self) -> None:
        with self.lock:
            self.uncorrelated_frames += 1

    def count_late(self) -> None:
        with self.lock:
            self.late_frames += 1

    @property
    def observations(self) -> List[ScoredObservation]:
        """Snapshot of the observations in arrival order."""
        with self.lock:
            return list(self._observations)

    @property
    def observation_count(self) -> int:
        with self.lock:
            return len(self._observations)

    # =========================================================================
    # Evaluation
    # =========================================================================

    def select_winner(self) -> ScoredObservation:
        """
        Highest-scoring observation; ties go to the earliest arrival.

        Raises:
            NoUsableFramesError: If the sweep produced no observations
        """
        with self.lock:
            if not self._observations:
                raise NoUsableFramesError(
                    f"Sweep produced no scored frames "
                    f"(rejected={self.rejected_frames}, "
                    f"uncorrelated={self.uncorrelated_frames})"
                )
            return max(self._observations, key=lambda o: (o.score, -o.arrival_index))

    @property
    def winner(self) -> Optional[ScoredObservation]:
        """The best observation so far, None before the first one."""
        with self.lock:
            return self._best

    @property
    def best_frame(self) -> Optional[Frame]:
        """Private copy of the best frame so far."""
        with self.lock:
            return self._best_frame

    def to_result(self) -> ScanResult:
        """
        Build the ScanResult for a DONE session.

        Raises:
            NoUsableFramesError: If there is no winner
        """
        winner = self.select_winner()
        with self.lock:
            return ScanResult(
                winning_position=winner.position,
                winning_score=winner.score,
                observation_count=len(self._observations),
                winning_frame_id=winner.frame_id,
                winning_frame_timestamp=winner.frame_timestamp,
                rejected_frames=self.rejected_frames,
            )

    @property
    def elapsed_s(self) -> float:
        end = self.finished_at if self.finished_at is not None else time.monotonic()
        return max(0.0, end - self.started_at)

    def metrics(self) -> dict:
        """Get session counters for observability."""
        with self.lock:
            return {
                "state": self._state.value,
                "observations": len(self._observations),
                "rejected_frames": self.rejected_frames,
                "uncorrelated_frames": self.uncorrelated_frames,
                "late_frames": self.late_frames,
                "best_score": self._best.score if self._best else None,
                "best_position": self._best.position if self._best else None,
                "elapsed_s": round(self.elapsed_s, 3),
            }
