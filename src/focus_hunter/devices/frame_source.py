"""
Frame Source
============

Capability boundary every camera driver implements.

The base class owns the plumbing shared by all drivers:
    - a FrameDispatcher, so subscribers never run on the acquisition thread
    - exposure clamping to the driver's supported range
    - lifecycle bookkeeping (initialized / acquiring)
    - the device error channel

A driver implements the underscore hooks and calls `_publish(frame)` from
its acquisition thread for every captured frame.

Design Rules:
    - start() returns False instead of raising when the source cannot start
    - stop() returns only once the driver has stopped publishing
    - Frames are delivered in publication order
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Optional

from focus_hunter.devices.faults import FaultChannel, FaultListener
from focus_hunter.models.fault_codes import FaultReason
from focus_hunter.models.frame import Frame
from focus_hunter.stream.dispatcher import FrameDispatcher, FrameListener


logger = logging.getLogger(__name__)


STOP_TIMEOUT_S = 5.0


class FrameSource(ABC):
    """
    Abstract camera producing timestamped frames on its own thread.

    Attributes:
        exposure_min_us: Lowest supported exposure (microseconds)
        exposure_max_us: Highest supported exposure (microseconds)
        is_initialized: Whether initialize() succeeded
        is_acquiring: Whether acquisition is running
    """

    device_name = "camera"

    def __init__(
        self,
        exposure_min_us: float,
        exposure_max_us: float,
        dispatcher: Optional[FrameDispatcher] = None,
    ) -> None:
        """
        Initialize shared source state.

        Args:
            exposure_min_us: Lower exposure bound
            exposure_max_us: Upper exposure bound
            dispatcher: Dispatcher to deliver frames through (created if None)
        """
        if exposure_min_us > exposure_max_us:
            raise ValueError("exposure_min_us must be <= exposure_max_us")

        self.exposure_min_us = exposure_min_us
        self.exposure_max_us = exposure_max_us
        self._dispatcher = dispatcher or FrameDispatcher(
            name=f"{self.device_name}-dispatch"
        )
        self._faults = FaultChannel(self.device_name)
        self._state_lock = threading.RLock()
        self._initialized = False
        self._acquiring = False
        self._stopped = threading.Event()
        self._stopped.set()
        self._last_frame_id: Optional[int] = None
        self._frame_id_gaps = 0
        self._published = 0

    # =========================================================================
    # Driver Hooks
    # =========================================================================

    @abstractmethod
    def _open(self) -> bool:
        """Open the device. Return False if it is unavailable."""

    def _close(self) -> None:
        """Release the device. Default does nothing."""

    @abstractmethod
    def _start_acquisition(self) -> bool:
        """Start the acquisition thread. Return False if the device refuses."""

    @abstractmethod
    def _stop_acquisition(self) -> None:
        """Stop the acquisition thread and wait until it stops publishing."""

    @abstractmethod
    def _apply_exposure(self, exposure_us: float) -> None:
        """Write an already clamped exposure to the device."""

    @abstractmethod
    def _read_exposure(self) -> float:
        """Read the current exposure from the device."""

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def is_acquiring(self) -> bool:
        return self._acquiring

    @property
    def dispatcher(self) -> FrameDispatcher:
        return self._dispatcher

    def initialize(self) -> bool:
        """
        Open the device and start frame delivery.

        Returns:
            True if the source is ready to start.
        """
        with self._state_lock:
            if self._initialized:
                return True
            if not self._open():
                logger.error(f"{type(self).__name__}: device unavailable")
                return False
            self._dispatcher.start()
            self._initialized = True
        logger.info(f"{type(self).__name__} initialized")
        return True

    def start(self) -> bool:
        """
        Start acquisition.

        Returns:
            False if the source is not initialized or the driver refused.
        """
        with self._state_lock:
            if not self._initialized:
                logger.warning(f"{type(self).__name__}: start() before initialize()")
                return False
            if self._acquiring:
                return True
            if not self._start_acquisition():
                logger.error(f"{type(self).__name__}: acquisition refused to start")
                return False
            self._stopped.clear()
            self._acquiring = True
        logger.info(f"{type(self).__name__} acquisition started")
        return True

    def stop(self) -> None:
        """
        Stop acquisition.

        Returns once the acquisition thread has stopped publishing, also
        when another caller is already stopping it.
        """
        with self._state_lock:
            stopping = self._acquiring
            self._acquiring = False
        if not stopping:
            if not self._stopped.wait(timeout=STOP_TIMEOUT_S):
                logger.warning(f"{type(self).__name__}: stop still in progress")
            return

        # Not under the state lock: the acquisition thread may need it to exit
        try:
            self._stop_acquisition()
        finally:
            self._stopped.set()
        logger.info(f"{type(self).__name__} acquisition stopped")

    def flush(self) -> int:
        """
        Discard frames produced but not yet delivered.

        Returns:
            Number of frames discarded.
        """
        return self._dispatcher.flush()

    def close(self) -> None:
        """Stop acquisition and delivery, release the device."""
        self.stop()
        with self._state_lock:
            if not self._initialized:
                return
            self._dispatcher.stop()
            self._dispatcher.flush()
            self._close()
            self._initialized = False
        logger.info(f"{type(self).__name__} closed")

    # =========================================================================
    # Exposure
    # =========================================================================

    def get_exposure(self) -> float:
        """Current exposure in microseconds."""
        return self._read_exposure()

    def set_exposure(self, exposure_us: float) -> float:
        """
        Set exposure, clamped to [exposure_min_us, exposure_max_us].

        Returns:
            The exposure actually applied.
        """
        clamped = min(max(exposure_us, self.exposure_min_us), self.exposure_max_us)
        if clamped != exposure_us:
            logger.info(
                f"Exposure {exposure_us}us clamped to {clamped}us "
                f"[{self.exposure_min_us}, {self.exposure_max_us}]"
            )
        self._apply_exposure(clamped)
        return clamped

    # =========================================================================
    # Notification
    # =========================================================================

    def subscribe(self, listener: FrameListener) -> None:
        """Register for frame-produced notifications (dispatch thread)."""
        self._dispatcher.subscribe(listener)

    def unsubscribe(self, listener: FrameListener) -> None:
        self._dispatcher.unsubscribe(listener)

    def add_fault_listener(self, listener: FaultListener) -> None:
        """Register for device faults (connection lost)."""
        self._faults.add(listener)

    def remove_fault_listener(self, listener: FaultListener) -> None:
        self._faults.remove(listener)

    def _publish(self, frame: Frame) -> None:
        """Hand a captured frame to the dispatcher. Called by drivers."""
        if self._last_frame_id is not None and frame.frame_id != self._last_frame_id + 1:
            self._frame_id_gaps += 1
            logger.warning(
                f"Frame id gap: {self._last_frame_id} -> {frame.frame_id}"
            )
        self._last_frame_id = frame.frame_id
        self._published += 1
        self._dispatcher.submit(frame)

    def _handle_connection_loss(self, message: str) -> None:
        """Mark the source stopped and report SOURCE_DISCONNECTED."""
        with self._state_lock:
            was_acquiring = self._acquiring
            self._acquiring = False
            self._stopped.set()
        logger.error(
            f"{type(self).__name__} connection lost "
            f"(acquiring={was_acquiring}): {message}"
        )
        self._faults.emit(FaultReason.SOURCE_DISCONNECTED, message)

    def metrics(self) -> dict:
        """Get source metrics for observability."""
        return {
            "initialized": self._initialized,
            "acquiring": self._acquiring,
            "published": self._published,
            "frame_id_gaps": self._frame_id_gaps,
            "faults": self._faults.fault_count,
            "dispatcher": self._dispatcher.metrics(),
        }
