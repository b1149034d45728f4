"""
Device Error Channel
====================

Listener registry used by FrameSource and MotionAxis to report
asynchronous device faults (connection lost).

Listeners are called synchronously on the thread that detected the fault.
A failing listener is logged and skipped.
"""

import logging
import threading
from typing import Callable, List

from focus_hunter.models.fault_codes import DeviceFault, FaultReason


logger = logging.getLogger(__name__)


FaultListener = Callable[[DeviceFault], None]


class FaultChannel:
    """
    Fan-out of DeviceFault events to registered listeners.

    Attributes:
        device: Device name stamped on every emitted fault
        fault_count: Number of faults emitted so far
    """

    def __init__(self, device: str) -> None:
        self.device = device
        self._listeners: List[FaultListener] = []
        self._lock = threading.Lock()
        self._fault_count = 0

    def add(self, listener: FaultListener) -> None:
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def remove(self, listener: FaultListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    @property
    def fault_count(self) -> int:
        return self._fault_count

    def emit(self, kind: FaultReason, message: str = "") -> DeviceFault:
        """
        Build a DeviceFault and deliver it to every listener.

        Args:
            kind: Fault reason
            message: Detail from the driver

        Returns:
            The emitted fault.
        """
        fault = DeviceFault(device=self.device, kind=kind, message=message)
        with self._lock:
            self._fault_count += 1
            listeners = list(self._listeners)

        logger.warning(f"Device fault [{self.device}]: {kind.value} {message}")

        for listener in listeners:
            try:
                listener(fault)
            except Exception as e:
                logger.error(
                    f"Fault listener failed for {self.device}: {e}",
                    exc_info=True,
                )
        return fault
