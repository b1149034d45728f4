"""
Test Configuration
==================

Pytest fixtures and scripted device doubles for the focus hunter.

ScriptedAxis:
    MotionAxis whose position is set by the test. Moves arrive instantly
    unless their target is listed in `hold_targets`, in which case the
    test (or a source script) drives the position.

ScriptedFrameSource:
    FrameSource that runs a test-supplied script on its acquisition
    thread when started. The script publishes frames with `emit`.
"""

import threading
import time
from typing import Callable, Iterable, List, Optional, Tuple

import numpy as np
import pytest

from focus_hunter.devices.frame_source import FrameSource
from focus_hunter.devices.motion_axis import MotionAxis
from focus_hunter.errors import DeviceDisconnectedError
from focus_hunter.models.frame import Frame
from focus_hunter.models.position import PositionSample


# =============================================================================
# Helpers
# =============================================================================

def make_frame(
    frame_id: int,
    value: int = 1,
    width: int = 8,
    height: int = 8,
    timestamp: Optional[float] = None,
    hint_position: Optional[float] = None,
) -> Frame:
    """Uniform frame with an optional capture-time position hint."""
    ts = time.monotonic() if timestamp is None else timestamp
    hint = PositionSample(ts, hint_position) if hint_position is not None else None
    return Frame(
        frame_id=frame_id,
        timestamp=ts,
        width=width,
        height=height,
        pixels=np.full(width * height, value, dtype=np.uint8),
        position_hint=hint,
    )


def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> bool:
    """Poll predicate until it holds or the timeout expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.002)
    return predicate()


# =============================================================================
# Scripted Devices
# =============================================================================

class ScriptedAxis(MotionAxis):
    """Axis double driven by the test."""

    def __init__(
        self,
        position: float = 5.0,
        limits: Tuple[float, float] = (0.0, 10.0),
        hold_targets: Iterable[float] = (),
        open_ok: bool = True,
        reject_moves: bool = False,
        **kwargs,
    ) -> None:
        kwargs.setdefault("poll_interval_s", 0.002)
        super().__init__(**kwargs)
        self.position = position
        self.limits = limits
        self.hold_targets = set(hold_targets)
        self.open_ok = open_ok
        self.reject_moves = reject_moves
        self.fail_reads = False
        self.commands: List[Tuple[float, float]] = []
        self._lost = False

    @property
    def targets(self) -> List[float]:
        return [target for target, _ in self.commands]

    def _open(self) -> bool:
        self._lost = False
        return self.open_ok

    def _query_limits(self) -> Tuple[float, float]:
        return self.limits

    def _command_move(self, target: float, speed: float) -> bool:
        if self._lost:
            raise DeviceDisconnectedError("scripted axis link lost")
        self.commands.append((target, speed))
        if self.reject_moves:
            return False
        if target not in self.hold_targets:
            self.position = target
        return True

    def _read_position(self) -> float:
        if self._lost:
            raise DeviceDisconnectedError("scripted axis link lost")
        if self.fail_reads:
            raise RuntimeError("read failed")
        return self.position

    def lose_connection(self) -> None:
        self._lost = True
        self._handle_connection_loss("scripted axis link lost")


class ScriptedFrameSource(FrameSource):
    """Frame source double running a script on its acquisition thread."""

    def __init__(
        self,
        script: Optional[Callable[["ScriptedFrameSource"], None]] = None,
        start_ok: bool = True,
        open_ok: bool = True,
    ) -> None:
        super().__init__(exposure_min_us=10.0, exposure_max_us=1000.0)
        self.script = script
        self.start_ok = start_ok
        self.open_ok = open_ok
        self.stopped = threading.Event()
        self.start_count = 0
        self._exposure = 100.0
        self._thread: Optional[threading.Thread] = None

    def emit(self, frame: Frame) -> None:
        self._publish(frame)

    def _open(self) -> bool:
        return self.open_ok

    def _start_acquisition(self) -> bool:
        if not self.start_ok:
            return False
        self.start_count += 1
        self.stopped.clear()
        if self.script is not None:
            self._thread = threading.Thread(
                target=self.script, args=(self,), name="scripted-camera", daemon=True
            )
            self._thread.start()
        return True

    def _stop_acquisition(self) -> None:
        self.stopped.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=2.0)
        self._thread = None

    def _apply_exposure(self, exposure_us: float) -> None:
        self._exposure = exposure_us

    def _read_exposure(self) -> float:
        return self._exposure

    def lose_connection(self) -> None:
        self._stop_acquisition()
        self._handle_connection_loss("scripted camera link lost")


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def scripted_axis():
    """Connected-on-demand axis holding sweeps to 10 mm."""
    axis = ScriptedAxis(hold_targets=(10.0,))
    yield axis
    axis.disconnect()


@pytest.fixture
def sample_frame():
    """Provide a valid 8x8 frame with a position hint."""
    return make_frame(frame_id=1, value=7, hint_position=2.5)


@pytest.fixture
def edge_image():
    """Half-black / half-white 16x16 image."""
    image = np.zeros((16, 16), dtype=np.uint8)
    image[:, 8:] = 255
    return image
