"""
Devices Module
==============

Capability boundaries for the camera and the motorized axis.

Components:
    - FrameSource: Camera base class (dispatch, exposure clamping, faults)
    - MotionAxis: Axis base class (command thread, bounded waits, faults)
    - SimulatedFrameSource / SimulatedMotionAxis: Deterministic simulators
    - FaultChannel: Device error channel
"""

from focus_hunter.devices.faults import FaultChannel, FaultListener
from focus_hunter.devices.frame_source import FrameSource
from focus_hunter.devices.motion_axis import MotionAxis
from focus_hunter.devices.simulated import (
    SimulatedFrameSource,
    SimulatedMotionAxis,
    create_simulated_rig,
)

__all__ = [
    "FaultChannel",
    "FaultListener",
    "FrameSource",
    "MotionAxis",
    "SimulatedFrameSource",
    "SimulatedMotionAxis",
    "create_simulated_rig",
]
