"""
Scan Module
===========

Focus scan state machine and its supporting pieces.

Components:
    - ScanOrchestrator: LangGraph home → sweep → evaluate → return machine
    - ScanSession: Per-scan aggregate guarded by one lock
    - PositionCorrelator: Nearest-in-time frame/position matching
    - ALLOWED_TRANSITIONS: Explicit state transition table
"""

from focus_hunter.scan.correlation import Correlation, PositionCorrelator
from focus_hunter.scan.graph import ScanOrchestrator, create_orchestrator
from focus_hunter.scan.session import ScanSession
from focus_hunter.scan.transitions import ALLOWED_TRANSITIONS, can_transition

__all__ = [
    "ScanOrchestrator",
    "create_orchestrator",
    "ScanSession",
    "PositionCorrelator",
    "Correlation",
    "ALLOWED_TRANSITIONS",
    "can_transition",
]
