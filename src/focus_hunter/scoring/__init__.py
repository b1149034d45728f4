"""
Scoring Module
==============

Sharpness metrics for focus evaluation.

Components:
    - laplacian_variance: Variance of the 4-neighbour Laplacian
    - score_frame: Frame-level wrapper that never raises
    - SharpnessScorer: Callable scorer used by the orchestrator
"""

from focus_hunter.scoring.sharpness import (
    ScoreFunction,
    SharpnessScorer,
    laplacian_variance,
    score_frame,
)

__all__ = [
    "ScoreFunction",
    "SharpnessScorer",
    "laplacian_variance",
    "score_frame",
]
