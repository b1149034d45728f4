"""
Sharpness Metric
================

Focus score computed from a single grayscale frame.

The score is the variance of the 4-neighbour Laplacian over the interior
pixels of the image. In-focus images have strong local intensity changes,
so their Laplacian response is spread wide; defocused images are smooth and
their response collapses towards zero.

Formulas:
    L(x, y) = 4*I(x, y) - I(x-1, y) - I(x+1, y) - I(x, y-1) - I(x, y+1)
    score   = E[L^2] - E[L]^2        (population variance, interior only)

Kernel:
    [[ 0, -1,  0],
     [-1,  4, -1],
     [ 0, -1,  0]]

Properties:
    - Pure and deterministic: same pixels, same score
    - Non-negative; a uniform image scores exactly 0
    - Images smaller than 3x3 have no interior and score 0

Reference:
    Pech-Pacheco et al. (2000). Diatom autofocusing in brightfield microscopy.
"""

from typing import Callable

import numpy as np

from focus_hunter.models.frame import Frame


ScoreFunction = Callable[[Frame], float]


def laplacian_variance(image: np.ndarray) -> float:
    """
    Compute the variance of the Laplacian over interior pixels.

    Args:
        image: 2-D single-channel image (any numeric dtype)

    Returns:
        Non-negative sharpness score. 0.0 for images smaller than 3x3.
    """
    if image.ndim != 2:
        return 0.0

    height, width = image.shape
    if height < 3 or width < 3:
        return 0.0

    img = image.astype(np.float64, copy=False)

    center = img[1:-1, 1:-1]
    up = img[:-2, 1:-1]
    down = img[2:, 1:-1]
    left = img[1:-1, :-2]
    right = img[1:-1, 2:]

    laplacian = 4.0 * center - up - down - left - right

    mean = float(np.mean(laplacian))
    mean_sq = float(np.mean(laplacian * laplacian))

    # Float rounding can push a flat image slightly negative
    return max(0.0, mean_sq - mean * mean)


def score_frame(frame: Frame) -> float:
    """
    Score a frame. Never raises.

    Args:
        frame: Frame whose pixels are row-major width x height

    Returns:
        Sharpness score, or 0.0 if the pixel data does not match
        the frame dimensions.
    """
    if frame.pixels is None or not frame.has_expected_size:
        return 0.0
    return laplacian_variance(frame.as_image())


class SharpnessScorer:
    """
    Callable sharpness scorer.

    Any Callable[[Frame], float] can be used in its place, so an
    alternative metric only has to be a function.

    Example:
        scorer = SharpnessScorer()
        score = scorer(frame)
    """

    def __init__(self) -> None:
        self._scored = 0

    def __call__(self, frame: Frame) -> float:
        self._scored += 1
        return score_frame(frame)

    @property
    def frames_scored(self) -> int:
        return self._scored
