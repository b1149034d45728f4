"""
Sharpness Metric Tests
======================

Properties of the Laplacian-variance focus score.
"""

import numpy as np
import pytest

from conftest import make_frame
from focus_hunter.models.frame import Frame
from focus_hunter.scoring.sharpness import SharpnessScorer, laplacian_variance, score_frame


class TestLaplacianVariance:
    """Tests for laplacian_variance()."""

    def test_flat_image_scores_zero(self):
        """A uniform image has no Laplacian response."""
        image = np.full((32, 32), 128, dtype=np.uint8)
        assert laplacian_variance(image) == 0.0

    def test_edge_scores_above_uniform(self, edge_image):
        """A hard edge is sharper than a flat field."""
        flat = np.full_like(edge_image, 128)
        assert laplacian_variance(edge_image) > laplacian_variance(flat)

    def test_deterministic_and_non_negative(self):
        rng = np.random.default_rng(42)
        image = rng.integers(0, 256, size=(40, 30)).astype(np.uint8)

        first = laplacian_variance(image)
        second = laplacian_variance(image.copy())

        assert first == second
        assert first >= 0.0

    def test_blur_lowers_score(self):
        """Averaging neighbours reduces the score of a noisy image."""
        rng = np.random.default_rng(1)
        sharp = rng.uniform(0, 255, size=(32, 32))
        blurred = (
            sharp
            + np.roll(sharp, 1, axis=0)
            + np.roll(sharp, -1, axis=0)
            + np.roll(sharp, 1, axis=1)
            + np.roll(sharp, -1, axis=1)
        ) / 5.0
        assert laplacian_variance(blurred) < laplacian_variance(sharp)

    @pytest.mark.parametrize("shape", [(2, 2), (2, 10), (10, 2), (1, 1)])
    def test_too_small_scores_zero(self, shape):
        assert laplacian_variance(np.ones(shape)) == 0.0

    def test_known_value(self):
        """Single bright pixel in a 5x5 field."""
        image = np.zeros((5, 5))
        image[2, 2] = 1.0
        # Interior 3x3 Laplacian: centre 4, four edge neighbours -1, corners 0
        values = np.array([0, -1, 0, -1, 4, -1, 0, -1, 0], dtype=np.float64)
        expected = float(np.mean(values ** 2) - np.mean(values) ** 2)
        assert laplacian_variance(image) == pytest.approx(expected)


class TestScoreFrame:
    """Tests for the frame-level wrappers."""

    def test_size_mismatch_scores_zero(self):
        """A truncated buffer never raises."""
        frame = Frame(
            frame_id=0,
            timestamp=0.0,
            width=8,
            height=8,
            pixels=np.ones(10, dtype=np.uint8),
        )
        assert score_frame(frame) == 0.0

    def test_flat_frame_scores_zero(self):
        assert score_frame(make_frame(0, value=9)) == 0.0

    def test_scorer_is_callable(self, edge_image):
        scorer = SharpnessScorer()
        frame = Frame(
            frame_id=3,
            timestamp=1.0,
            width=16,
            height=16,
            pixels=edge_image.reshape(-1),
        )
        assert scorer(frame) == pytest.approx(laplacian_variance(edge_image))
        assert scorer.frames_scored == 1
