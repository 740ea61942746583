"""
Motion Sampler Tests
====================

Luminance differencing, thresholds, bootstrap and determinism.
"""

import numpy as np
import pytest

from blobtrack.motion.sampler import (
    GRID_STRIDE,
    MotionSampler,
    grid_luminance,
    motion_threshold,
    sample_motion,
)
from blobtrack.motion.selector import thin_points


def _spread_diffs(base: np.ndarray) -> np.ndarray:
    """Copy of base with per-cell gray offsets spread evenly over the odd values 1..39."""
    changed = base.copy()
    rows, cols = changed[::GRID_STRIDE, ::GRID_STRIDE].shape[:2]
    offsets = ((np.arange(rows * cols) % 20) * 2 + 1).reshape(rows, cols).astype(np.uint8)
    changed[::GRID_STRIDE, ::GRID_STRIDE] += offsets[..., None]
    return changed


class TestThreshold:
    """Tests for the sensitivity to threshold mapping."""

    def test_endpoints(self):
        assert motion_threshold(0.0) == pytest.approx(24.0)
        assert motion_threshold(1.0) == pytest.approx(8.0)

    def test_strictly_decreasing(self):
        values = [motion_threshold(s / 10) for s in range(11)]
        assert all(a > b for a, b in zip(values, values[1:]))

    def test_out_of_range_rejected(self):
        with pytest.raises(ValueError):
            motion_threshold(1.5)


class TestLuminance:
    """Tests for the grid luminance."""

    def test_weights_in_bgr_order(self):
        frame = np.zeros((2, 2, 3), dtype=np.uint8)
        frame[..., 2] = 100  # red
        lum = grid_luminance(frame)
        assert lum.shape == (1, 1)
        assert lum[0, 0] == pytest.approx(21.26, abs=1e-3)


class TestSampleMotion:
    """Tests for sample_motion()."""

    def test_bootstrap_returns_empty(self, analysis_frame):
        """The first call without a previous frame yields nothing."""
        result = sample_motion(analysis_frame, None, 0.5)
        assert result.bootstrap
        assert result.candidates == []
        assert result.motion_density == 0.0

    def test_identical_frames_have_no_motion(self, analysis_frame):
        result = sample_motion(analysis_frame, analysis_frame.copy(), 1.0)
        assert result.candidates == []
        assert result.motion_density == 0.0
        assert result.cells == 55 * 110

    def test_single_changed_cell(self, analysis_frame):
        """Exactly one cell above threshold gives one candidate at that cell."""
        current = analysis_frame.copy()
        current[20, 40] = 255

        result = sample_motion(current, analysis_frame, 0.5)
        assert len(result.candidates) == 1
        point = result.candidates[0]
        assert (point.x, point.y) == (40.0, 20.0)
        assert point.weight == pytest.approx(155.0, abs=1e-3)
        assert result.motion_density == pytest.approx(1 / (55 * 110))

        chosen = thin_points(result.candidates, 140, 3.8)
        assert len(chosen) == 1

    def test_off_grid_change_ignored(self, analysis_frame):
        current = analysis_frame.copy()
        current[21, 41] = 255
        assert sample_motion(current, analysis_frame, 1.0).candidates == []

    def test_candidates_sorted_by_weight(self, analysis_frame):
        current = analysis_frame.copy()
        current[0, 0] = 140
        current[0, 2] = 200
        current[2, 0] = 170

        weights = [p.weight for p in sample_motion(current, analysis_frame, 0.5).candidates]
        assert weights == sorted(weights, reverse=True)
        assert len(weights) == 3

    def test_higher_sensitivity_at_least_doubles_candidates(self, analysis_frame):
        current = _spread_diffs(analysis_frame)
        low = sample_motion(current, analysis_frame, 0.0)
        high = sample_motion(current, analysis_frame, 1.0)
        assert len(high.candidates) >= 2 * len(low.candidates) > 0

    def test_shape_mismatch_rejected(self, analysis_frame):
        with pytest.raises(ValueError):
            sample_motion(analysis_frame, analysis_frame[:50], 0.5)

    def test_deterministic(self, camera_frame):
        """Identical inputs give identical candidate lists."""
        previous = camera_frame[:110, :220].copy()
        current = np.roll(previous, 3, axis=1)
        a = sample_motion(current, previous, 0.5)
        b = sample_motion(current.copy(), previous.copy(), 0.5)
        assert a.candidates == b.candidates
        assert thin_points(a.candidates, 140, 3.8) == thin_points(b.candidates, 140, 3.8)


class TestMotionSampler:
    """Tests for the stateful sampler."""

    def test_first_sample_bootstraps_then_diffs(self, analysis_frame):
        sampler = MotionSampler()
        first = sampler.sample(analysis_frame, 0.5)
        assert first.bootstrap
        assert sampler.has_previous

        changed = analysis_frame.copy()
        changed[10, 10] = 255
        second = sampler.sample(changed, 0.5)
        assert not second.bootstrap
        assert len(second.candidates) == 1
        assert sampler.last_density == second.motion_density

    def test_reset_discards_previous(self, analysis_frame):
        sampler = MotionSampler()
        sampler.sample(analysis_frame, 0.5)
        sampler.reset()
        assert not sampler.has_previous
        assert sampler.sample(analysis_frame, 0.5).bootstrap

    def test_shape_change_bootstraps(self, analysis_frame):
        sampler = MotionSampler()
        sampler.sample(analysis_frame, 0.5)
        smaller = np.zeros((120, 220, 3), dtype=np.uint8)
        result = sampler.sample(smaller, 0.5)
        assert result.bootstrap
