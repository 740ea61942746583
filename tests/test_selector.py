"""
Point Selector Tests
====================

Greedy thinning, the point cap, output mapping and jitter.
"""

import itertools
import math

import numpy as np
import pytest

from blobtrack.models.geometry import Dimensions
from blobtrack.models.points import Point
from blobtrack.motion.selector import (
    PointSelector,
    apply_jitter,
    jitter_for,
    min_distance_for,
    thin_points,
    to_output_space,
)


def _scattered(count: int = 1000, seed: int = 7):
    """Uniformly scattered high-weight candidates, sorted by weight (stable)."""
    rng = np.random.default_rng(seed)
    xs = rng.uniform(0, 220, count)
    ys = rng.uniform(0, 124, count)
    ws = rng.uniform(100, 255, count)
    order = np.argsort(-ws, kind="stable")
    return [Point(x=float(xs[i]), y=float(ys[i]), weight=float(ws[i])) for i in order]


def _min_pairwise(points):
    return min(
        math.hypot(p.x - q.x, p.y - q.y) for p, q in itertools.combinations(points, 2)
    )


class TestThinning:
    """Tests for thin_points()."""

    def test_scattered_candidates(self):
        """1000 candidates, distance 10, cap 50."""
        candidates = _scattered()
        chosen = thin_points(candidates, 50, 10.0)

        assert 0 < len(chosen) <= 50
        assert _min_pairwise(chosen) >= 10.0 - 1e-9

    def test_prefix_consistent(self):
        """A smaller cap returns a prefix of the larger result."""
        candidates = _scattered()
        large = thin_points(candidates, 50, 10.0)
        small = thin_points(candidates, 20, 10.0)
        assert small == large[: len(small)]

    def test_greedy_in_priority_order(self):
        """Every rejected candidate is too close to an earlier accepted one."""
        candidates = _scattered(300)
        chosen = thin_points(candidates, 1000, 8.0)
        chosen_set = set(chosen)
        accepted = []
        for p in candidates:
            if p in chosen_set:
                accepted.append(p)
            else:
                assert any(math.hypot(p.x - q.x, p.y - q.y) < 8.0 for q in accepted)
        assert accepted == chosen

    def test_cap_respected_for_any_count(self):
        candidates = _scattered(200)
        for cap in (0, 1, 5, 260):
            assert len(thin_points(candidates, cap, 2.6)) <= cap

    def test_zero_distance_keeps_prefix(self):
        candidates = _scattered(30)
        assert thin_points(candidates, 10, 0.0) == candidates[:10]

    def test_negative_distance_rejected(self):
        with pytest.raises(ValueError):
            thin_points(_scattered(5), 5, -1.0)

    def test_coincident_points_collapse(self):
        candidates = [Point(x=5.0, y=5.0, weight=w) for w in (90.0, 80.0, 70.0)]
        assert thin_points(candidates, 10, 1.0) == candidates[:1]


class TestAtmosphereMappings:
    """Tests for atmosphere-driven parameters."""

    def test_min_distance_range(self):
        assert min_distance_for(0.0) == pytest.approx(5.0)
        assert min_distance_for(1.0) == pytest.approx(2.6)

    def test_jitter_range(self):
        assert jitter_for(0.0) == pytest.approx(0.5)
        assert jitter_for(1.0) == pytest.approx(7.0)


class TestMappingAndJitter:
    """Tests for output mapping and the jitter step."""

    def test_to_output_space_scales(self):
        points = [Point(x=110.0, y=62.0, weight=50.0)]
        mapped = to_output_space(points, Dimensions(width=220, height=124), Dimensions(width=1280, height=720))
        assert mapped[0].x == pytest.approx(640.0)
        assert mapped[0].y == pytest.approx(360.0)
        assert mapped[0].weight == 50.0

    def test_jitter_bounded(self):
        points = [Point(x=100.0, y=100.0, weight=1.0)] * 50
        jittered = apply_jitter(points, 3.0, np.random.default_rng(0))
        for p in jittered:
            assert abs(p.x - 100.0) <= 3.0
            assert abs(p.y - 100.0) <= 3.0

    def test_jitter_does_not_change_selection(self):
        """Jitter only moves the already-selected points."""
        candidates = _scattered(400)
        analysis = Dimensions(width=220, height=124)
        output = Dimensions(width=1280, height=720)

        plain = PointSelector(seed=1).select_frame(candidates, 60, 4.0, analysis, output, jitter=0.0)
        jittered = PointSelector(seed=1).select_frame(candidates, 60, 4.0, analysis, output, jitter=7.0)

        assert len(plain) == len(jittered)
        assert [p.weight for p in plain] == [p.weight for p in jittered]

    def test_selection_without_jitter_is_deterministic(self):
        candidates = _scattered(400)
        analysis = Dimensions(width=220, height=124)
        output = Dimensions(width=1280, height=720)
        a = PointSelector(seed=1).select_frame(candidates, 60, 4.0, analysis, output)
        b = PointSelector(seed=99).select_frame(candidates, 60, 4.0, analysis, output)
        assert a == b

    def test_seeded_jitter_reproducible(self):
        candidates = _scattered(100)
        analysis = Dimensions(width=220, height=124)
        output = Dimensions(width=1280, height=720)
        a = PointSelector(seed=5).select_frame(candidates, 30, 4.0, analysis, output, jitter=2.0)
        b = PointSelector(seed=5).select_frame(candidates, 30, 4.0, analysis, output, jitter=2.0)
        assert a == b
