"""
Point Selector
==============

Thins ranked motion candidates into the frame's point set.

Selection Rules:
    1. Greedy forward scan over candidates in the given order
       (descending weight from the sampler)
    2. Accept a candidate only if its squared distance to every
       accepted point is >= min_distance^2
    3. Stop once max_count points are accepted

Thinning runs in Analysis pixel space so min_distance means the same
thing at every output resolution. Accepted points are then scaled to
Output space, and an optional cosmetic jitter is applied as a separate,
clearly isolated step.
"""

import logging
import math
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from blobtrack.models.geometry import Dimensions
from blobtrack.models.points import Point, PointSet


logger = logging.getLogger(__name__)


MIN_DISTANCE_LOOSE = 5.0
MIN_DISTANCE_TIGHT = 2.6
JITTER_MIN = 0.5
JITTER_MAX = 7.0


def lerp(a: float, b: float, t: float) -> float:
    return a + (b - a) * t


def min_distance_for(atmosphere: float) -> float:
    """Thinning distance in analysis pixels; shrinks as atmosphere rises."""
    return lerp(MIN_DISTANCE_LOOSE, MIN_DISTANCE_TIGHT, atmosphere)


def jitter_for(atmosphere: float) -> float:
    """Jitter magnitude in output pixels; grows with atmosphere."""
    return lerp(JITTER_MIN, JITTER_MAX, atmosphere)


def thin_points(
    candidates: Sequence[Point],
    max_count: int,
    min_distance: float,
) -> PointSet:
    """
    Greedy minimum-distance thinning with a cap.

    Accepted points are indexed in a uniform grid with cell size
    min_distance, so each candidate is only compared against points in
    the 3x3 neighbourhood of its cell. The result is identical to
    comparing against every accepted point.

    Args:
        candidates: Points in priority order
        max_count: Maximum number of points to accept
        min_distance: Minimum pairwise distance (>= 0)

    Returns:
        Accepted points in acceptance order
    """
    if max_count <= 0:
        return []
    if min_distance < 0:
        raise ValueError(f"min_distance must be >= 0, got {min_distance}")

    if min_distance == 0:
        return list(candidates[:max_count])

    cell = min_distance
    limit_sq = min_distance * min_distance
    grid: Dict[Tuple[int, int], List[Point]] = {}
    accepted: PointSet = []

    for p in candidates:
        cx = math.floor(p.x / cell)
        cy = math.floor(p.y / cell)

        ok = True
        for gx in (cx - 1, cx, cx + 1):
            for gy in (cy - 1, cy, cy + 1):
                for q in grid.get((gx, gy), ()):
                    dx = p.x - q.x
                    dy = p.y - q.y
                    if dx * dx + dy * dy < limit_sq:
                        ok = False
                        break
                if not ok:
                    break
            if not ok:
                break

        if ok:
            accepted.append(p)
            grid.setdefault((cx, cy), []).append(p)
            if len(accepted) >= max_count:
                break

    return accepted


def to_output_space(
    points: Sequence[Point],
    analysis: Dimensions,
    output: Dimensions,
) -> PointSet:
    """Scale points from Analysis to Output pixel space."""
    sx = output.width / analysis.width
    sy = output.height / analysis.height
    return [Point(x=p.x * sx, y=p.y * sy, weight=p.weight) for p in points]


def apply_jitter(
    points: Sequence[Point],
    magnitude: float,
    rng: np.random.Generator,
) -> PointSet:
    """
    Cosmetic scatter: uniform offset in [-magnitude, magnitude] per axis.

    This is the only randomized step in point selection.
    """
    if magnitude <= 0 or not points:
        return list(points)
    offsets = rng.uniform(-magnitude, magnitude, size=(len(points), 2))
    return [
        Point(x=p.x + float(ox), y=p.y + float(oy), weight=p.weight)
        for p, (ox, oy) in zip(points, offsets)
    ]


class PointSelector:
    """
    Point selection stage.

    Wraps thinning, coordinate mapping and the optional jitter step
    behind one call per frame.

    Attributes:
        rng: Generator used by the jitter step
    """

    def __init__(self, seed: Optional[int] = None) -> None:
        self.rng = np.random.default_rng(seed)
        self._seed = seed

    def reseed(self, seed: Optional[int]) -> None:
        """Replace the jitter generator when the configured seed changes."""
        if seed != self._seed:
            self.rng = np.random.default_rng(seed)
            self._seed = seed

    def select(
        self,
        candidates: Sequence[Point],
        max_count: int,
        min_distance: float,
    ) -> PointSet:
        """Thin candidates (analysis space). See thin_points()."""
        return thin_points(candidates, max_count, min_distance)

    def select_frame(
        self,
        candidates: Sequence[Point],
        max_count: int,
        min_distance: float,
        analysis: Dimensions,
        output: Dimensions,
        jitter: float = 0.0,
    ) -> PointSet:
        """
        Full per-frame selection: thin, map to Output space, jitter.

        Args:
            candidates: Sampler candidates, descending by weight
            max_count: Point cap
            min_distance: Thinning distance in analysis pixels
            analysis: Analysis buffer size
            output: Output buffer size
            jitter: Jitter magnitude in output pixels (0 disables)

        Returns:
            Output-space points, in acceptance order
        """
        chosen = self.select(candidates, max_count, min_distance)
        mapped = to_output_space(chosen, analysis, output)
        if jitter > 0:
            mapped = apply_jitter(mapped, jitter, self.rng)
        return mapped
