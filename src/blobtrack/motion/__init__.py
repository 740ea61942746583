"""
Motion Module
=============

Motion sampling and point selection.

This module provides:
    - MotionSampler: grid luminance differencing with one retained frame
    - PointSelector: greedy minimum-distance thinning, mapping, jitter

No tracking, no identities: points are rebuilt from scratch every frame.
"""

from blobtrack.motion.sampler import (
    MotionSampler,
    grid_luminance,
    motion_threshold,
    sample_motion,
)
from blobtrack.motion.selector import (
    PointSelector,
    apply_jitter,
    jitter_for,
    min_distance_for,
    thin_points,
    to_output_space,
)

__all__ = [
    # Sampling
    "MotionSampler",
    "sample_motion",
    "motion_threshold",
    "grid_luminance",
    # Selection
    "PointSelector",
    "thin_points",
    "to_output_space",
    "apply_jitter",
    "min_distance_for",
    "jitter_for",
]
