"""
Motion Sampler
==============

Single-step luminance differencing on a coarse grid.

For every sampled cell (stride 2 in both axes) of the Analysis frame:

    L    = 0.2126 R + 0.7152 G + 0.0722 B
    diff = |L_current - L_previous|

Cells with diff > thr become candidate points with weight = diff.

Threshold:
    thr = THRESHOLD_MAX - (THRESHOLD_MAX - THRESHOLD_MIN) * sensitivity

    Strictly decreasing in sensitivity: higher sensitivity lets weaker
    changes through.

Motion Density:
    hits / cells, the fraction of sampled cells above threshold.
    Feeds the presence gate's heuristic mode.

Key Design Decisions:
    - No optical flow, no tracking: one frame pair per call
    - Candidates are sorted by descending weight (stable) before return;
      the point selector depends on this ordering
    - Exactly one previous frame is retained, in an explicit slot
"""

import logging
from typing import Optional

import numpy as np

from blobtrack.models.points import Point, SampleResult


logger = logging.getLogger(__name__)


GRID_STRIDE = 2

THRESHOLD_MAX = 24.0
THRESHOLD_MIN = 8.0

# Rec. 709 luma weights, indexed in OpenCV's B, G, R channel order
_LUMA_BGR = np.array([0.0722, 0.7152, 0.2126], dtype=np.float32)


def motion_threshold(sensitivity: float) -> float:
    """
    Difference threshold for a sensitivity in [0, 1].

    Raises:
        ValueError: If sensitivity is outside [0, 1]
    """
    if not 0.0 <= sensitivity <= 1.0:
        raise ValueError(f"sensitivity must be in [0, 1], got {sensitivity}")
    return THRESHOLD_MAX - (THRESHOLD_MAX - THRESHOLD_MIN) * sensitivity


def grid_luminance(frame: np.ndarray, stride: int = GRID_STRIDE) -> np.ndarray:
    """
    Perceptual luminance of every stride-th pixel.

    Args:
        frame: BGR or BGRA frame (H, W, C), uint8

    Returns:
        float32 array (ceil(H / stride), ceil(W / stride))
    """
    cells = frame[::stride, ::stride, :3].astype(np.float32)
    return cells @ _LUMA_BGR


def sample_motion(
    current: np.ndarray,
    previous: Optional[np.ndarray],
    sensitivity: float,
) -> SampleResult:
    """
    Difference two Analysis frames and rank the changed cells.

    Args:
        current: Current Analysis frame (H, W, 3) uint8
        previous: Previous Analysis frame of the same shape, or None
        sensitivity: Sensitivity in [0, 1]

    Returns:
        SampleResult with candidates in Analysis pixel coordinates,
        sorted by descending weight. Empty with density 0 when previous
        is None.
    """
    thr = motion_threshold(sensitivity)

    if previous is None:
        return SampleResult(bootstrap=True)

    if previous.shape != current.shape:
        raise ValueError(
            f"Frame shapes must match. Got: {current.shape} vs {previous.shape}"
        )

    diff = np.abs(grid_luminance(current) - grid_luminance(previous))
    cells = int(diff.size)

    rows, cols = np.nonzero(diff > thr)
    hits = int(rows.size)
    if hits == 0:
        return SampleResult(cells=cells)

    weights = diff[rows, cols]
    # Stable sort keeps row-major scan order among equal weights
    order = np.argsort(-weights, kind="stable")

    xs = (cols[order] * GRID_STRIDE).tolist()
    ys = (rows[order] * GRID_STRIDE).tolist()
    ws = weights[order].tolist()

    candidates = [Point(x=float(x), y=float(y), weight=float(w)) for x, y, w in zip(xs, ys, ws)]

    return SampleResult(
        candidates=candidates,
        motion_density=hits / cells,
        hits=hits,
        cells=cells,
    )


class MotionSampler:
    """
    Motion sampler owning the single retained previous Analysis frame.

    The previous frame is replaced on every sample() call and discarded
    by reset(), which the driver calls whenever buffers are reallocated.

    Attributes:
        last_density: Motion density from the most recent sample
    """

    def __init__(self) -> None:
        self._previous: Optional[np.ndarray] = None
        self.last_density: float = 0.0
        self.samples_taken: int = 0

    @property
    def has_previous(self) -> bool:
        return self._previous is not None

    def reset(self) -> None:
        """Discard the retained frame; the next sample bootstraps."""
        self._previous = None
        self.last_density = 0.0

    def sample(self, current: np.ndarray, sensitivity: float) -> SampleResult:
        """
        Sample motion against the retained frame, then retain current.

        Args:
            current: Current Analysis frame. Retained by reference, so the
                caller must not write into it afterwards.
            sensitivity: Sensitivity in [0, 1]

        Returns:
            SampleResult (bootstrap result on the first call after reset)
        """
        previous = self._previous
        if previous is not None and previous.shape != current.shape:
            logger.warning(
                f"Analysis shape changed {previous.shape} -> {current.shape}, "
                f"restarting from bootstrap"
            )
            previous = None

        result = sample_motion(current, previous, sensitivity)

        self._previous = current
        self.last_density = result.motion_density
        self.samples_taken += 1
        return result
