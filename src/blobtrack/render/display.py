"""
Display Fit
===========

Letterboxed "contain" fit of the Output buffer onto a screen surface.
Scaling is nearest-neighbour to keep the pixel look of the overlay.
"""

from typing import Optional, Tuple

import cv2
import numpy as np

from blobtrack.models.geometry import Dimensions


def fit_rect(frame: Dimensions, screen: Dimensions) -> Tuple[int, int, int, int]:
    """
    Placement of a frame contained in a screen.

    Returns:
        (dx, dy, dw, dh) destination rectangle, centered
    """
    scale = min(screen.width / frame.width, screen.height / frame.height)
    dw = max(1, int(round(frame.width * scale)))
    dh = max(1, int(round(frame.height * scale)))
    dx = (screen.width - dw) // 2
    dy = (screen.height - dh) // 2
    return dx, dy, dw, dh


def fit_to_screen(
    frame: np.ndarray,
    screen: Dimensions,
    out: Optional[np.ndarray] = None,
) -> np.ndarray:
    """
    Contain-fit a frame onto a black screen-sized canvas.

    Args:
        frame: Output buffer (H, W, 3) uint8
        screen: Screen size
        out: Optional canvas to reuse; reallocated if the size differs

    Returns:
        The screen canvas
    """
    if out is None or out.shape[:2] != screen.shape:
        out = np.zeros((screen.height, screen.width, 3), dtype=np.uint8)
    else:
        out.fill(0)

    dx, dy, dw, dh = fit_rect(Dimensions.of(frame), screen)
    scaled = cv2.resize(frame, (dw, dh), interpolation=cv2.INTER_NEAREST)
    out[dy:dy + dh, dx:dx + dw] = scaled
    return out
