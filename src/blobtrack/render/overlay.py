"""
Overlay Renderer
================

Draws the HUD overlay for the selected points onto the Output buffer.

Layers (drawn in this order into one ink mask):
    1. Links: every pair closer than link_radius, opacity
       0.10 + 0.55 * (1 - d^2 / link_radius^2)
    2. Markers: square or circle, size 10 + clamp(weight / 6, 0, 22)
    3. Labels: "x, y" output coordinates next to each marker, clamped
       so the text box never leaves the buffer

The ink mask is then optionally blurred into a glow and composited
onto the buffer in the style's ink color. The result is deterministic
for a given style and point set.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Sequence, Tuple

import cv2
import numpy as np

from blobtrack.models.geometry import Dimensions
from blobtrack.models.points import Point
from blobtrack.models.style import Ink, MarkerShape


logger = logging.getLogger(__name__)


# Ink palettes, BGR
INK_PALETTES: Dict[Ink, Tuple[int, int, int]] = {
    Ink.WHITE: (255, 255, 255),
    Ink.NEON: (140, 255, 80),
    Ink.ICE: (255, 220, 160),
    Ink.RED: (80, 80, 255),
}

LINK_RADIUS_MIN = 90.0
LINK_RADIUS_MAX = 260.0
LINK_ALPHA_BASE = 0.10
LINK_ALPHA_RANGE = 0.55

MARKER_ALPHA = 0.92
MARKER_MIN_SIZE = 10.0
MARKER_MAX_EXTRA = 22.0
MARKER_WEIGHT_DIVISOR = 6.0

LABEL_GAP = 6
LABEL_MARGIN = 6
LABEL_MIN_SCALE = 0.2
LABEL_FIT_STEPS = 4
FONT = cv2.FONT_HERSHEY_SIMPLEX

GLOW_SIGMA = 4.0
GLOW_ALPHA = 0.47


@dataclass(frozen=True, slots=True)
class OverlayStyle:
    """
    Visual style of the overlay.

    Attributes:
        color: Ink color, BGR
        link_radius: Maximum link length in output pixels
        glow: Draw a soft glow under the ink
        marker_shape: Square or circle markers
    """

    color: Tuple[int, int, int] = INK_PALETTES[Ink.WHITE]
    link_radius: float = 175.0
    glow: bool = True
    marker_shape: MarkerShape = MarkerShape.SQUARE

    @classmethod
    def from_ink(
        cls,
        ink: Ink,
        link_radius: float,
        glow: bool = True,
        marker_shape: MarkerShape = MarkerShape.SQUARE,
    ) -> "OverlayStyle":
        return cls(
            color=INK_PALETTES[Ink(ink)],
            link_radius=link_radius,
            glow=glow,
            marker_shape=MarkerShape(marker_shape),
        )


def link_radius_for(atmosphere: float) -> float:
    """Default link radius for an atmosphere value."""
    return LINK_RADIUS_MIN + (LINK_RADIUS_MAX - LINK_RADIUS_MIN) * atmosphere


def link_opacity(d2: float, link2: float) -> float:
    """Opacity for a pair at squared distance d2 (< link2)."""
    return LINK_ALPHA_BASE + LINK_ALPHA_RANGE * (1.0 - d2 / link2)


def marker_size(weight: float) -> float:
    """Marker edge length; monotonic in weight, within [10, 32]."""
    return MARKER_MIN_SIZE + min(max(weight / MARKER_WEIGHT_DIVISOR, 0.0), MARKER_MAX_EXTRA)


def font_height(dims: Dimensions) -> int:
    """Label text height in pixels for a buffer size."""
    return max(10, round(min(dims.width, dims.height) * 0.018))


def format_label(point: Point) -> str:
    return f"{point.x:.1f}, {point.y:.1f}"


def fit_label(
    label: str,
    scale: float,
    thickness: int,
    dims: Dimensions,
) -> Tuple[float, Tuple[int, int], int]:
    """
    Shrink a label's font scale until its box fits inside the buffer.

    Returns:
        (scale, (text_w, text_h), baseline) at the fitted scale
    """
    avail_w = max(dims.width - 2 * LABEL_MARGIN, 1)
    avail_h = max(dims.height - 2 * LABEL_MARGIN, 1)

    (text_w, text_h), baseline = cv2.getTextSize(label, FONT, scale, thickness)
    for _ in range(LABEL_FIT_STEPS):
        shrink = min(avail_w / max(text_w, 1), avail_h / max(text_h + baseline, 1))
        if shrink >= 1.0 or scale <= LABEL_MIN_SCALE:
            break
        scale = max(scale * min(shrink, 0.95), LABEL_MIN_SCALE)
        (text_w, text_h), baseline = cv2.getTextSize(label, FONT, scale, thickness)
    return scale, (text_w, text_h), baseline


def label_origin(
    point: Point,
    size: float,
    text_size: Tuple[int, int],
    dims: Dimensions,
) -> Tuple[int, int]:
    """
    Top-left corner of a label's text box.

    The preferred spot is right of and slightly above the marker. The
    box (text width x text height) is clamped inside the buffer with a
    small margin. Boxes are sized by fit_label() first; one that still
    exceeds the buffer is pinned to 0.

    Returns:
        (left, top) in output pixels
    """
    text_w, text_h = text_size
    left = point.x + size / 2 + LABEL_GAP
    top = point.y - size / 2 - 2

    max_left = dims.width - text_w - LABEL_MARGIN
    max_top = dims.height - text_h - LABEL_MARGIN
    left = min(max(left, LABEL_MARGIN), max_left)
    top = min(max(top, LABEL_MARGIN), max_top)
    return max(0, int(round(left))), max(0, int(round(top)))


def _pt(p: Point) -> Tuple[int, int]:
    return int(round(p.x)), int(round(p.y))


class OverlayRenderer:
    """
    Renders links, markers and labels.

    Attributes:
        links_drawn: Links drawn by the last render() call
    """

    def __init__(self) -> None:
        self.links_drawn: int = 0

    def render(
        self,
        target: np.ndarray,
        points: Sequence[Point],
        style: OverlayStyle,
    ) -> int:
        """
        Draw the overlay in place.

        Args:
            target: Output buffer (H, W, 3) uint8, modified in place
            points: Selected points in output pixel space
            style: Overlay style

        Returns:
            Number of links drawn
        """
        self.links_drawn = 0
        if not points:
            return 0

        dims = Dimensions.of(target)
        ink = np.zeros(dims.shape, dtype=np.uint8)

        self.links_drawn = self._draw_links(ink, points, style.link_radius)
        self._draw_markers_and_labels(ink, points, style, dims)

        alpha = ink.astype(np.float32) / 255.0
        if style.glow:
            glow = cv2.GaussianBlur(alpha, (0, 0), sigmaX=GLOW_SIGMA, sigmaY=GLOW_SIGMA)
            np.maximum(alpha, glow * GLOW_ALPHA, out=alpha)

        _composite_color(target, alpha, style.color)
        return self.links_drawn

    def _draw_links(self, ink: np.ndarray, points: Sequence[Point], link_radius: float) -> int:
        link2 = link_radius * link_radius
        coords = np.array([(p.x, p.y) for p in points], dtype=np.float64)
        delta = coords[:, None, :] - coords[None, :, :]
        d2 = np.einsum("ijk,ijk->ij", delta, delta)

        # Upper triangle only: each unordered pair once, in (i, j) order
        rows, cols = np.nonzero(np.triu(d2 < link2, k=1))
        for i, j in zip(rows.tolist(), cols.tolist()):
            alpha = link_opacity(float(d2[i, j]), link2)
            cv2.line(
                ink,
                _pt(points[i]),
                _pt(points[j]),
                int(round(alpha * 255)),
                1,
                cv2.LINE_AA,
            )
        return int(rows.size)

    def _draw_markers_and_labels(
        self,
        ink: np.ndarray,
        points: Sequence[Point],
        style: OverlayStyle,
        dims: Dimensions,
    ) -> None:
        value = int(round(MARKER_ALPHA * 255))
        text_px = font_height(dims)
        thickness = 1 if text_px < 18 else 2
        scale = cv2.getFontScaleFromHeight(FONT, text_px, thickness)

        for p in points:
            size = marker_size(p.weight)
            cx, cy = _pt(p)
            half = int(round(size / 2))

            if style.marker_shape == MarkerShape.CIRCLE:
                cv2.circle(ink, (cx, cy), half, value, 1, cv2.LINE_AA)
            else:
                cv2.rectangle(ink, (cx - half, cy - half), (cx + half, cy + half), value, 1)

            label = format_label(p)
            label_scale, (text_w, text_h), baseline = fit_label(label, scale, thickness, dims)
            left, top = label_origin(p, size, (text_w, text_h + baseline), dims)
            cv2.putText(
                ink,
                label,
                (left, top + text_h),
                FONT,
                label_scale,
                value,
                thickness,
                cv2.LINE_AA,
            )


def _composite_color(
    target: np.ndarray,
    alpha: np.ndarray,
    color: Tuple[int, int, int],
) -> None:
    """target = target * (1 - alpha) + color * alpha, in place."""
    a = alpha[..., None]
    out = target.astype(np.float32)
    out += (np.asarray(color, dtype=np.float32) - out) * a
    np.clip(out, 0, 255, out=out)
    np.copyto(target, out.astype(np.uint8))
