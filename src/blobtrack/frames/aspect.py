"""
Aspect Planner
==============

Derives the Output buffer size from the requested format and the
viewport, and the cover-crop rectangle used to fill it from the source.

Aspect Ratios:
    SQUARE    -> 1
    LANDSCAPE -> 16 / 9
    PORTRAIT  -> clamp(viewport_w / viewport_h, 9 / 19.5, 9 / 14)
    AUTO      -> LANDSCAPE when viewport_w > viewport_h, else PORTRAIT

Sizing:
    ratio >= 1: height = short_side, width = round(height * ratio)
    ratio <  1: width = short_side, height = round(width / ratio)

Cover Crop:
    The largest centered rectangle of the source with the target's
    aspect ratio. Overflow on one axis is discarded; the image is
    never letterboxed and never stretched.
"""

import logging
from typing import Optional, Tuple

from blobtrack.models.geometry import CropRect, Dimensions, FormatMode


logger = logging.getLogger(__name__)


LANDSCAPE_RATIO = 16 / 9
PORTRAIT_MIN_RATIO = 9 / 19.5
PORTRAIT_MAX_RATIO = 9 / 14


def resolve_mode(format_mode: FormatMode, viewport: Dimensions) -> FormatMode:
    """Resolve AUTO to a concrete orientation for this viewport."""
    if format_mode == FormatMode.AUTO:
        return FormatMode.LANDSCAPE if viewport.width > viewport.height else FormatMode.PORTRAIT
    return format_mode


def aspect_ratio(mode: FormatMode, viewport: Dimensions) -> float:
    """
    Aspect ratio (width / height) for a format mode.

    Args:
        mode: Format mode (AUTO is resolved first)
        viewport: Current viewport size

    Returns:
        Positive aspect ratio
    """
    mode = resolve_mode(mode, viewport)
    if mode == FormatMode.SQUARE:
        return 1.0
    if mode == FormatMode.LANDSCAPE:
        return LANDSCAPE_RATIO
    ratio = viewport.width / viewport.height
    return min(max(ratio, PORTRAIT_MIN_RATIO), PORTRAIT_MAX_RATIO)


def cover_crop(source: Dimensions, target: Dimensions) -> CropRect:
    """
    Largest centered source rectangle matching the target aspect ratio.

    Args:
        source: Source image size
        target: Destination buffer size

    Returns:
        CropRect in source pixel space
    """
    src_ratio = source.aspect
    dst_ratio = target.aspect

    if src_ratio > dst_ratio:
        # Source is wider: keep full height, trim the sides
        height = float(source.height)
        width = height * dst_ratio
    else:
        width = float(source.width)
        height = width / dst_ratio

    return CropRect(
        x=(source.width - width) / 2,
        y=(source.height - height) / 2,
        width=width,
        height=height,
    )


class AspectPlanner:
    """
    Resolves output dimensions and detects when they must be recomputed.

    The planner remembers the key that produced the last plan: the
    resolved mode, the requested mode, the short side, the viewport and
    the source dimensions. Any difference means the buffers have to be
    reallocated and the retained analysis frame discarded.
    """

    def __init__(self) -> None:
        self._last_key: Optional[tuple] = None
        self._last_dims: Optional[Dimensions] = None
        self.replan_count: int = 0

    @property
    def dimensions(self) -> Optional[Dimensions]:
        """Output dimensions from the last plan."""
        return self._last_dims

    def resolve(
        self,
        format_mode: FormatMode,
        viewport: Dimensions,
        requested_short_side: int,
    ) -> Dimensions:
        """
        Compute Output buffer dimensions.

        Args:
            format_mode: Requested format
            viewport: Current viewport size
            requested_short_side: Short side in pixels (> 0)

        Returns:
            Output dimensions

        Raises:
            ValueError: If requested_short_side is not positive
        """
        if requested_short_side <= 0:
            raise ValueError(f"requested_short_side must be > 0, got {requested_short_side}")

        ratio = aspect_ratio(format_mode, viewport)
        if ratio >= 1:
            height = requested_short_side
            width = round(height * ratio)
        else:
            width = requested_short_side
            height = round(width / ratio)
        return Dimensions(width=int(width), height=int(height))

    def cover_crop(self, source: Dimensions, target: Dimensions) -> CropRect:
        return cover_crop(source, target)

    def plan(
        self,
        format_mode: FormatMode,
        viewport: Dimensions,
        requested_short_side: int,
        source: Dimensions,
    ) -> Tuple[Dimensions, bool]:
        """
        Resolve dimensions, reporting whether any driving input changed.

        Returns:
            Tuple of (output_dimensions, changed)
        """
        key = (
            resolve_mode(format_mode, viewport),
            format_mode,
            requested_short_side,
            viewport,
            source,
        )
        if key == self._last_key and self._last_dims is not None:
            return self._last_dims, False

        dims = self.resolve(format_mode, viewport, requested_short_side)
        self._last_key = key
        self._last_dims = dims
        self.replan_count += 1

        logger.info(
            f"Output planned: mode={key[0].value} (requested {format_mode.value}), "
            f"output={dims}, viewport={viewport}, source={source}"
        )
        return dims, True

    def invalidate(self) -> None:
        """Force the next plan() to report a change."""
        self._last_key = None
