"""
Frames Module
=============

Output framing and buffer ownership.

This module provides:
    - AspectPlanner: format mode and viewport to Output dimensions
    - cover_crop: centered crop rectangle for distortion-free fill
    - FrameBuffers: Source / Analysis / Output buffer owner
"""

from blobtrack.frames.aspect import (
    AspectPlanner,
    aspect_ratio,
    cover_crop,
    resolve_mode,
)
from blobtrack.frames.buffers import (
    FrameBuffers,
    analysis_dimensions,
    to_bgr,
)

__all__ = [
    # Planning
    "AspectPlanner",
    "aspect_ratio",
    "cover_crop",
    "resolve_mode",
    # Buffers
    "FrameBuffers",
    "analysis_dimensions",
    "to_bgr",
]
