"""
BlobTrack HUD
=============

Real-time motion-point overlay for live camera frames.

Each tick a frame is cover-cropped to the chosen output format, compared
against the previous frame on a coarse luminance grid, and the strongest
changes are thinned into a point set. Points are drawn as linked,
labelled markers (optionally gated on presence) and the result goes
through a small chain of post-effects.

Components:
    - frames: output planning and buffer ownership
    - motion: luminance-difference sampling and point selection
    - gate: OFF / ORACLE / HEURISTIC presence gate
    - perception: optional face detector for the oracle gate
    - render: overlay, matrix rain, post-effects, display fit
    - pipeline: per-tick driver, scheduler and sinks
    - stream: capture and websocket frame sources

Example:
    from blobtrack.config import settings

    # The service is started via the FastAPI application
    # See main.py for the entry point
"""

__version__ = "0.1.0"
__author__ = "BlobTrack Project"

__all__ = [
    "__version__",
]
