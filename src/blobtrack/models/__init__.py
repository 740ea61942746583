"""
Data Models
===========

Typed records shared across the BlobTrack pipeline.

Models:
    Geometry:
        - FormatMode: Requested output format (auto/portrait/landscape/square)
        - Dimensions: Pixel surface size
        - CropRect: Cover-crop rectangle in source space
        - Region: Detector output rectangle

    Points:
        - Point: Point of interest (x, y, weight)
        - PointSet: Ordered selected points
        - SampleResult: Motion sampler output

    Gate:
        - GateMode, GateReason, GateState

    Output:
        - DriverState, TickResult: Per-tick driver record
        - TickReport: API contract for /output

    Style:
        - Ink, MarkerShape
"""

from blobtrack.models.geometry import CropRect, Dimensions, FormatMode, Region
from blobtrack.models.points import Point, PointSet, SampleResult
from blobtrack.models.gate import GateMode, GateReason, GateState
from blobtrack.models.output import DriverState, TickReport, TickResult
from blobtrack.models.style import Ink, MarkerShape

__all__ = [
    # Geometry
    "FormatMode",
    "Dimensions",
    "CropRect",
    "Region",
    # Points
    "Point",
    "PointSet",
    "SampleResult",
    # Gate
    "GateMode",
    "GateReason",
    "GateState",
    # Output
    "DriverState",
    "TickResult",
    "TickReport",
    # Style
    "Ink",
    "MarkerShape",
]
