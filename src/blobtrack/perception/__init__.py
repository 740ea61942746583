"""
Perception Module
=================

Pluggable presence detection for the gate's ORACLE mode.

Components:
    - DetectorCapability: Protocol for async region detectors
    - HaarFaceDetector: OpenCV Haar-cascade face detector
    - load_detector: Boot-time capability check (None when unavailable)

Design Philosophy:
    Detection is a black box. The gate consumes only "regions found or
    not", and any failure degrades to permitting the overlay.
"""

from blobtrack.perception.detector import (
    CapabilityUnavailable,
    DetectorCapability,
    HaarFaceDetector,
    TransientDetectionFailure,
    load_detector,
)

__all__ = [
    "DetectorCapability",
    "HaarFaceDetector",
    "load_detector",
    "CapabilityUnavailable",
    "TransientDetectionFailure",
]
