"""
Presence Detector
=================

Optional detector capability consulted by the presence gate's ORACLE mode.

This module provides:
    - DetectorCapability: Protocol for async region detectors
    - HaarFaceDetector: OpenCV Haar-cascade frontal face detector
    - load_detector: Boot-time capability check

Design Rules:
    - Capability presence is decided at boot, not by configuration
    - A missing capability is never fatal; the gate fails open
    - Detection runs in a worker thread and is awaited by the caller
"""

import asyncio
import logging
from typing import List, Optional, Protocol

import cv2
import numpy as np

from blobtrack.models.geometry import Region


logger = logging.getLogger(__name__)


class CapabilityUnavailable(Exception):
    """Raised when a detector backend cannot be constructed on this host."""
    pass


class TransientDetectionFailure(Exception):
    """Raised when a single detection call fails or times out."""
    pass


class DetectorCapability(Protocol):
    """
    Protocol for presence detectors.

    Implementations return the regions found in a BGR image.
    They may raise; callers treat any failure as fail-open.
    """

    async def detect(self, image: np.ndarray) -> List[Region]:
        """
        Detect regions in an image.

        Args:
            image: BGR frame (H, W, 3), uint8

        Returns:
            Detected regions in image pixel coordinates
        """
        ...


class HaarFaceDetector:
    """
    Frontal face detector backed by OpenCV's bundled Haar cascade.

    Attributes:
        scale_factor: Image pyramid step between scans
        min_neighbors: Neighbouring detections required to keep a face
        min_size: Smallest face edge in pixels
        max_faces: Maximum regions returned per call (largest first)
    """

    CASCADE_FILE = "haarcascade_frontalface_default.xml"

    def __init__(
        self,
        scale_factor: float = 1.1,
        min_neighbors: int = 5,
        min_size: int = 40,
        max_faces: int = 1,
        cascade_path: Optional[str] = None,
    ) -> None:
        """
        Load the cascade.

        Raises:
            CapabilityUnavailable: If the build lacks cascade support or the
                cascade file is missing or empty
        """
        self.scale_factor = scale_factor
        self.min_neighbors = min_neighbors
        self.min_size = min_size
        self.max_faces = max_faces
        self.call_count: int = 0

        if cascade_path is None:
            data_dir = getattr(getattr(cv2, "data", None), "haarcascades", None)
            if not data_dir:
                raise CapabilityUnavailable("OpenCV build ships no Haar cascade data")
            cascade_path = data_dir + self.CASCADE_FILE

        classifier = getattr(cv2, "CascadeClassifier", None)
        if classifier is None:
            raise CapabilityUnavailable("OpenCV build has no CascadeClassifier")

        try:
            self._cascade = classifier(cascade_path)
        except cv2.error as e:
            raise CapabilityUnavailable(f"Failed to load Haar cascade: {e}") from e
        if self._cascade.empty():
            raise CapabilityUnavailable(f"Failed to load Haar cascade: {cascade_path}")

        logger.info(
            f"HaarFaceDetector initialized: scale_factor={scale_factor}, "
            f"min_neighbors={min_neighbors}, min_size={min_size}px"
        )

    def _detect_sync(self, image: np.ndarray) -> List[Region]:
        gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY) if image.ndim == 3 else image
        gray = cv2.equalizeHist(gray)
        faces = self._cascade.detectMultiScale(
            gray,
            scaleFactor=self.scale_factor,
            minNeighbors=self.min_neighbors,
            minSize=(self.min_size, self.min_size),
        )
        regions = [
            Region(x=float(x), y=float(y), width=float(w), height=float(h))
            for (x, y, w, h) in faces
        ]
        regions.sort(key=lambda r: r.area, reverse=True)
        return regions[: self.max_faces]

    async def detect(self, image: np.ndarray) -> List[Region]:
        """Run the cascade in a worker thread."""
        self.call_count += 1
        # Copy so the worker never sees the next tick's writes
        return await asyncio.to_thread(self._detect_sync, image.copy())


def load_detector(
    backend: str = "haar",
    scale_factor: float = 1.1,
    min_neighbors: int = 5,
    min_size: int = 40,
    max_faces: int = 1,
) -> Optional[DetectorCapability]:
    """
    Boot-time capability check.

    Returns:
        A ready detector, or None when the backend is disabled or
        unavailable. Unavailability is logged once here.
    """
    if backend == "none":
        logger.info("Presence detector disabled by configuration")
        return None

    if backend != "haar":
        logger.warning(f"Unknown detector backend '{backend}', oracle gate will fail open")
        return None

    try:
        return HaarFaceDetector(
            scale_factor=scale_factor,
            min_neighbors=min_neighbors,
            min_size=min_size,
            max_faces=max_faces,
        )
    except (CapabilityUnavailable, AttributeError, cv2.error) as e:
        logger.warning(f"Presence detector unavailable, oracle gate will fail open: {e}")
        return None
