"""
Output Sinks
============

Consumers of the finished Output buffer at the display/export boundary.

This module provides:
    - OutputSink: Protocol for sinks
    - WindowSink: OpenCV preview window with letterboxed fit

Sinks receive the driver's Output buffer directly. It is overwritten
by the next tick, so a sink that retains pixels must copy them.
"""

import logging
from typing import Optional, Protocol

import cv2
import numpy as np

from blobtrack.models.geometry import Dimensions
from blobtrack.models.output import TickResult
from blobtrack.render.display import fit_to_screen


logger = logging.getLogger(__name__)


class OutputSink(Protocol):
    """A destination for finished frames."""

    def publish(self, output: np.ndarray, result: TickResult) -> None:
        ...

    def close(self) -> None:
        ...


class WindowSink:
    """
    OpenCV preview window.

    The Output buffer is contain-fitted onto a black surface of the
    configured screen size with nearest-neighbour scaling.
    """

    def __init__(self, window_name: str = "BlobTrack HUD", screen: Optional[Dimensions] = None) -> None:
        self.window_name = window_name
        self.screen = screen or Dimensions(width=1280, height=720)
        self._canvas: Optional[np.ndarray] = None
        self._opened = False

    def publish(self, output: np.ndarray, result: TickResult) -> None:
        if not self._opened:
            cv2.namedWindow(self.window_name, cv2.WINDOW_NORMAL)
            cv2.resizeWindow(self.window_name, self.screen.width, self.screen.height)
            self._opened = True
            logger.info(f"Preview window opened: {self.window_name} ({self.screen})")

        self._canvas = fit_to_screen(output, self.screen, out=self._canvas)
        cv2.imshow(self.window_name, self._canvas)
        cv2.waitKey(1)

    def close(self) -> None:
        if self._opened:
            cv2.destroyWindow(self.window_name)
            self._opened = False
