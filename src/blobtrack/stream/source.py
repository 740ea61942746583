"""
Video Sources
=============

Adapters that hand the pipeline its latest camera frame.

This module provides:
    - VideoSource: Protocol every adapter implements
    - CaptureVideoSource: OpenCV VideoCapture (device index, file or URL)
    - StreamVideoSource: websocket JPEG stream via StreamConsumer
    - create_video_source: Factory driven by SourceConfig

Design Rules:
    - read() returns None when no new frame is available; that is not
      an error and the pipeline simply skips the tick body
    - Blocking OpenCV work runs in a worker thread and is awaited
    - open() raises SourceUnavailable when the source cannot start
"""

import asyncio
import logging
from typing import Optional, Protocol

import cv2
import numpy as np

from blobtrack.config import SourceConfig
from blobtrack.models.geometry import Dimensions
from blobtrack.stream.consumer import StreamConsumer
from blobtrack.stream.image_decoder import ImageDecodeError, decode_frame_bgr
from blobtrack.stream.slot import LatestFrameSlot


logger = logging.getLogger(__name__)


class SourceUnavailable(Exception):
    """Raised when a video source cannot be opened."""
    pass


class VideoSource(Protocol):
    """
    Protocol for frame sources.

    Attributes:
        dimensions: Size of the most recent frame, None before the first
    """

    dimensions: Optional[Dimensions]

    async def open(self) -> None:
        ...

    async def read(self) -> Optional[np.ndarray]:
        """Latest BGR frame, or None when none is available."""
        ...

    async def close(self) -> None:
        ...


class CaptureVideoSource:
    """
    OpenCV capture device, video file or network URL.

    A device string made of digits is treated as a camera index.
    """

    def __init__(self, device: str = "0") -> None:
        self.device = device
        self.dimensions: Optional[Dimensions] = None
        self.frames_read: int = 0
        self.read_failures: int = 0
        self._capture: Optional[cv2.VideoCapture] = None

    @property
    def is_open(self) -> bool:
        return self._capture is not None and self._capture.isOpened()

    def _open_sync(self) -> cv2.VideoCapture:
        target = int(self.device) if self.device.isdigit() else self.device
        capture = cv2.VideoCapture(target)
        if not capture.isOpened():
            capture.release()
            raise SourceUnavailable(f"Cannot open capture device '{self.device}'")
        return capture

    async def open(self) -> None:
        """
        Open the capture.

        Raises:
            SourceUnavailable: If OpenCV cannot open the device
        """
        self._capture = await asyncio.to_thread(self._open_sync)
        logger.info(f"Capture opened: device={self.device}")

    def _read_sync(self) -> Optional[np.ndarray]:
        ok, frame = self._capture.read()
        if not ok or frame is None:
            return None
        return frame

    async def read(self) -> Optional[np.ndarray]:
        if not self.is_open:
            return None

        frame = await asyncio.to_thread(self._read_sync)
        if frame is None:
            self.read_failures += 1
            if self.read_failures == 1 or self.read_failures % 100 == 0:
                logger.warning(f"Capture read returned no frame (failures={self.read_failures})")
            return None

        self.frames_read += 1
        self.dimensions = Dimensions.of(frame)
        return frame

    async def close(self) -> None:
        if self._capture is not None:
            capture, self._capture = self._capture, None
            await asyncio.to_thread(capture.release)
            logger.info(f"Capture closed: device={self.device}")


class StreamVideoSource:
    """
    Websocket JPEG stream source.

    A StreamConsumer task keeps the newest received frame in a
    LatestFrameSlot; read() takes it and decodes it. Corrupt frames
    are dropped and reported as "no frame".
    """

    def __init__(
        self,
        url: str,
        reconnect_backoff_ms: int = 500,
        max_reconnect_attempts: int = 0,
    ) -> None:
        self.url = url
        self.slot = LatestFrameSlot()
        self.consumer = StreamConsumer(
            url=url,
            slot=self.slot,
            reconnect_backoff_ms=reconnect_backoff_ms,
            max_reconnect_attempts=max_reconnect_attempts,
        )
        self.dimensions: Optional[Dimensions] = None
        self.decode_errors: int = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def connected(self) -> bool:
        return self.consumer.connected

    async def open(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self.consumer.run(), name="stream_consumer")
            logger.info(f"Stream source started: {self.url}")

    async def read(self) -> Optional[np.ndarray]:
        encoded = self.slot.take()
        if encoded is None:
            return None

        try:
            frame = await asyncio.to_thread(decode_frame_bgr, encoded)
        except ImageDecodeError as e:
            self.decode_errors += 1
            logger.warning(f"Dropping corrupt frame: {e}")
            return None

        self.dimensions = Dimensions.of(frame)
        return frame

    async def close(self) -> None:
        await self.consumer.stop()
        if self._task is not None:
            try:
                await asyncio.wait_for(self._task, timeout=5.0)
            except asyncio.TimeoutError:
                self._task.cancel()
                try:
                    await self._task
                except asyncio.CancelledError:
                    pass
            self._task = None
        logger.info("Stream source closed")

    def metrics(self) -> dict:
        return {
            "decode_errors": self.decode_errors,
            **self.consumer.metrics(),
            "frames": self.slot.metrics(),
        }


def create_video_source(config: SourceConfig) -> VideoSource:
    """
    Build the configured video source (not yet opened).

    Raises:
        SourceUnavailable: For an unknown source kind
    """
    if config.kind == "capture":
        logger.info(f"Using CaptureVideoSource: device={config.device}")
        return CaptureVideoSource(device=config.device)

    if config.kind == "stream":
        logger.info(f"Using StreamVideoSource: url={config.url}")
        return StreamVideoSource(
            url=config.url,
            reconnect_backoff_ms=config.reconnect_backoff_ms,
            max_reconnect_attempts=config.max_reconnect_attempts,
        )

    raise SourceUnavailable(f"Unknown source kind: {config.kind}")
