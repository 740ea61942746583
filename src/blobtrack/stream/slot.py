"""
Latest Frame Slot
=================

Single-frame handoff between the websocket consumer and the pipeline.

The pipeline only ever renders the newest camera frame, so the slot
holds at most one. A frame that arrives before the previous one was
taken replaces it and is counted as superseded.
"""

import logging
from typing import Optional

from blobtrack.stream.frame import EncodedFrame


logger = logging.getLogger(__name__)


class LatestFrameSlot:
    """
    Holder of the newest undelivered frame.

    Both sides run on the same event loop, so no locking is needed.

    Attributes:
        received: Frames offered to the slot
        delivered: Frames handed to the reader
        superseded: Frames replaced before anyone took them
    """

    def __init__(self) -> None:
        self._frame: Optional[EncodedFrame] = None
        self.received: int = 0
        self.delivered: int = 0
        self.superseded: int = 0

    @property
    def pending(self) -> bool:
        return self._frame is not None

    def offer(self, frame: EncodedFrame) -> None:
        if self._frame is not None:
            self.superseded += 1
        self._frame = frame
        self.received += 1

    def take(self) -> Optional[EncodedFrame]:
        """Newest frame, or None when nothing arrived since the last take."""
        frame, self._frame = self._frame, None
        if frame is not None:
            self.delivered += 1
        return frame

    def metrics(self) -> dict:
        return {
            "received": self.received,
            "delivered": self.delivered,
            "superseded": self.superseded,
            "pending": self.pending,
        }
