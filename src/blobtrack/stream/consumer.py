"""
Stream Consumer
===============

Websocket client that feeds camera frames into a LatestFrameSlot.

Connection Policy:
    - Reconnect after any connection loss
    - Backoff starts at reconnect_backoff_ms and doubles per failed
      attempt up to MAX_BACKOFF_FACTOR times the base; a successful
      connection resets it
    - max_reconnect_attempts > 0 bounds consecutive failures

Frames are not decoded here. Malformed messages are counted and
skipped; the connection stays up.
"""

import asyncio
import base64
import binascii
import json
import logging
import time
from typing import Optional, Union

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import WebSocketException

from blobtrack.stream.frame import EncodedFrame
from blobtrack.stream.slot import LatestFrameSlot


logger = logging.getLogger(__name__)


MAX_BACKOFF_FACTOR = 8


class StreamConsumer:
    """
    Websocket consumer for JPEG camera frames.

    Attributes:
        url: Producer websocket URL
        slot: Destination for received frames
        connected: Whether a connection is currently up
        reconnects: Reconnection attempts so far
        parse_errors: Messages that carried no usable JPEG payload
    """

    def __init__(
        self,
        url: str,
        slot: LatestFrameSlot,
        reconnect_backoff_ms: int = 500,
        max_reconnect_attempts: int = 0,
    ) -> None:
        self.url = url
        self.slot = slot
        self.reconnect_backoff_ms = reconnect_backoff_ms
        self.max_reconnect_attempts = max_reconnect_attempts

        self.connected: bool = False
        self.reconnects: int = 0
        self.parse_errors: int = 0
        self._sequence: int = 0
        self._failures: int = 0
        self._websocket: Optional[ClientConnection] = None
        self._stop_event = asyncio.Event()

    def backoff_seconds(self) -> float:
        """Delay before the next reconnect attempt."""
        factor = min(2 ** max(self._failures - 1, 0), MAX_BACKOFF_FACTOR)
        return self.reconnect_backoff_ms * factor / 1000.0

    async def run(self) -> None:
        """Consume frames until stop() is called or attempts run out."""
        self._stop_event.clear()
        logger.info(f"StreamConsumer connecting to {self.url}")

        while not self._stop_event.is_set():
            try:
                await self._consume()
            except (OSError, WebSocketException, asyncio.TimeoutError) as e:
                logger.warning(f"Stream connection lost: {type(e).__name__}: {e}")
            if self._stop_event.is_set():
                break

            self._failures += 1
            if 0 < self.max_reconnect_attempts < self._failures:
                logger.error(f"Giving up on {self.url} after {self.max_reconnect_attempts} attempts")
                break

            delay = self.backoff_seconds()
            self.reconnects += 1
            logger.info(f"Reconnecting in {delay:.1f}s (attempt {self.reconnects})")
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass

        logger.info("StreamConsumer stopped")

    async def stop(self) -> None:
        self._stop_event.set()
        if self._websocket is not None:
            await self._websocket.close()

    async def _consume(self) -> None:
        async with connect(self.url, open_timeout=5, max_size=None) as ws:
            self._websocket = ws
            self.connected = True
            self._failures = 0
            logger.info(f"Connected to frame producer: {self.url}")
            try:
                async for message in ws:
                    frame = self.parse_message(message)
                    if frame is not None:
                        self.slot.offer(frame)
            finally:
                self.connected = False
                self._websocket = None

    def parse_message(self, raw: Union[str, bytes]) -> Optional[EncodedFrame]:
        """
        Extract the JPEG payload from one message.

        Returns:
            EncodedFrame, or None when the message carries no payload
        """
        if isinstance(raw, bytes):
            payload = raw
        else:
            try:
                payload = base64.b64decode(json.loads(raw)["image"], validate=True)
            except (ValueError, KeyError, TypeError, binascii.Error) as e:
                self.parse_errors += 1
                logger.warning(f"Skipping malformed text frame: {type(e).__name__}: {e}")
                return None

        if not payload:
            self.parse_errors += 1
            logger.warning("Skipping empty frame")
            return None

        self._sequence += 1
        return EncodedFrame(
            sequence=self._sequence,
            received_at=time.monotonic(),
            payload=payload,
        )

    def metrics(self) -> dict:
        return {
            "connected": self.connected,
            "reconnects": self.reconnects,
            "parse_errors": self.parse_errors,
        }
