"""
Stream Ingestion Tests
======================

Frame slot, message parsing, decoding, the websocket consumer and the
video source adapters.
"""

import asyncio
import base64
import json

import cv2
import numpy as np
import pytest
from websockets.asyncio.server import serve

from blobtrack.config import SourceConfig
from blobtrack.stream import (
    CaptureVideoSource,
    EncodedFrame,
    ImageDecodeError,
    LatestFrameSlot,
    SourceUnavailable,
    StreamConsumer,
    StreamVideoSource,
    create_video_source,
    decode_frame_bgr,
)


def _jpeg(image: np.ndarray) -> bytes:
    ok, buf = cv2.imencode(".jpg", image)
    assert ok
    return buf.tobytes()


def _frame(sequence: int, payload: bytes = b"") -> EncodedFrame:
    return EncodedFrame(sequence=sequence, received_at=float(sequence), payload=payload)


class TestLatestFrameSlot:
    """Tests for the newest-frame handoff."""

    def test_newer_frame_supersedes(self):
        slot = LatestFrameSlot()
        for i in range(1, 4):
            slot.offer(_frame(i, b"x"))

        assert slot.take().sequence == 3
        assert slot.superseded == 2
        assert slot.delivered == 1
        assert slot.take() is None

    def test_take_empties_slot(self):
        slot = LatestFrameSlot()
        slot.offer(_frame(1, b"x"))
        assert slot.pending
        slot.take()
        assert not slot.pending
        assert slot.metrics() == {"received": 1, "delivered": 1, "superseded": 0, "pending": False}


class TestParseMessage:
    """Tests for StreamConsumer.parse_message()."""

    def _consumer(self) -> StreamConsumer:
        return StreamConsumer(url="ws://test", slot=LatestFrameSlot())

    def test_binary_message_is_payload(self):
        consumer = self._consumer()
        frame = consumer.parse_message(b"\xff\xd8jpeg")
        assert frame.payload == b"\xff\xd8jpeg"
        assert frame.sequence == 1

    def test_text_message_with_base64_image(self):
        consumer = self._consumer()
        raw = json.dumps({"image": base64.b64encode(b"abc").decode("ascii")})
        assert consumer.parse_message(raw).payload == b"abc"

    def test_sequence_counts_received_frames(self):
        consumer = self._consumer()
        consumer.parse_message(b"a")
        assert consumer.parse_message(b"b").sequence == 2

    @pytest.mark.parametrize(
        "raw",
        [
            "{not json",
            json.dumps({"frame": "abc"}),
            json.dumps({"image": "!!! not base64 !!!"}),
            json.dumps(["image"]),
            b"",
        ],
    )
    def test_malformed_messages_skipped(self, raw):
        consumer = self._consumer()
        assert consumer.parse_message(raw) is None
        assert consumer.parse_errors == 1

    def test_repr_hides_payload(self):
        assert "\\x00" not in repr(_frame(1, b"\x00" * 1000))


class TestImageDecoder:
    """Tests for JPEG decoding."""

    def test_decodes_jpeg(self):
        image = np.full((24, 32, 3), 128, dtype=np.uint8)
        bgr = decode_frame_bgr(_frame(1, _jpeg(image)))
        assert bgr.shape == (24, 32, 3)
        assert bgr.dtype == np.uint8
        assert abs(int(bgr.mean()) - 128) <= 3

    def test_not_a_jpeg(self):
        with pytest.raises(ImageDecodeError):
            decode_frame_bgr(_frame(1, b"hello world"))

    def test_empty_payload(self):
        with pytest.raises(ImageDecodeError):
            decode_frame_bgr(_frame(1, b""))


class TestStreamConsumer:
    """Tests for the websocket connection loop."""

    def test_receives_frames_from_producer(self):
        payloads = [_jpeg(np.full((8, 8, 3), v, dtype=np.uint8)) for v in (20, 200)]

        async def producer(ws):
            for payload in payloads:
                await ws.send(payload)
            await ws.wait_closed()

        async def run():
            slot = LatestFrameSlot()
            async with serve(producer, "127.0.0.1", 0) as server:
                port = server.sockets[0].getsockname()[1]
                consumer = StreamConsumer(url=f"ws://127.0.0.1:{port}", slot=slot)
                task = asyncio.create_task(consumer.run())
                for _ in range(200):
                    if slot.received >= 2:
                        break
                    await asyncio.sleep(0.01)
                connected = consumer.connected
                await consumer.stop()
                await asyncio.wait_for(task, timeout=5.0)
            return slot, consumer, connected

        slot, consumer, connected = asyncio.run(run())
        assert connected
        assert slot.received == 2
        assert slot.take().payload == payloads[1]
        assert not consumer.connected

    def test_gives_up_after_max_attempts(self):
        consumer = StreamConsumer(
            url="ws://127.0.0.1:1/ws",
            slot=LatestFrameSlot(),
            reconnect_backoff_ms=1,
            max_reconnect_attempts=2,
        )
        asyncio.run(asyncio.wait_for(consumer.run(), timeout=10.0))
        assert consumer.reconnects == 2
        assert not consumer.connected

    def test_backoff_starts_at_base(self):
        consumer = StreamConsumer(url="ws://test", slot=LatestFrameSlot(), reconnect_backoff_ms=250)
        assert consumer.backoff_seconds() == pytest.approx(0.25)


class TestStreamVideoSource:
    """Tests for the stream adapter without a network connection."""

    def test_read_returns_newest_decoded_frame(self):
        dark = _jpeg(np.full((16, 16, 3), 10, dtype=np.uint8))
        bright = _jpeg(np.full((16, 24, 3), 240, dtype=np.uint8))

        async def run():
            source = StreamVideoSource(url="ws://test")
            source.slot.offer(_frame(1, dark))
            source.slot.offer(_frame(2, bright))
            return source, await source.read(), await source.read()

        source, frame, empty = asyncio.run(run())
        assert frame.shape == (16, 24, 3)
        assert frame.mean() > 200
        assert empty is None
        assert source.dimensions.width == 24
        assert source.metrics()["frames"]["superseded"] == 1

    def test_corrupt_frame_is_dropped(self):
        async def run():
            source = StreamVideoSource(url="ws://test")
            source.slot.offer(_frame(1, b"hello"))
            return source, await source.read()

        source, frame = asyncio.run(run())
        assert frame is None
        assert source.decode_errors == 1


class TestCreateVideoSource:
    """Tests for the source factory."""

    def test_capture(self):
        source = create_video_source(SourceConfig(kind="capture", device="3"))
        assert isinstance(source, CaptureVideoSource)
        assert source.device == "3"

    def test_stream(self):
        source = create_video_source(SourceConfig(kind="stream", url="ws://example:1/ws"))
        assert isinstance(source, StreamVideoSource)
        assert source.url == "ws://example:1/ws"

    def test_unknown_kind(self):
        with pytest.raises(SourceUnavailable):
            create_video_source(SourceConfig(kind="carrier-pigeon"))

    def test_unopened_capture_reads_nothing(self):
        source = CaptureVideoSource(device="0")
        assert asyncio.run(source.read()) is None
