"""
Stream Module
=============

Video ingestion for the pipeline.

This module provides:
    - EncodedFrame: A received JPEG frame, still compressed
    - LatestFrameSlot: Newest-frame handoff between consumer and pipeline
    - StreamConsumer: Websocket client with reconnect backoff
    - decode_frame_bgr: JPEG to BGR decoding
    - VideoSource adapters: CaptureVideoSource, StreamVideoSource

Example:
    from blobtrack.stream import create_video_source

    source = create_video_source(settings.source)
    await source.open()
    frame = await source.read()
"""

from blobtrack.stream.frame import EncodedFrame
from blobtrack.stream.slot import LatestFrameSlot
from blobtrack.stream.consumer import StreamConsumer
from blobtrack.stream.image_decoder import ImageDecodeError, decode_frame_bgr
from blobtrack.stream.source import (
    CaptureVideoSource,
    SourceUnavailable,
    StreamVideoSource,
    VideoSource,
    create_video_source,
)


__all__ = [
    "EncodedFrame",
    "LatestFrameSlot",
    "StreamConsumer",
    "ImageDecodeError",
    "decode_frame_bgr",
    "VideoSource",
    "CaptureVideoSource",
    "StreamVideoSource",
    "SourceUnavailable",
    "create_video_source",
]
