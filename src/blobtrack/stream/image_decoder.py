"""
Image Decoder
=============

Decodes received JPEG frames into BGR matrices.

Design Rules:
    - This is the ONLY place that decodes stream images
    - Validates shape and dtype
    - Fails fast on corrupt frames with ImageDecodeError
"""

import logging

import cv2
import numpy as np

from blobtrack.stream.frame import EncodedFrame


logger = logging.getLogger(__name__)


class ImageDecodeError(Exception):
    """Raised when a stream frame cannot be decoded."""
    pass


def decode_frame_bgr(frame: EncodedFrame) -> np.ndarray:
    """
    Decode a JPEG frame to BGR.

    Args:
        frame: Received frame holding JPEG bytes

    Returns:
        BGR image as np.ndarray (H, W, 3), dtype=uint8

    Raises:
        ImageDecodeError: If decoding fails or the image is invalid
    """
    if not frame.payload:
        raise ImageDecodeError(f"Empty payload for frame {frame.sequence}")

    buffer = np.frombuffer(frame.payload, np.uint8)
    try:
        bgr = cv2.imdecode(buffer, cv2.IMREAD_COLOR)
    except cv2.error as e:
        raise ImageDecodeError(f"cv2.imdecode failed for frame {frame.sequence}: {e}") from e

    if bgr is None:
        raise ImageDecodeError(f"Frame {frame.sequence} is not a decodable image")

    if bgr.ndim != 3 or bgr.shape[2] != 3 or bgr.dtype != np.uint8:
        raise ImageDecodeError(
            f"Unexpected image layout for frame {frame.sequence}: {bgr.shape} {bgr.dtype}"
        )

    return bgr
