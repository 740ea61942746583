"""
Frame Buffers
=============

Owner of the three pixel buffers used by the pipeline.

Buffers:
    - Source:   camera frame, cover-cropped to the output aspect
    - Analysis: small downsampled copy of Source used for motion sampling
    - Output:   Source plus overlay plus post-effects, handed to sinks

Design Rules:
    - This is the ONLY owner of pixel buffers
    - Buffers are reallocated only through allocate()
    - Other components get transient access within a single tick
    - All buffers are uint8 BGR, (H, W, 3)
"""

import logging
from typing import Optional

import cv2
import numpy as np

from blobtrack.models.geometry import CropRect, Dimensions
from blobtrack.render.effects import TrailDecay


logger = logging.getLogger(__name__)


ANALYSIS_WIDTH = 220
ANALYSIS_MIN_HEIGHT = 110


def analysis_dimensions(output: Dimensions) -> Dimensions:
    """Analysis buffer size for a given Output size (fixed width, aspect-following height)."""
    height = max(ANALYSIS_MIN_HEIGHT, round(ANALYSIS_WIDTH * (output.height / output.width)))
    return Dimensions(width=ANALYSIS_WIDTH, height=int(height))


def to_bgr(frame: np.ndarray) -> np.ndarray:
    """
    Normalize a source frame to 3-channel BGR uint8.

    Raises:
        ValueError: If the frame layout is not grayscale, BGR or BGRA
    """
    if frame.dtype != np.uint8:
        raise ValueError(f"Source frame must be uint8, got {frame.dtype}")
    if frame.ndim == 2:
        return cv2.cvtColor(frame, cv2.COLOR_GRAY2BGR)
    if frame.ndim == 3 and frame.shape[2] == 3:
        return frame
    if frame.ndim == 3 and frame.shape[2] == 4:
        return cv2.cvtColor(frame, cv2.COLOR_BGRA2BGR)
    raise ValueError(f"Unsupported source frame shape: {frame.shape}")


class FrameBuffers:
    """
    Source, Analysis and Output buffers sized for the current plan.

    Attributes:
        output_dims: Current Output (and Source) dimensions
        analysis_dims: Current Analysis dimensions
        generation: Incremented on every reallocation
    """

    def __init__(self) -> None:
        self.output_dims: Optional[Dimensions] = None
        self.analysis_dims: Optional[Dimensions] = None
        self.generation: int = 0

        self._source: Optional[np.ndarray] = None
        self._output: Optional[np.ndarray] = None
        self._analysis: Optional[np.ndarray] = None
        self._trail = TrailDecay()

    @property
    def allocated(self) -> bool:
        return self._output is not None

    @property
    def source(self) -> np.ndarray:
        if self._source is None:
            raise RuntimeError("FrameBuffers not allocated")
        return self._source

    @property
    def output(self) -> np.ndarray:
        """The Output surface. Same array object until the next allocate()."""
        if self._output is None:
            raise RuntimeError("FrameBuffers not allocated")
        return self._output

    @property
    def analysis(self) -> Optional[np.ndarray]:
        """Analysis frame from the last refresh_analysis() call."""
        return self._analysis

    def allocate(self, output_dims: Dimensions) -> None:
        """
        (Re)allocate all buffers for new Output dimensions.

        Prior contents are discarded, including any trail history.
        """
        self.output_dims = output_dims
        self.analysis_dims = analysis_dimensions(output_dims)
        self._source = np.zeros((output_dims.height, output_dims.width, 3), dtype=np.uint8)
        self._output = np.zeros_like(self._source)
        self._analysis = None
        self.generation += 1

        logger.info(
            f"Buffers allocated (generation {self.generation}): "
            f"output={output_dims}, analysis={self.analysis_dims}"
        )

    def load_source(self, frame: np.ndarray, crop: CropRect) -> None:
        """
        Cover-crop a source frame into the Source buffer.

        Args:
            frame: Raw source frame (grayscale, BGR or BGRA uint8)
            crop: Rectangle of the frame to scale into Source
        """
        frame = to_bgr(frame)
        rows, cols = crop.to_slices()
        region = frame[rows, cols]
        dims = self.output_dims
        self.source[...] = cv2.resize(
            region,
            (dims.width, dims.height),
            interpolation=cv2.INTER_LINEAR,
        )

    def compose_output(self, trail_decay: bool = False, trail_opacity: float = 0.18) -> None:
        """
        Write the fresh Source into Output.

        With trail decay on, prior Output content is darkened and the
        Source is composited over it instead of replacing it.
        """
        if trail_decay:
            self._trail.compose(self.output, self.source, trail_opacity)
        else:
            np.copyto(self.output, self.source)

    def refresh_analysis(self) -> np.ndarray:
        """
        Downsample Source into a new Analysis frame.

        A fresh array is returned every call, so a caller may retain the
        previous one without it being overwritten.
        """
        dims = self.analysis_dims
        self._analysis = cv2.resize(
            self.source,
            (dims.width, dims.height),
            interpolation=cv2.INTER_AREA,
        )
        return self._analysis
