"""
Frame Buffer Tests
==================

Allocation, source loading, output composition and trail decay.
"""

import numpy as np
import pytest

from blobtrack.frames.aspect import cover_crop
from blobtrack.frames.buffers import FrameBuffers, analysis_dimensions, to_bgr
from blobtrack.models.geometry import Dimensions
from blobtrack.render.effects import TrailDecay


class TestAnalysisDimensions:
    """Tests for the analysis buffer size."""

    def test_fixed_width_following_aspect(self):
        dims = analysis_dimensions(Dimensions(width=1280, height=720))
        assert dims.width == 220
        assert dims.height == 124

    def test_minimum_height(self):
        dims = analysis_dimensions(Dimensions(width=2000, height=200))
        assert dims.height == 110


class TestToBgr:
    """Tests for frame normalization."""

    def test_grayscale_expanded(self):
        out = to_bgr(np.full((4, 5), 7, dtype=np.uint8))
        assert out.shape == (4, 5, 3)
        assert (out == 7).all()

    def test_bgra_dropped_to_bgr(self):
        out = to_bgr(np.zeros((4, 5, 4), dtype=np.uint8))
        assert out.shape == (4, 5, 3)

    def test_rejects_float_frames(self):
        with pytest.raises(ValueError):
            to_bgr(np.zeros((4, 5, 3), dtype=np.float32))


class TestFrameBuffers:
    """Tests for FrameBuffers lifecycle."""

    def test_unallocated_access_raises(self):
        buffers = FrameBuffers()
        assert not buffers.allocated
        with pytest.raises(RuntimeError):
            _ = buffers.output

    def test_allocate_sizes_buffers(self):
        buffers = FrameBuffers()
        buffers.allocate(Dimensions(width=320, height=180))
        assert buffers.source.shape == (180, 320, 3)
        assert buffers.output.shape == (180, 320, 3)
        assert buffers.generation == 1

    def test_output_identity_stable_between_ticks(self, camera_frame):
        """The Output array object does not change while dimensions are stable."""
        buffers = FrameBuffers()
        dims = Dimensions(width=320, height=180)
        buffers.allocate(dims)
        crop = cover_crop(Dimensions.of(camera_frame), dims)

        first = buffers.output
        for _ in range(3):
            buffers.load_source(camera_frame, crop)
            buffers.compose_output()
        assert buffers.output is first

    def test_compose_copies_source(self, camera_frame):
        buffers = FrameBuffers()
        dims = Dimensions(width=320, height=180)
        buffers.allocate(dims)
        buffers.load_source(camera_frame, cover_crop(Dimensions.of(camera_frame), dims))
        buffers.compose_output()
        assert np.array_equal(buffers.output, buffers.source)

    def test_refresh_analysis_returns_new_array(self, camera_frame):
        buffers = FrameBuffers()
        dims = Dimensions(width=320, height=180)
        buffers.allocate(dims)
        buffers.load_source(camera_frame, cover_crop(Dimensions.of(camera_frame), dims))

        a = buffers.refresh_analysis()
        b = buffers.refresh_analysis()
        assert a is not b
        assert a.shape == (buffers.analysis_dims.height, 220, 3)


class TestTrailDecay:
    """Tests for darken-then-lighten compositing."""

    def test_bright_history_fades(self):
        output = np.full((2, 2, 3), 200, dtype=np.uint8)
        source = np.zeros((2, 2, 3), dtype=np.uint8)
        TrailDecay().compose(output, source, 0.5)
        assert (output == 100).all()

    def test_bright_source_wins(self):
        output = np.full((2, 2, 3), 50, dtype=np.uint8)
        source = np.full((2, 2, 3), 180, dtype=np.uint8)
        TrailDecay().compose(output, source, 0.18)
        assert (output == 180).all()

    def test_trail_through_buffers(self):
        buffers = FrameBuffers()
        buffers.allocate(Dimensions(width=8, height=8))
        buffers.output[...] = 255
        buffers.compose_output(trail_decay=True, trail_opacity=0.2)
        assert (buffers.output == 204).all()

    def test_shape_mismatch_rejected(self):
        with pytest.raises(ValueError):
            TrailDecay().compose(
                np.zeros((2, 2, 3), dtype=np.uint8),
                np.zeros((3, 3, 3), dtype=np.uint8),
                0.2,
            )
