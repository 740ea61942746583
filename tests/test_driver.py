"""
Pipeline Driver Tests
=====================

End-to-end ticks through the driver.
"""

import asyncio

import numpy as np
import pytest

from blobtrack.config import PipelineConfig, PostEffectStrengths
from blobtrack.models.gate import GateMode, GateReason
from blobtrack.models.geometry import Dimensions, FormatMode
from blobtrack.models.output import DriverState
from blobtrack.pipeline.driver import PipelineDriver, style_from_config


VIEWPORT = Dimensions(width=640, height=360)


def _config(**overrides) -> PipelineConfig:
    values = dict(
        format_mode=FormatMode.LANDSCAPE,
        target_short_side=180,
        post_effect_strengths=PostEffectStrengths.uniform(0.0),
        jitter_enabled=False,
    )
    values.update(overrides)
    return PipelineConfig(**values)


def _run(driver, frames, config, viewport=VIEWPORT):
    async def run():
        return [await driver.tick(frame, viewport, config) for frame in frames]

    return asyncio.run(run())


class TestTick:
    """Tests for the tick sequence."""

    def test_missing_frame_is_skipped(self):
        driver = PipelineDriver()
        result = _run(driver, [None], _config())[0]
        assert result.skipped
        assert result.tick == 1
        assert driver.output is None

    def test_bootstrap_then_running(self, camera_frame):
        driver = PipelineDriver()
        moved = np.roll(camera_frame, 5, axis=1)
        first, second = _run(driver, [camera_frame, moved], _config())

        assert first.state == DriverState.BOOTSTRAPPING
        assert first.points == 0
        assert (first.width, first.height) == (320, 180)

        assert second.state == DriverState.RUNNING
        assert second.candidates > 0
        assert 0 < second.points <= 140
        assert second.stage_errors == 0

    def test_points_capped(self, camera_frame):
        driver = PipelineDriver()
        moved = np.roll(camera_frame, 7, axis=0)
        result = _run(driver, [camera_frame, moved], _config(max_points=12))[1]
        assert result.points <= 12
        assert len(driver.last_points) == result.points

    def test_static_scene_leaves_output_equal_to_source(self, camera_frame):
        """No motion, no effects: Output is the cropped camera frame."""
        driver = PipelineDriver()
        _run(driver, [camera_frame, camera_frame.copy()], _config())
        assert driver.last_result.points == 0
        assert np.array_equal(driver.output, driver.buffers.source)

    def test_output_identity_stable(self, camera_frame):
        driver = PipelineDriver()
        config = _config()
        _run(driver, [camera_frame], config)
        output = driver.output
        _run(driver, [np.roll(camera_frame, 3, axis=1)] * 3, config)
        assert driver.output is output

    def test_viewport_change_replans(self, camera_frame):
        driver = PipelineDriver()
        config = _config(format_mode=FormatMode.AUTO)
        _run(driver, [camera_frame, np.roll(camera_frame, 4, axis=1)], config)
        assert driver.state == DriverState.RUNNING

        result = _run(driver, [camera_frame], config, viewport=Dimensions(width=360, height=640))[0]
        assert result.state == DriverState.BOOTSTRAPPING
        assert result.width < result.height
        assert driver.buffers.generation == 2

    def test_deterministic_without_jitter(self, camera_frame):
        frames = [camera_frame, np.roll(camera_frame, 6, axis=1)]
        a, b = PipelineDriver(), PipelineDriver()
        _run(a, frames, _config())
        _run(b, frames, _config())
        assert a.last_points == b.last_points
        assert np.array_equal(a.output, b.output)


class TestGating:
    """Tests for the gate inside the driver."""

    def test_heuristic_without_motion_hides_overlay(self, camera_frame):
        driver = PipelineDriver()
        config = _config(gate_mode=GateMode.HEURISTIC, gate_throttle_ticks=1)
        results = _run(driver, [camera_frame, np.roll(camera_frame, 5, axis=1)], config)

        # The gate saw density 0 from the bootstrap tick
        assert not results[1].permitted
        assert results[1].gate_reason == GateReason.MOTION_ABSENT
        assert results[1].candidates > 0
        assert results[1].points == 0

    def test_oracle_failure_keeps_overlay(self, camera_frame, failing_detector):
        driver = PipelineDriver(detector=failing_detector)
        config = _config(gate_mode=GateMode.ORACLE, gate_throttle_ticks=1)
        results = _run(driver, [camera_frame, np.roll(camera_frame, 5, axis=1)], config)

        assert all(r.permitted for r in results)
        assert results[1].points > 0
        assert results[1].stage_errors == 0


class TestStageFailures:
    """Tests for stage isolation."""

    def test_overlay_failure_is_counted(self, camera_frame, monkeypatch):
        driver = PipelineDriver()

        def explode(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(driver.renderer, "render", explode)
        results = _run(driver, [camera_frame, np.roll(camera_frame, 5, axis=1)], _config())

        assert results[1].stage_errors == 1
        assert driver.stage_errors == 1
        assert results[1].points > 0

    def test_gate_failure_fails_open_with_reason(self, camera_frame, monkeypatch):
        driver = PipelineDriver()
        config = _config(gate_mode=GateMode.HEURISTIC, gate_throttle_ticks=1)
        first = _run(driver, [camera_frame], config)[0]
        assert first.gate_reason == GateReason.MOTION_ABSENT

        async def explode(*args, **kwargs):
            raise RuntimeError("gate down")

        monkeypatch.setattr(driver.gate, "update", explode)
        second = _run(driver, [np.roll(camera_frame, 5, axis=1)], config)[0]

        assert second.permitted
        assert second.gate_reason == GateReason.DETECTION_FAILED
        assert second.stage_errors == 1
        assert second.points > 0

    def test_bad_frame_does_not_raise(self):
        driver = PipelineDriver()
        bad = np.zeros((10, 10, 3), dtype=np.float64)
        result = _run(driver, [bad], _config())[0]
        assert result.skipped
        assert result.stage_errors == 1


class TestStyle:
    """Tests for style derivation."""

    def test_link_radius_from_atmosphere(self):
        assert style_from_config(_config(atmosphere=0.0)).link_radius == pytest.approx(90.0)

    def test_explicit_link_radius_wins(self):
        assert style_from_config(_config(link_radius=42.0)).link_radius == pytest.approx(42.0)
