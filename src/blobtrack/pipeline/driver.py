"""
Pipeline Driver
===============

Per-tick state machine wiring every stage together.

States:
    BOOTSTRAPPING: No retained analysis frame (start, or just replanned)
    RUNNING:       Motion differencing against the retained frame

Tick Order:
    0. No source frame: return a skipped TickResult
    1. Plan output dimensions; on change reallocate buffers, reset
       the sampler and resize the matrix layer
    2. Cover-crop the frame into Source, compose Output
    3. Presence gate update (throttled)
    4. Refresh Analysis, sample motion (always); when permitted,
       select points and render the overlay
    5. Matrix rain (optional), then post-effects
    6. Return TickResult

Failure Policy:
    Every stage is wrapped. An exception is logged, counted in
    stage_errors and treated as "no result" for that stage. A tick
    never raises. Dimensions captured at tick start hold for the
    whole tick.
"""

import logging
import time
from typing import List, Optional

import numpy as np

from blobtrack.config import PipelineConfig
from blobtrack.frames.aspect import AspectPlanner
from blobtrack.frames.buffers import FrameBuffers
from blobtrack.gate.presence import PresenceGate
from blobtrack.models.gate import GateReason, GateState
from blobtrack.models.geometry import Dimensions
from blobtrack.models.output import DriverState, TickResult
from blobtrack.models.points import Point, SampleResult
from blobtrack.motion.sampler import MotionSampler
from blobtrack.motion.selector import PointSelector, jitter_for, min_distance_for
from blobtrack.perception.detector import DetectorCapability
from blobtrack.render.effects import PostEffectsChain
from blobtrack.render.matrix import MatrixRain
from blobtrack.render.overlay import OverlayRenderer, OverlayStyle, link_radius_for


logger = logging.getLogger(__name__)


SLOW_STAGE_MS = 50.0


def style_from_config(config: PipelineConfig) -> OverlayStyle:
    """Overlay style for a config snapshot."""
    radius = config.link_radius if config.link_radius is not None else link_radius_for(config.atmosphere)
    return OverlayStyle.from_ink(
        config.ink,
        link_radius=radius,
        glow=config.glow,
        marker_shape=config.marker_shape,
    )


class PipelineDriver:
    """
    Runs one frame through the whole pipeline per tick() call.

    Attributes:
        state: Current DriverState
        ticks: Number of tick() calls so far
        stage_errors: Total stage failures since construction
        last_result: TickResult of the most recent tick
        last_points: Points rendered by the most recent tick
    """

    def __init__(
        self,
        detector: Optional[DetectorCapability] = None,
        seed: Optional[int] = None,
    ) -> None:
        self.planner = AspectPlanner()
        self.buffers = FrameBuffers()
        self.sampler = MotionSampler()
        self.selector = PointSelector(seed=seed)
        self.gate = PresenceGate(detector=detector)
        self.renderer = OverlayRenderer()
        self.matrix = MatrixRain(seed=seed)
        self.effects = PostEffectsChain()

        self.state = DriverState.BOOTSTRAPPING
        self.ticks: int = 0
        self.stage_errors: int = 0
        self.last_result: Optional[TickResult] = None
        self.last_points: List[Point] = []

        logger.info(f"PipelineDriver initialized: detector={'yes' if detector else 'no'}, seed={seed}")

    @property
    def output(self) -> Optional[np.ndarray]:
        """Current Output buffer, or None before the first planned tick."""
        return self.buffers.output if self.buffers.allocated else None

    @property
    def gate_state(self) -> GateState:
        return self.gate.state

    def _stage_failed(self, stage: str, error: Exception) -> None:
        self.stage_errors += 1
        logger.error(f"Stage '{stage}' failed (tick={self.ticks}): {type(error).__name__}: {error}")

    def _check_slow(self, stage: str, started: float) -> None:
        elapsed_ms = (time.perf_counter() - started) * 1000.0
        if elapsed_ms > SLOW_STAGE_MS:
            logger.warning(f"Slow stage '{stage}': {elapsed_ms:.1f}ms (tick={self.ticks})")

    def _replan(self, dims: Dimensions) -> None:
        self.buffers.allocate(dims)
        self.sampler.reset()
        self.matrix.resize(dims)
        self.state = DriverState.BOOTSTRAPPING

    async def tick(
        self,
        source_frame: Optional[np.ndarray],
        viewport: Dimensions,
        config: PipelineConfig,
    ) -> TickResult:
        """
        Run one tick.

        Args:
            source_frame: Latest camera frame, or None when none is available
            viewport: Current viewport size
            config: Configuration snapshot for this tick

        Returns:
            TickResult describing the tick
        """
        started = time.perf_counter()
        self.ticks += 1
        errors_before = self.stage_errors

        if source_frame is None:
            dims = self.planner.dimensions
            result = TickResult(
                tick=self.ticks,
                state=self.state,
                skipped=True,
                width=dims.width if dims else 0,
                height=dims.height if dims else 0,
                permitted=self.gate.state.permitted,
                gate_reason=self.gate.state.reason,
            )
            self.last_result = result
            return result

        # 1. Plan
        try:
            source_dims = Dimensions.of(source_frame)
            dims, changed = self.planner.plan(
                config.format_mode,
                viewport,
                config.target_short_side,
                source_dims,
            )
            if changed or not self.buffers.allocated:
                self._replan(dims)
        except Exception as e:
            self._stage_failed("plan", e)
            return self._finish(started, errors_before, skipped=True)

        # 2. Source and Output
        try:
            crop = self.planner.cover_crop(source_dims, dims)
            self.buffers.load_source(source_frame, crop)
            self.buffers.compose_output(config.trail_decay, config.trail_opacity)
        except Exception as e:
            self._stage_failed("compose", e)
            return self._finish(started, errors_before, skipped=True)

        # 3. Gate
        stage_start = time.perf_counter()
        try:
            gate_state = await self.gate.update(config, self.buffers.source, self.sampler.last_density)
        except Exception as e:
            # Fail open: the base visual must never be hidden by a gate fault
            self._stage_failed("gate", e)
            gate_state = self.gate.state
            gate_state.permitted = True
            gate_state.reason = GateReason.DETECTION_FAILED
        self._check_slow("gate", stage_start)

        # 4. Motion and overlay
        sample = SampleResult()
        points: List[Point] = []
        try:
            analysis = self.buffers.refresh_analysis()
            sample = self.sampler.sample(analysis, config.sensitivity)
            if not sample.bootstrap:
                self.state = DriverState.RUNNING
        except Exception as e:
            self._stage_failed("sample", e)

        if gate_state.permitted and sample.candidates:
            try:
                jitter = jitter_for(config.atmosphere) if config.jitter_enabled else 0.0
                points = self.selector.select_frame(
                    sample.candidates,
                    config.max_points,
                    min_distance_for(config.atmosphere),
                    self.buffers.analysis_dims,
                    dims,
                    jitter=jitter,
                )
            except Exception as e:
                self._stage_failed("select", e)
                points = []

        style = style_from_config(config)
        if points:
            stage_start = time.perf_counter()
            try:
                self.renderer.render(self.buffers.output, points, style)
            except Exception as e:
                self._stage_failed("overlay", e)
            self._check_slow("overlay", stage_start)
        self.last_points = points

        # 5. Matrix and post-effects
        if config.matrix:
            try:
                self.matrix.apply(self.buffers.output, style.color)
            except Exception as e:
                self._stage_failed("matrix", e)

        stage_start = time.perf_counter()
        try:
            self.effects.apply(self.buffers.output, config.post_effect_strengths)
        except Exception as e:
            self._stage_failed("effects", e)
        self._check_slow("effects", stage_start)

        return self._finish(
            started,
            errors_before,
            candidates=len(sample.candidates),
            points=len(points),
            motion_density=sample.motion_density,
        )

    def _finish(
        self,
        started: float,
        errors_before: int,
        skipped: bool = False,
        candidates: int = 0,
        points: int = 0,
        motion_density: float = 0.0,
    ) -> TickResult:
        dims = self.buffers.output_dims
        result = TickResult(
            tick=self.ticks,
            state=self.state,
            skipped=skipped,
            width=dims.width if dims else 0,
            height=dims.height if dims else 0,
            candidates=candidates,
            points=points,
            motion_density=motion_density,
            permitted=self.gate.state.permitted,
            gate_reason=self.gate.state.reason,
            stage_errors=self.stage_errors - errors_before,
            duration_ms=(time.perf_counter() - started) * 1000.0,
        )
        self.last_result = result
        logger.debug(f"Tick complete: {result!r}")
        return result
