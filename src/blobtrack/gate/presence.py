"""
Presence Gate
=============

Decides, per frame, whether the overlay may be rendered.

Modes:
    OFF:       Always permitted; hold reset to 0
    ORACLE:    Ask the detector capability for regions
    HEURISTIC: motion_density > heuristic_threshold

Evaluation Rules:
    1. Throttle: evaluate only every gate_throttle_ticks ticks;
       the previous decision holds in between
    2. Hold: while hold_frames_remaining > 0 an evaluation just
       decrements it and stays permitted (no detector call)
    3. Positive signal: permitted, hold = oracle_hold / heuristic_hold
    4. Negative signal (hold exhausted): not permitted

Failure Policy:
    ORACLE fails OPEN. A missing capability, a timeout or an exception
    from the detector all yield permitted=True for that evaluation.
    A failed check must never hide the base visual experience.
"""

import asyncio
import logging
from typing import List, Optional

import numpy as np

from blobtrack.config import PipelineConfig
from blobtrack.models.gate import GateMode, GateReason, GateState
from blobtrack.models.geometry import Region
from blobtrack.perception.detector import DetectorCapability, TransientDetectionFailure


logger = logging.getLogger(__name__)


class PresenceGate:
    """
    Throttled presence gate with hysteresis hold and fail-open oracle.

    Attributes:
        state: Current GateState (the only gate state kept across ticks)
        detector: Optional detector capability for ORACLE mode
        evaluations: Number of evaluations performed
        detection_failures: Number of fail-open oracle evaluations
    """

    def __init__(self, detector: Optional[DetectorCapability] = None) -> None:
        self.detector = detector
        self.state = GateState()
        self.evaluations: int = 0
        self.detection_failures: int = 0

        self._ticks: int = 0
        self._unavailable_logged: bool = False

        logger.info(
            f"PresenceGate initialized: detector="
            f"{type(detector).__name__ if detector is not None else 'none'}"
        )

    def _disable(self) -> GateState:
        self.state.permitted = True
        self.state.hold_frames_remaining = 0
        self.state.reason = GateReason.DISABLED
        return self.state

    async def update(
        self,
        config: PipelineConfig,
        image: Optional[np.ndarray],
        motion_density: float,
    ) -> GateState:
        """
        Per-tick entry point. Evaluates on throttle boundaries only.

        Args:
            config: Active configuration snapshot
            image: Frame handed to the detector in ORACLE mode
            motion_density: Latest motion density for HEURISTIC mode

        Returns:
            The gate state in force for this tick
        """
        if config.gate_mode == GateMode.OFF:
            return self._disable()

        if self.state.reason == GateReason.DISABLED:
            # Just enabled: keep permitting until the first evaluation
            self.state.reason = GateReason.THROTTLED

        self._ticks += 1
        if self._ticks % config.gate_throttle_ticks != 0:
            return self.state

        return await self.evaluate(config, image, motion_density)

    async def evaluate(
        self,
        config: PipelineConfig,
        image: Optional[np.ndarray],
        motion_density: float,
    ) -> GateState:
        """
        Run one unthrottled evaluation.

        Returns:
            The updated gate state
        """
        if config.gate_mode == GateMode.OFF:
            return self._disable()

        self.evaluations += 1

        if self.state.hold_frames_remaining > 0:
            self.state.hold_frames_remaining -= 1
            self.state.permitted = True
            self.state.reason = GateReason.HOLD
            return self.state

        if config.gate_mode == GateMode.ORACLE:
            await self._evaluate_oracle(config, image)
        else:
            self._evaluate_heuristic(config, motion_density)

        return self.state

    def _evaluate_heuristic(self, config: PipelineConfig, motion_density: float) -> None:
        if motion_density > config.heuristic_threshold:
            self.state.permitted = True
            self.state.hold_frames_remaining = config.heuristic_hold
            self.state.reason = GateReason.MOTION_PRESENT
        else:
            self.state.permitted = False
            self.state.reason = GateReason.MOTION_ABSENT

    async def _evaluate_oracle(self, config: PipelineConfig, image: Optional[np.ndarray]) -> None:
        if self.detector is None or image is None:
            if not self._unavailable_logged:
                logger.warning("Oracle gate has no detector capability, failing open")
                self._unavailable_logged = True
            self.state.permitted = True
            self.state.reason = GateReason.CAPABILITY_UNAVAILABLE
            return

        try:
            regions = await self._call_detector(image, config.oracle_timeout_seconds)
        except TransientDetectionFailure as e:
            self.detection_failures += 1
            logger.warning(f"Detection failed, failing open: {e}")
            self.state.permitted = True
            self.state.reason = GateReason.DETECTION_FAILED
            return

        if regions:
            self.state.permitted = True
            self.state.hold_frames_remaining = config.oracle_hold
            self.state.reason = GateReason.DETECTED
        else:
            self.state.permitted = False
            self.state.reason = GateReason.NOT_DETECTED

    async def _call_detector(self, image: np.ndarray, timeout: float) -> List[Region]:
        """
        Await the detector with a bounded timeout.

        Raises:
            TransientDetectionFailure: On timeout or any detector error
        """
        try:
            return await asyncio.wait_for(self.detector.detect(image), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise TransientDetectionFailure(f"detector timed out after {timeout:.2f}s") from e
        except Exception as e:
            raise TransientDetectionFailure(f"{type(e).__name__}: {e}") from e
