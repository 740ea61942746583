"""
Tick Output Models
==================

This module defines what one pipeline tick reports back to its caller.

Two tiers:
    1. TickResult: Internal per-tick record produced by PipelineDriver
    2. TickReport: Pydantic contract served by the API

Output Contract:
    {
        "tick": 1234,
        "state": "RUNNING",
        "skipped": false,
        "output": {"width": 1280, "height": 720},
        "candidates": 412,
        "points": 140,
        "motion_density": 0.061,
        "gate": {"permitted": true, "hold_frames_remaining": 7, "reason": "HOLD"},
        "stage_errors": 0,
        "duration_ms": 9.4
    }

Design Rules:
    - The pixel buffer itself is never part of this contract
    - All fields are derived from a single completed tick
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from blobtrack.models.gate import GateReason


class DriverState(str, Enum):
    """
    PipelineDriver lifecycle states.

    Attributes:
        BOOTSTRAPPING: No previous analysis frame retained yet
        RUNNING: Steady state, motion differencing active
    """

    BOOTSTRAPPING = "BOOTSTRAPPING"
    RUNNING = "RUNNING"


@dataclass(frozen=True, slots=True)
class TickResult:
    """
    Record of one completed tick.

    Attributes:
        tick: Monotonic tick counter (1-based)
        state: Driver state after the tick
        skipped: True when no source frame was available
        width: Output buffer width (0 when skipped before first plan)
        height: Output buffer height
        candidates: Unthinned motion candidates this tick
        points: Points rendered this tick
        motion_density: Fraction of sampled cells above threshold
        permitted: Gate decision in force for this tick
        gate_reason: Reason attached to the gate decision
        stage_errors: Number of stages that failed and were skipped
        duration_ms: Wall time spent in the tick
    """

    tick: int
    state: DriverState
    skipped: bool = False
    width: int = 0
    height: int = 0
    candidates: int = 0
    points: int = 0
    motion_density: float = 0.0
    permitted: bool = True
    gate_reason: GateReason = GateReason.DISABLED
    stage_errors: int = 0
    duration_ms: float = 0.0

    def __repr__(self) -> str:
        return (
            f"TickResult(tick={self.tick}, state={self.state.value}, "
            f"points={self.points}, density={self.motion_density:.4f}, "
            f"permitted={self.permitted})"
        )


class OutputSize(BaseModel):
    """Output buffer size as served by the API."""

    width: int = Field(..., ge=0, description="Output width in pixels")
    height: int = Field(..., ge=0, description="Output height in pixels")


class GateReport(BaseModel):
    """Gate decision as served by the API."""

    permitted: bool = Field(..., description="Whether the overlay is drawn")
    hold_frames_remaining: int = Field(
        default=0,
        ge=0,
        description="Evaluations left in the hysteresis hold",
    )
    reason: GateReason = Field(..., description="Machine-readable gate reason")


class TickReport(BaseModel):
    """
    Latest tick summary served at /output.

    Attributes:
        tick: Tick counter
        state: Driver lifecycle state
        skipped: Whether the tick had no source frame
        output: Output buffer size
        candidates: Unthinned candidates
        points: Rendered points
        motion_density: Motion density in [0, 1]
        gate: Gate decision
        stage_errors: Stage failures absorbed this tick
        duration_ms: Tick duration
    """

    tick: int = Field(..., ge=0)
    state: DriverState
    skipped: bool = False
    output: OutputSize
    candidates: int = Field(default=0, ge=0)
    points: int = Field(default=0, ge=0)
    motion_density: float = Field(default=0.0, ge=0.0, le=1.0)
    gate: GateReport
    stage_errors: int = Field(default=0, ge=0)
    duration_ms: float = Field(default=0.0, ge=0.0)

    @classmethod
    def from_result(
        cls,
        result: TickResult,
        hold_frames_remaining: Optional[int] = None,
    ) -> "TickReport":
        """Build the API payload from a driver TickResult."""
        return cls(
            tick=result.tick,
            state=result.state,
            skipped=result.skipped,
            output=OutputSize(width=result.width, height=result.height),
            candidates=result.candidates,
            points=result.points,
            motion_density=result.motion_density,
            gate=GateReport(
                permitted=result.permitted,
                hold_frames_remaining=hold_frames_remaining or 0,
                reason=result.gate_reason,
            ),
            stage_errors=result.stage_errors,
            duration_ms=result.duration_ms,
        )
