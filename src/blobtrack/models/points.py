"""
Point Models
============

Data models for motion candidates and the selected point set.

Points carry no identity. They are created fresh every frame by the
motion sampler and discarded at the end of the tick.
"""

from dataclasses import dataclass, field
from typing import List


@dataclass(frozen=True, slots=True)
class Point:
    """
    A point of interest.

    Attributes:
        x: Horizontal position in pixels
        y: Vertical position in pixels
        weight: Luminance difference magnitude at this point (>= 0)
    """

    x: float
    y: float
    weight: float

    def __post_init__(self) -> None:
        """Validate invariants."""
        if self.weight < 0:
            raise ValueError("weight must be non-negative")


# Selected points, descending by weight, never longer than the configured cap.
PointSet = List[Point]


@dataclass(frozen=True, slots=True)
class SampleResult:
    """
    Output of one motion sampling pass.

    Attributes:
        candidates: Unthinned candidates, descending by weight (stable)
        motion_density: hits / cells, in [0, 1]
        hits: Number of sampled cells above threshold
        cells: Number of cells sampled
        bootstrap: True when no previous frame was available
    """

    candidates: List[Point] = field(default_factory=list)
    motion_density: float = 0.0
    hits: int = 0
    cells: int = 0
    bootstrap: bool = False

    def __repr__(self) -> str:
        return (
            f"SampleResult(candidates={len(self.candidates)}, "
            f"density={self.motion_density:.4f}, "
            f"bootstrap={self.bootstrap})"
        )
