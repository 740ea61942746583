"""
Geometry Models
===============

Frame-space primitives shared by the planner, the buffers and the detector.

Coordinates follow the OpenCV convention: origin at the top-left corner,
x grows rightward, y grows downward, all in pixels.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Tuple


class FormatMode(str, Enum):
    """
    Requested output format.

    AUTO is never used for sizing directly; it is resolved to PORTRAIT
    or LANDSCAPE from the viewport orientation on every tick.
    """

    AUTO = "auto"
    PORTRAIT = "portrait"
    LANDSCAPE = "landscape"
    SQUARE = "square"


@dataclass(frozen=True, slots=True)
class Dimensions:
    """
    Width and height of a pixel surface.

    Attributes:
        width: Width in pixels (> 0)
        height: Height in pixels (> 0)
    """

    width: int
    height: int

    def __post_init__(self) -> None:
        """Validate invariants."""
        if self.width <= 0 or self.height <= 0:
            raise ValueError(
                f"Dimensions must be positive, got {self.width}x{self.height}"
            )

    @property
    def aspect(self) -> float:
        """Width over height."""
        return self.width / self.height

    @property
    def is_landscape(self) -> bool:
        return self.width > self.height

    @property
    def shape(self) -> Tuple[int, int]:
        """(height, width), the numpy ordering."""
        return (self.height, self.width)

    @classmethod
    def of(cls, image) -> "Dimensions":
        """Dimensions of an (H, W, ...) array."""
        return cls(width=int(image.shape[1]), height=int(image.shape[0]))

    def __str__(self) -> str:
        return f"{self.width}x{self.height}"


@dataclass(frozen=True, slots=True)
class CropRect:
    """
    Rectangle in source pixel space selected by a cover crop.

    Float-valued; callers round when slicing.
    """

    x: float
    y: float
    width: float
    height: float

    @property
    def aspect(self) -> float:
        return self.width / self.height

    def to_slices(self) -> Tuple[slice, slice]:
        """Integer (rows, cols) slices covering this rectangle."""
        x0 = int(round(self.x))
        y0 = int(round(self.y))
        x1 = x0 + max(1, int(round(self.width)))
        y1 = y0 + max(1, int(round(self.height)))
        return slice(y0, y1), slice(x0, x1)


@dataclass(frozen=True, slots=True)
class Region:
    """
    A region reported by a presence detector.

    Attributes:
        x: Left edge
        y: Top edge
        width: Region width
        height: Region height
    """

    x: float
    y: float
    width: float
    height: float

    @property
    def area(self) -> float:
        return self.width * self.height
