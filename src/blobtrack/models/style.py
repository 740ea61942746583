"""
Style Models
============

Named choices for overlay styling that configuration can refer to.
"""

from enum import Enum


class Ink(str, Enum):
    """Overlay ink palette name."""

    WHITE = "white"
    NEON = "neon"
    ICE = "ice"
    RED = "red"


class MarkerShape(str, Enum):
    """Glyph drawn at each selected point."""

    SQUARE = "square"
    CIRCLE = "circle"
