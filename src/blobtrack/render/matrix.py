"""
Matrix Rain
===========

Optional glyph-rain glitch overlay.

A private layer the size of the Output buffer holds falling hex
glyphs, one drop per 14 px column. Each tick the layer fades toward
black, every drop advances and draws one glyph, and the layer is
screen-composited onto the Output buffer.
"""

import logging
from typing import Optional, Tuple

import cv2
import numpy as np

from blobtrack.models.geometry import Dimensions
from blobtrack.render.effects import screen_blend


logger = logging.getLogger(__name__)


COLUMN_WIDTH = 14
MIN_COLUMNS = 12
GLYPHS = "0123456789ABCDEF#@$%"
GLYPH_PX = 12

FADE = 0.08
INK_ALPHA = 0.35
COMPOSITE_ALPHA = 0.65

GLITCH_CHANCE = 0.03
GLITCH_JUMP = 90.0
RESET_CHANCE = 0.01
RESET_SPAN = 200.0
OVERSHOOT = 20.0

FONT = cv2.FONT_HERSHEY_PLAIN


class MatrixRain:
    """
    Glyph rain state: one drop position per column plus a fading layer.

    Attributes:
        rng: Random generator for glyphs, jitter and resets
        columns: Number of rain columns
        drops: Current y position of each column's drop
    """

    def __init__(self, seed: Optional[int] = None, rng: Optional[np.random.Generator] = None) -> None:
        self.rng = rng if rng is not None else np.random.default_rng(seed)
        self.columns: int = 0
        self.drops: np.ndarray = np.zeros(0, dtype=np.float64)
        self._layer: Optional[np.ndarray] = None
        self._scale = cv2.getFontScaleFromHeight(FONT, GLYPH_PX, 1)

    @property
    def dimensions(self) -> Optional[Dimensions]:
        return Dimensions.of(self._layer) if self._layer is not None else None

    def resize(self, dims: Dimensions) -> None:
        """Reallocate the layer and scatter the drops over the new height."""
        self._layer = np.zeros((dims.height, dims.width, 3), dtype=np.uint8)
        self.columns = max(MIN_COLUMNS, dims.width // COLUMN_WIDTH)
        self.drops = self.rng.uniform(0.0, dims.height, size=self.columns)
        logger.debug(f"MatrixRain resized: {dims}, columns={self.columns}")

    def step(self, color: Tuple[int, int, int]) -> None:
        """Advance every drop by one tick and draw its glyph."""
        if self._layer is None:
            raise RuntimeError("MatrixRain.resize() must be called before step()")

        height, width = self._layer.shape[:2]
        np.copyto(self._layer, cv2.convertScaleAbs(self._layer, alpha=1.0 - FADE))

        mask = np.zeros((height, width), dtype=np.uint8)
        col_w = width // self.columns
        for i in range(self.columns):
            y = float(self.drops[i])
            glyph = GLYPHS[int(self.rng.integers(len(GLYPHS)))]
            x = i * col_w + int(self.rng.integers(3))

            if self.rng.random() < GLITCH_CHANCE:
                y += self.rng.uniform(0.0, GLITCH_JUMP)
            y += 14.0 + self.rng.uniform(0.0, 10.0)

            cv2.putText(mask, glyph, (x, int(y)), FONT, self._scale, 255, 1, cv2.LINE_AA)

            if y > height + OVERSHOOT or self.rng.random() < RESET_CHANCE:
                y = -self.rng.uniform(0.0, RESET_SPAN)
            self.drops[i] = y

        a = (mask.astype(np.float32) * (INK_ALPHA / 255.0))[..., None]
        layer = self._layer.astype(np.float32)
        layer += (np.asarray(color, dtype=np.float32) - layer) * a
        np.copyto(self._layer, np.rint(layer).astype(np.uint8))

    def composite(self, target: np.ndarray) -> None:
        """Screen the layer onto target at 0.65 opacity."""
        if self._layer is None or self._layer.shape != target.shape:
            raise ValueError("MatrixRain layer does not match the target buffer")
        screen_blend(target, self._layer, COMPOSITE_ALPHA)

    def apply(self, target: np.ndarray, color: Tuple[int, int, int]) -> None:
        """step() then composite(); resizes first if the target size changed."""
        if self._layer is None or self._layer.shape != target.shape:
            self.resize(Dimensions.of(target))
        self.step(color)
        self.composite(target)
