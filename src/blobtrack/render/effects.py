"""
Post Effects
============

In-place post-processing stages for the Output buffer.

Stages (applied in this order by PostEffectsChain):
    1. ContrastBrightness: v' = clamp((v - 128) * c + 128 + b)
       c = lerp(1.0, 1.28, s), b = lerp(0, 9, s)
    2. ColorVeil: flat blue haze, screen blend at lerp(0, 0.22, s)
    3. Bloom:     blurred self-copy, screen blend at lerp(0, 0.55, s)

TrailDecay is not part of the chain. It replaces the plain
Source -> Output copy at the start of a tick when enabled.

A stage with strength <= 0.001 is skipped without touching the buffer,
so all-zero strengths leave the buffer pixel-identical.
"""

import logging
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

import cv2
import numpy as np

from blobtrack.config import PostEffectStrengths


logger = logging.getLogger(__name__)


STRENGTH_EPSILON = 0.001

CONTRAST_MAX = 1.28
BRIGHTNESS_MAX = 9.0

# RGB(40, 120, 255) as BGR
VEIL_COLOR: Tuple[int, int, int] = (255, 120, 40)
VEIL_ALPHA_MAX = 0.22

BLOOM_SIGMA_MIN = 6.0
BLOOM_SIGMA_RANGE = 18.0
BLOOM_ALPHA_MAX = 0.55


# =============================================================================
# Blend helpers
# =============================================================================


def screen(base: np.ndarray, layer: np.ndarray) -> np.ndarray:
    """Screen blend of two float32 arrays in [0, 255]."""
    return 255.0 - (255.0 - base) * (255.0 - layer) / 255.0


def screen_blend(target: np.ndarray, layer: np.ndarray, alpha: float) -> None:
    """
    Screen-composite a layer onto a uint8 buffer at the given opacity.

    Args:
        target: (H, W, 3) uint8, modified in place
        layer: Array broadcastable to target (uint8 or float)
        alpha: Layer opacity in [0, 1]
    """
    base = target.astype(np.float32)
    blended = screen(base, np.asarray(layer, dtype=np.float32))
    base += (blended - base) * alpha
    np.clip(base, 0, 255, out=base)
    np.copyto(target, np.rint(base).astype(np.uint8))


# =============================================================================
# Stages
# =============================================================================


class PostEffect(Protocol):
    """A single in-place post-processing stage."""

    name: str

    def apply(self, buffer: np.ndarray, strength: float) -> None:
        ...


class ContrastBrightness:
    """Contrast and brightness remap through a 256-entry lookup table."""

    name = "contrast"

    def __init__(self) -> None:
        self._cache: Dict[float, np.ndarray] = {}

    @staticmethod
    def build_table(strength: float) -> np.ndarray:
        c = 1.0 + (CONTRAST_MAX - 1.0) * strength
        b = BRIGHTNESS_MAX * strength
        values = (np.arange(256, dtype=np.float32) - 128.0) * c + 128.0 + b
        return np.clip(np.rint(values), 0, 255).astype(np.uint8)

    def apply(self, buffer: np.ndarray, strength: float) -> None:
        key = round(strength, 4)
        table = self._cache.get(key)
        if table is None:
            table = self.build_table(key)
            self._cache[key] = table
        np.copyto(buffer, cv2.LUT(buffer, table))


class ColorVeil:
    """Screen-blended flat color haze."""

    name = "veil"

    def __init__(self, color: Tuple[int, int, int] = VEIL_COLOR) -> None:
        self.color = np.asarray(color, dtype=np.float32)

    def apply(self, buffer: np.ndarray, strength: float) -> None:
        screen_blend(buffer, self.color, VEIL_ALPHA_MAX * strength)


class Bloom:
    """Screen-blended Gaussian-blurred copy of the buffer."""

    name = "bloom"

    def apply(self, buffer: np.ndarray, strength: float) -> None:
        sigma = BLOOM_SIGMA_MIN + BLOOM_SIGMA_RANGE * strength
        blurred = cv2.GaussianBlur(buffer, (0, 0), sigmaX=sigma, sigmaY=sigma)
        screen_blend(buffer, blurred, BLOOM_ALPHA_MAX * strength)


# =============================================================================
# Chain
# =============================================================================


class PostEffectsChain:
    """
    Ordered list of post-effect stages.

    Each stage reads its strength from PostEffectStrengths by name.
    Unknown names get strength 0 and are therefore skipped.
    """

    def __init__(self, stages: Optional[Sequence[PostEffect]] = None) -> None:
        self.stages: List[PostEffect] = (
            list(stages) if stages is not None
            else [ContrastBrightness(), ColorVeil(), Bloom()]
        )
        logger.info(
            f"PostEffectsChain initialized: stages={[s.name for s in self.stages]}"
        )

    def apply(self, buffer: np.ndarray, strengths: PostEffectStrengths) -> List[str]:
        """
        Apply every enabled stage in place.

        Args:
            buffer: Output buffer (H, W, 3) uint8
            strengths: Per-stage strengths in [0, 1]

        Returns:
            Names of the stages that ran
        """
        applied = []
        for stage in self.stages:
            strength = strengths.get(stage.name)
            if strength <= STRENGTH_EPSILON:
                continue
            stage.apply(buffer, strength)
            applied.append(stage.name)
        return applied


class TrailDecay:
    """
    Motion-trail compositing for the Output buffer.

    The previous Output is darkened toward black by `opacity`, then
    the fresh Source is laid over it with a lighten (per-channel max)
    blend. Bright content therefore lingers and fades over a few ticks.
    """

    def compose(self, output: np.ndarray, source: np.ndarray, opacity: float) -> None:
        """
        Compose in place into output.

        Raises:
            ValueError: If the buffers differ in shape
        """
        if output.shape != source.shape:
            raise ValueError(f"Buffer shape mismatch: {output.shape} vs {source.shape}")
        darkened = cv2.convertScaleAbs(output, alpha=1.0 - opacity)
        np.maximum(darkened, source, out=output)
