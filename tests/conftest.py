"""
Test Configuration
==================

Pytest fixtures and test doubles for BlobTrack.
"""

import asyncio
from typing import List, Optional

import numpy as np
import pytest

from blobtrack.config import PipelineConfig, PostEffectStrengths
from blobtrack.models.geometry import Dimensions, Region


# =============================================================================
# Test Doubles
# =============================================================================

class FakeDetector:
    """Detector returning a scripted sequence of results."""

    def __init__(self, results: Optional[List[bool]] = None, default: bool = False) -> None:
        self.results = list(results or [])
        self.default = default
        self.calls = 0

    async def detect(self, image: np.ndarray) -> List[Region]:
        self.calls += 1
        found = self.results.pop(0) if self.results else self.default
        if found:
            return [Region(x=10.0, y=10.0, width=40.0, height=40.0)]
        return []


class FailingDetector:
    """Detector that raises on every call."""

    def __init__(self) -> None:
        self.calls = 0

    async def detect(self, image: np.ndarray) -> List[Region]:
        self.calls += 1
        raise RuntimeError("detector exploded")


class SlowDetector:
    """Detector that never answers within the gate timeout."""

    def __init__(self, delay: float = 1.0) -> None:
        self.delay = delay
        self.calls = 0

    async def detect(self, image: np.ndarray) -> List[Region]:
        self.calls += 1
        await asyncio.sleep(self.delay)
        return [Region(x=0.0, y=0.0, width=1.0, height=1.0)]


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def default_config() -> PipelineConfig:
    """Provide the default PipelineConfig."""
    return PipelineConfig()


@pytest.fixture
def plain_config() -> PipelineConfig:
    """Config with post-effects off and jitter disabled."""
    return PipelineConfig(
        post_effect_strengths=PostEffectStrengths.uniform(0.0),
        jitter_enabled=False,
    )


@pytest.fixture
def landscape_viewport() -> Dimensions:
    return Dimensions(width=1280, height=720)


@pytest.fixture
def portrait_viewport() -> Dimensions:
    return Dimensions(width=390, height=844)


@pytest.fixture
def camera_frame() -> np.ndarray:
    """A deterministic 640x480 BGR frame with some texture."""
    rng = np.random.default_rng(1234)
    return rng.integers(0, 256, size=(480, 640, 3), dtype=np.uint8)


@pytest.fixture
def analysis_frame() -> np.ndarray:
    """A flat mid-gray analysis frame (220x110)."""
    return np.full((110, 220, 3), 100, dtype=np.uint8)


@pytest.fixture
def fake_detector_cls():
    return FakeDetector


@pytest.fixture
def failing_detector() -> FailingDetector:
    return FailingDetector()


@pytest.fixture
def slow_detector() -> SlowDetector:
    return SlowDetector()
