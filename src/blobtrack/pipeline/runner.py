"""
Pipeline Runner
===============

The external scheduler: one asyncio task driving PipelineDriver.tick().

Per Tick:
    1. Read the latest frame from the VideoSource
    2. Take the current PipelineConfig snapshot from the ConfigStore
    3. Await driver.tick()
    4. Publish the Output buffer to every sink
    5. Sleep to hold target_fps

Only one tick runs at a time. Errors are logged and the loop goes on.
"""

import asyncio
import logging
import time
from typing import List, Optional, Sequence

from blobtrack.config import ConfigStore
from blobtrack.models.output import TickResult
from blobtrack.pipeline.driver import PipelineDriver
from blobtrack.pipeline.sinks import OutputSink
from blobtrack.stream.source import VideoSource


logger = logging.getLogger(__name__)


class RunnerMetrics:
    """Loop counters for observability."""

    __slots__ = ("ticks", "skipped_ticks", "published", "source_errors", "sink_errors", "loop_errors", "fps")

    def __init__(self) -> None:
        self.ticks: int = 0
        self.skipped_ticks: int = 0
        self.published: int = 0
        self.source_errors: int = 0
        self.sink_errors: int = 0
        self.loop_errors: int = 0
        self.fps: float = 0.0

    def to_dict(self) -> dict:
        return {
            "ticks": self.ticks,
            "skipped_ticks": self.skipped_ticks,
            "published": self.published,
            "source_errors": self.source_errors,
            "sink_errors": self.sink_errors,
            "loop_errors": self.loop_errors,
            "fps": round(self.fps, 2),
        }


class PipelineRunner:
    """
    Fixed-rate tick loop.

    Attributes:
        source: Frame source
        driver: Pipeline driver
        store: Configuration store read once per tick
        sinks: Output sinks
        target_fps: Desired tick rate
        metrics: RunnerMetrics
    """

    def __init__(
        self,
        source: VideoSource,
        driver: PipelineDriver,
        store: ConfigStore,
        sinks: Sequence[OutputSink] = (),
        target_fps: float = 30.0,
    ) -> None:
        if target_fps <= 0:
            raise ValueError("target_fps must be > 0")

        self.source = source
        self.driver = driver
        self.store = store
        self.sinks: List[OutputSink] = list(sinks)
        self.target_fps = target_fps
        self.metrics = RunnerMetrics()

        self._running: bool = False
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

        logger.info(f"PipelineRunner initialized: target_fps={target_fps}, sinks={len(self.sinks)}")

    @property
    def running(self) -> bool:
        return self._running

    async def step(self) -> Optional[TickResult]:
        """
        Run exactly one tick and publish its output.

        Returns:
            The TickResult, or None if the tick itself failed
        """
        config = self.store.current

        try:
            frame = await self.source.read()
        except Exception as e:
            self.metrics.source_errors += 1
            logger.error(f"Source read failed: {e}")
            frame = None

        result = await self.driver.tick(frame, config.viewport.to_dimensions(), config)
        self.metrics.ticks += 1

        if result.skipped:
            self.metrics.skipped_ticks += 1
            return result

        output = self.driver.output
        if output is not None:
            self.metrics.published += 1
            for sink in self.sinks:
                try:
                    sink.publish(output, result)
                except Exception as e:
                    self.metrics.sink_errors += 1
                    logger.error(f"Sink {type(sink).__name__} failed: {e}")
        return result

    async def run(self) -> None:
        """Tick until stop() is called."""
        self._running = True
        self._stop_event.clear()
        period = 1.0 / self.target_fps
        logger.info("Pipeline loop started")

        last_start: Optional[float] = None
        while self._running:
            started = time.perf_counter()
            if last_start is not None:
                self.metrics.fps = 1.0 / max(started - last_start, 1e-6)
            last_start = started

            try:
                await self.step()
            except asyncio.CancelledError:
                logger.info("Pipeline loop cancelled")
                break
            except Exception as e:
                self.metrics.loop_errors += 1
                logger.error(f"Pipeline loop error: {e}")

            remaining = period - (time.perf_counter() - started)
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=max(remaining, 0.0))
                break
            except asyncio.TimeoutError:
                pass

        self._running = False
        logger.info(f"Pipeline loop stopped after {self.metrics.ticks} ticks")

    def start(self) -> asyncio.Task:
        """Start run() as a background task."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run(), name="pipeline_runner")
        return self._task

    async def stop(self) -> None:
        """Stop the loop and wait for the current tick to finish."""
        self._running = False
        self._stop_event.set()
        if self._task is not None:
            try:
                await asyncio.wait_for(self._task, timeout=5.0)
            except asyncio.TimeoutError:
                self._task.cancel()
                try:
                    await self._task
                except asyncio.CancelledError:
                    pass
            self._task = None

        for sink in self.sinks:
            try:
                sink.close()
            except Exception as e:
                logger.warning(f"Sink {type(sink).__name__} close failed: {e}")
