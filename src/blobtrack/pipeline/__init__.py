"""
Pipeline Module
===============

Per-tick orchestration and scheduling.

Components:
    - PipelineDriver: runs one frame through every stage
    - PipelineRunner: fixed-rate asyncio loop around the driver
    - OutputSink, WindowSink: output destinations
"""

from blobtrack.pipeline.driver import PipelineDriver, style_from_config
from blobtrack.pipeline.runner import PipelineRunner, RunnerMetrics
from blobtrack.pipeline.sinks import OutputSink, WindowSink

__all__ = [
    "PipelineDriver",
    "style_from_config",
    "PipelineRunner",
    "RunnerMetrics",
    "OutputSink",
    "WindowSink",
]
