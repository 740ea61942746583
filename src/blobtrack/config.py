"""
BlobTrack Configuration
=======================

This module handles configuration loading for the BlobTrack HUD service.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    BLOBTRACK_SOURCE_KIND   -> source.kind
    BLOBTRACK_SOURCE_DEVICE -> source.device
    BLOBTRACK_SOURCE_URL    -> source.url
    BLOBTRACK_FORMAT        -> pipeline.format_mode
    BLOBTRACK_SHORT_SIDE    -> pipeline.target_short_side
    BLOBTRACK_GATE_MODE     -> pipeline.gate_mode
    BLOBTRACK_TARGET_FPS    -> runner.target_fps
    BLOBTRACK_LOG_LEVEL     -> logging.level
    BLOBTRACK_PORT          -> server.port
    PORT                    -> server.port (container platforms)

Two kinds of configuration live here:
    - Settings: process-level, loaded once at startup
    - PipelineConfig: the immutable per-tick snapshot handed to every
      pipeline stage. It is replaced wholesale through ConfigStore.apply(),
      which rejects invalid updates and keeps the previous snapshot.

Example:
    from blobtrack.config import settings, ConfigStore

    store = ConfigStore(settings.pipeline)
    store.apply({"sensitivity": 0.8, "gate_mode": "heuristic"})
    print(store.current.sensitivity)
"""

import os
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from blobtrack.models.gate import GateMode
from blobtrack.models.geometry import Dimensions, FormatMode
from blobtrack.models.style import Ink, MarkerShape


logger = logging.getLogger(__name__)


# Hard ceiling on the selected point set, regardless of configuration.
MAX_POINTS_LIMIT = 260


class ConfigurationError(Exception):
    """Raised when a configuration update is malformed or out of range."""
    pass


# =============================================================================
# Pipeline (per-tick) Configuration
# =============================================================================

class ViewportConfig(BaseModel):
    """Viewport the output is framed for. Drives AUTO format resolution."""

    width: int = Field(default=1280, gt=0, description="Viewport width in pixels")
    height: int = Field(default=720, gt=0, description="Viewport height in pixels")

    class Config:
        frozen = True
        extra = "forbid"

    def to_dimensions(self) -> Dimensions:
        return Dimensions(width=self.width, height=self.height)


class PostEffectStrengths(BaseModel):
    """Per-stage post-effect strengths. 0 disables a stage."""

    contrast: float = Field(default=0.3, ge=0.0, le=1.0, description="Contrast/brightness remap")
    veil: float = Field(default=0.3, ge=0.0, le=1.0, description="Screen-blended color haze")
    bloom: float = Field(default=0.3, ge=0.0, le=1.0, description="Blurred self-copy glow")

    class Config:
        frozen = True
        extra = "forbid"

    @classmethod
    def uniform(cls, strength: float) -> "PostEffectStrengths":
        """All stages driven by one strength value."""
        return cls(contrast=strength, veil=strength, bloom=strength)

    def get(self, stage: str) -> float:
        return float(getattr(self, stage, 0.0))


class PipelineConfig(BaseModel):
    """
    Immutable configuration snapshot for one pipeline tick.

    Stages receive this object explicitly and never read ambient state.
    Replace it through ConfigStore rather than mutating it.
    """

    # Framing
    format_mode: FormatMode = Field(
        default=FormatMode.AUTO,
        description="Output format: auto, portrait, landscape or square",
    )
    target_short_side: int = Field(
        default=720,
        ge=64,
        le=4096,
        description="Short side of the output buffer in pixels",
    )
    viewport: ViewportConfig = Field(default_factory=ViewportConfig)

    # Motion sampling and selection
    sensitivity: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Motion sensitivity; higher lowers the difference threshold",
    )
    atmosphere: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Intensity: tighter spacing, more jitter, longer links",
    )
    max_points: int = Field(
        default=140,
        ge=1,
        le=MAX_POINTS_LIMIT,
        description="Maximum number of selected points",
    )
    jitter_enabled: bool = Field(
        default=True,
        description="Apply cosmetic coordinate scatter after selection",
    )
    jitter_seed: Optional[int] = Field(
        default=None,
        description="Seed for the jitter generator (None = nondeterministic)",
    )

    # Overlay
    link_radius: Optional[float] = Field(
        default=None,
        gt=0,
        description="Connecting-line radius in output pixels (None = from atmosphere)",
    )
    ink: Ink = Field(default=Ink.WHITE, description="Overlay ink palette")
    glow: bool = Field(default=True, description="Soft glow under overlay ink")
    marker_shape: MarkerShape = Field(default=MarkerShape.SQUARE)
    matrix: bool = Field(default=False, description="Glyph rain overlay")

    # Post effects
    post_effect_strengths: PostEffectStrengths = Field(default_factory=PostEffectStrengths)
    trail_decay: bool = Field(default=False, description="Composite over decayed prior output")
    trail_opacity: float = Field(
        default=0.18,
        ge=0.05,
        le=0.5,
        description="Black fill opacity per tick when trail decay is on",
    )

    # Presence gate
    gate_mode: GateMode = Field(default=GateMode.OFF, description="off, oracle or heuristic")
    gate_throttle_ticks: int = Field(
        default=8,
        ge=1,
        le=120,
        description="Evaluate the gate every N ticks",
    )
    oracle_hold: int = Field(default=12, ge=0, le=120, description="Hold after a detection")
    heuristic_hold: int = Field(default=10, ge=0, le=120, description="Hold after motion presence")
    heuristic_threshold: float = Field(
        default=0.018,
        ge=0.0,
        le=1.0,
        description="Motion density above which presence is assumed",
    )
    oracle_timeout_seconds: float = Field(
        default=0.25,
        gt=0,
        le=5.0,
        description="Upper bound on one detector call",
    )

    class Config:
        frozen = True
        extra = "forbid"


class ConfigStore:
    """
    Holder of the active PipelineConfig.

    apply() validates a partial update against the current snapshot.
    An invalid update raises ConfigurationError and leaves the active
    snapshot untouched.
    """

    def __init__(self, initial: Optional[PipelineConfig] = None) -> None:
        self._current = initial if initial is not None else PipelineConfig()
        self._revision = 0

    @property
    def current(self) -> PipelineConfig:
        """Active configuration snapshot."""
        return self._current

    @property
    def revision(self) -> int:
        """Number of successfully applied updates."""
        return self._revision

    def apply(self, updates: Dict[str, Any]) -> PipelineConfig:
        """
        Apply a partial update.

        Args:
            updates: Field values to change. Nested sections
                (viewport, post_effect_strengths) merge key by key.

        Returns:
            The new active configuration

        Raises:
            ConfigurationError: If the merged configuration is invalid
        """
        if not isinstance(updates, dict):
            raise ConfigurationError(
                f"Configuration update must be a mapping, got {type(updates).__name__}"
            )

        merged = self._current.model_dump()
        for key, value in updates.items():
            if key not in merged:
                raise ConfigurationError(f"Unknown configuration option: {key}")
            if isinstance(merged[key], dict) and isinstance(value, dict):
                merged[key] = {**merged[key], **value}
            else:
                merged[key] = value

        try:
            candidate = PipelineConfig.model_validate(merged)
        except ValidationError as e:
            logger.warning(f"Rejected configuration update {updates}: {e.error_count()} error(s)")
            raise ConfigurationError(str(e)) from e

        self._current = candidate
        self._revision += 1
        logger.info(f"Configuration applied (revision {self._revision}): {sorted(updates)}")
        return candidate


# =============================================================================
# Process Settings
# =============================================================================

class AppConfig(BaseModel):
    """Service identification configuration."""

    name: str = Field(default="blobtrack-hud", description="Service name")
    version: str = Field(default="v0.1.0", description="Service version")


class SourceConfig(BaseModel):
    """Video source configuration."""

    kind: str = Field(
        default="capture",
        description="Source kind: 'capture' (OpenCV) or 'stream' (WebSocket JPEG frames)",
    )
    device: str = Field(
        default="0",
        description="Capture device index, file path or URL",
    )
    url: str = Field(
        default="ws://localhost:8000/ws/stream",
        description="WebSocket URL of the frame stream",
    )
    reconnect_backoff_ms: int = Field(
        default=500,
        ge=100,
        description="Initial reconnect backoff in milliseconds (doubles per failure)",
    )
    max_reconnect_attempts: int = Field(
        default=0,
        ge=0,
        description="Consecutive failed reconnects before giving up (0 = unlimited)",
    )


class DetectorConfig(BaseModel):
    """Presence detector configuration."""

    backend: str = Field(
        default="haar",
        description="Detector backend: 'haar' or 'none'",
    )
    scale_factor: float = Field(default=1.1, gt=1.0, description="Cascade scale step")
    min_neighbors: int = Field(default=5, ge=0, description="Cascade neighbour votes")
    min_size: int = Field(default=40, ge=8, description="Smallest face edge in pixels")
    max_faces: int = Field(default=1, ge=1, description="Regions reported per call")


class RunnerConfig(BaseModel):
    """Tick scheduling and display configuration."""

    target_fps: float = Field(default=30.0, gt=0, le=240, description="Ticks per second")
    preview_window: bool = Field(default=False, description="Show an OpenCV preview window")
    window_name: str = Field(default="BlobTrack HUD", description="Preview window title")
    screen_width: int = Field(default=1280, gt=0, description="Preview surface width")
    screen_height: int = Field(default=720, gt=0, description="Preview surface height")


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8002, ge=1, le=65535, description="Bind port")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="json", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for BlobTrack.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    app: AppConfig = Field(default_factory=AppConfig)
    source: SourceConfig = Field(default_factory=SourceConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    detector: DetectorConfig = Field(default_factory=DetectorConfig)
    runner: RunnerConfig = Field(default_factory=RunnerConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file and environment variables.

    Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values

    Args:
        config_path: Path to config.yaml. If None, searches common locations.

    Returns:
        Settings: Loaded configuration
    """
    if config_path is None:
        search_paths = [
            Path(os.environ.get("BLOBTRACK_CONFIG", "config.yaml")),
            Path("config.yml"),
            Path(__file__).parent.parent.parent / "config.yaml",
        ]
        for path in search_paths:
            if path.exists():
                config_path = str(path)
                break

    config_data: Dict[str, Any] = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.warning("No config file found, using defaults and environment variables")

    _apply_env_overrides(config_data)

    return Settings.model_validate(config_data)


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    # Source settings
    if env_kind := os.environ.get("BLOBTRACK_SOURCE_KIND"):
        config_data.setdefault("source", {})["kind"] = env_kind
    if env_device := os.environ.get("BLOBTRACK_SOURCE_DEVICE"):
        config_data.setdefault("source", {})["device"] = env_device
    if env_url := os.environ.get("BLOBTRACK_SOURCE_URL"):
        config_data.setdefault("source", {})["url"] = env_url

    # Pipeline settings
    if env_format := os.environ.get("BLOBTRACK_FORMAT"):
        config_data.setdefault("pipeline", {})["format_mode"] = env_format.lower()
    if env_short := os.environ.get("BLOBTRACK_SHORT_SIDE"):
        config_data.setdefault("pipeline", {})["target_short_side"] = int(env_short)
    if env_gate := os.environ.get("BLOBTRACK_GATE_MODE"):
        config_data.setdefault("pipeline", {})["gate_mode"] = env_gate.lower()

    # Runner settings
    if env_fps := os.environ.get("BLOBTRACK_TARGET_FPS"):
        config_data.setdefault("runner", {})["target_fps"] = float(env_fps)

    # Server settings
    if env_port := os.environ.get("PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    elif env_port := os.environ.get("BLOBTRACK_PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)

    # Logging settings
    if env_log := os.environ.get("BLOBTRACK_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


# =============================================================================
# Global Settings Instance
# =============================================================================

# Global settings instance - loaded on import
settings = load_config()
setup_logging(settings)
