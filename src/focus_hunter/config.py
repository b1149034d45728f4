"""
Focus Hunter Configuration
==========================

This module handles configuration loading for the focus hunter.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    FOCUS_TOLERANCE_MM          -> scan.tolerance_mm
    FOCUS_SWEEP_POLL_INTERVAL   -> scan.sweep_poll_interval_s
    FOCUS_TIMEOUT_FACTOR        -> scan.timeout_factor
    FOCUS_TIMEOUT_MARGIN        -> scan.timeout_margin_s
    FOCUS_MAX_SKEW              -> scan.max_correlation_skew_s
    FOCUS_EXPOSURE_US           -> scan.exposure_us
    FOCUS_FRAME_RATE_HZ         -> camera.frame_rate_hz
    FOCUS_FOCAL_PLANE_MM        -> camera.focal_plane_mm
    FOCUS_CORRUPTION_RATE       -> camera.corruption_rate
    FOCUS_SEED                  -> camera.seed
    FOCUS_LOG_LEVEL             -> logging.level
    FOCUS_LOG_FORMAT            -> logging.format

Example:
    from focus_hunter.config import settings

    print(settings.scan.tolerance_mm)
    print(settings.camera.focal_plane_mm)
"""

import os
import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

class ScanConfig(BaseModel):
    """Scan orchestration configuration."""

    tolerance_mm: float = Field(
        default=0.01,
        gt=0,
        description="Distance at which a move counts as arrived (mm)",
    )
    sweep_poll_interval_s: float = Field(
        default=0.01,
        gt=0,
        le=1.0,
        description="Axis poll period while sweeping",
    )
    move_poll_interval_s: float = Field(
        default=0.005,
        gt=0,
        le=0.01,
        description="Axis poll period while waiting for a move",
    )
    timeout_factor: float = Field(
        default=2.0,
        ge=1.0,
        description="Multiplier on distance/speed for move and sweep timeouts",
    )
    timeout_margin_s: float = Field(
        default=1.0,
        ge=0,
        description="Constant added to move and sweep timeouts",
    )
    max_correlation_skew_s: Optional[float] = Field(
        default=None,
        ge=0,
        description="Largest accepted frame/position skew (None = unbounded)",
    )
    exposure_us: Optional[float] = Field(
        default=None,
        gt=0,
        description="Exposure applied before each scan (None = leave as is)",
    )
    log_every_n_frames: int = Field(
        default=50,
        ge=1,
        description="Progress log period in scored frames",
    )


class DispatcherConfig(BaseModel):
    """Frame dispatcher configuration."""

    join_timeout_s: float = Field(
        default=2.0,
        gt=0,
        description="Bound on joining the dispatch thread at shutdown",
    )


class CameraConfig(BaseModel):
    """Simulated camera configuration."""

    width: int = Field(default=64, ge=3, description="Frame width in pixels")
    height: int = Field(default=48, ge=3, description="Frame height in pixels")
    frame_rate_hz: float = Field(default=100.0, gt=0, description="Acquisition rate")
    focal_plane_mm: float = Field(default=5.0, description="Position of best focus (mm)")
    blur_per_mm: float = Field(
        default=2.0,
        gt=0,
        description="Gaussian sigma (pixels) per mm of defocus",
    )
    corruption_rate: float = Field(
        default=0.0,
        ge=0,
        le=1.0,
        description="Fraction of frames delivered corrupt",
    )
    seed: int = Field(default=0, description="Seed for texture and corruption")
    exposure_us: float = Field(default=100.0, gt=0, description="Initial exposure")


class AxisConfig(BaseModel):
    """Simulated axis configuration."""

    min_position: float = Field(default=0.0, description="Lower travel limit (mm)")
    max_position: float = Field(default=10.0, description="Upper travel limit (mm)")
    initial_position: float = Field(default=0.0, description="Position at power-up (mm)")
    read_latency_s: float = Field(
        default=0.004,
        ge=0,
        description="Delay before and after every position read",
    )
    command_timeout_s: float = Field(
        default=2.0,
        gt=0,
        description="Bound on a single command round trip",
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="text", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for the focus hunter.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    scan: ScanConfig = Field(default_factory=ScanConfig)
    dispatcher: DispatcherConfig = Field(default_factory=DispatcherConfig)
    camera: CameraConfig = Field(default_factory=CameraConfig)
    axis: AxisConfig = Field(default_factory=AxisConfig)
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
    # Find config file
    if config_path is None:
        search_paths = [
            Path("config.yaml"),
            Path("config.yml"),
            Path(__file__).parent.parent.parent / "config.yaml",
        ]
        for path in search_paths:
            if path.exists():
                config_path = str(path)
                break

    # Load from YAML if exists
    config_data = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.warning("No config file found, using defaults and environment variables")

    # Apply environment variable overrides
    _apply_env_overrides(config_data)

    return Settings.model_validate(config_data)


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    # Scan settings
    if env_tol := os.environ.get("FOCUS_TOLERANCE_MM"):
        config_data.setdefault("scan", {})["tolerance_mm"] = float(env_tol)
    if env_poll := os.environ.get("FOCUS_SWEEP_POLL_INTERVAL"):
        config_data.setdefault("scan", {})["sweep_poll_interval_s"] = float(env_poll)
    if env_factor := os.environ.get("FOCUS_TIMEOUT_FACTOR"):
        config_data.setdefault("scan", {})["timeout_factor"] = float(env_factor)
    if env_margin := os.environ.get("FOCUS_TIMEOUT_MARGIN"):
        config_data.setdefault("scan", {})["timeout_margin_s"] = float(env_margin)
    if env_skew := os.environ.get("FOCUS_MAX_SKEW"):
        config_data.setdefault("scan", {})["max_correlation_skew_s"] = float(env_skew)
    if env_exposure := os.environ.get("FOCUS_EXPOSURE_US"):
        config_data.setdefault("scan", {})["exposure_us"] = float(env_exposure)

    # Simulated camera settings
    if env_rate := os.environ.get("FOCUS_FRAME_RATE_HZ"):
        config_data.setdefault("camera", {})["frame_rate_hz"] = float(env_rate)
    if env_focal := os.environ.get("FOCUS_FOCAL_PLANE_MM"):
        config_data.setdefault("camera", {})["focal_plane_mm"] = float(env_focal)
    if env_corrupt := os.environ.get("FOCUS_CORRUPTION_RATE"):
        config_data.setdefault("camera", {})["corruption_rate"] = float(env_corrupt)
    if env_seed := os.environ.get("FOCUS_SEED"):
        config_data.setdefault("camera", {})["seed"] = int(env_seed)

    # Logging settings
    if env_log := os.environ.get("FOCUS_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log
    if env_fmt := os.environ.get("FOCUS_LOG_FORMAT"):
        config_data.setdefault("logging", {})["format"] = env_fmt


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "thread": "%(threadName)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(threadName)s - %(name)s - %(levelname)s - %(message)s"

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
