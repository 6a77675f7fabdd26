"""
Imaging Handshake Configuration
===============================

This module handles configuration loading for the acquisition handshake.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    IMAGING_OUTBOUND_PIPE     -> channels.outbound_path
    IMAGING_INBOUND_PIPE      -> channels.inbound_path
    IMAGING_LINE_TERMINATOR   -> channels.line_terminator
    IMAGING_INITIAL_FRAMES    -> acquisition.initial_frames
    IMAGING_STREAMING_FRAMES  -> acquisition.streaming_frames
    IMAGING_DEMO_MODE         -> session.demo_mode
    IMAGING_STORAGE_PREFIX    -> session.storage_prefix
    IMAGING_ACK_TIMEOUT       -> handshake.ack_timeout_sec
    IMAGING_LOG_LEVEL         -> logging.level

Values are resolved once at session start and are constants for the
rest of the run.

Example:
    from imaging_handshake.config import load_config

    settings = load_config()
    print(settings.channels.outbound_path)
    print(settings.acquisition.initial_frames)
"""

import os
import sys
import logging
from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

class SessionConfig(BaseModel):
    """Session identity and storage configuration."""

    demo_mode: bool = Field(
        default=False,
        description="Use demo_name as the session identifier",
    )
    demo_name: str = Field(
        default="demo",
        min_length=1,
        description="Session identifier used in demo mode",
    )
    storage_prefix: str = Field(
        default="./data",
        description="Directory that receives the per-session store",
    )
    id_format: str = Field(
        default="%Y%m%d_%H%M%S",
        description="strftime pattern for generated session identifiers",
    )
    store_suffix: str = Field(
        default=".tif",
        description="File suffix of the multi-frame store",
    )


class ChannelConfig(BaseModel):
    """Control channel pair configuration."""

    outbound_path: str = Field(
        default="/tmp/imaging_to_analysis",
        description="Pipe carrying messages to the analysis engine",
    )
    inbound_path: str = Field(
        default="/tmp/imaging_from_analysis",
        description="Pipe carrying messages from the analysis engine",
    )
    line_terminator: Literal["auto", "none", "lf", "crlf"] = Field(
        default="auto",
        description="Line terminator appended to outbound messages",
    )
    encoding: str = Field(
        default="ascii",
        description="Text encoding of control messages",
    )

    def resolve_terminator(self, platform: Optional[str] = None) -> str:
        """
        Resolve the outbound line terminator.

        'auto' means no terminator on Windows named pipes (message mode)
        and a line feed everywhere else.

        Args:
            platform: Platform name (defaults to sys.platform)

        Returns:
            Terminator string, possibly empty
        """
        if self.line_terminator == "none":
            return ""
        if self.line_terminator == "lf":
            return "\n"
        if self.line_terminator == "crlf":
            return "\r\n"

        platform = platform or sys.platform
        return "" if platform.startswith("win") else "\n"


class AcquisitionConfig(BaseModel):
    """Burst sizes and timing for both phases."""

    initial_frames: int = Field(
        default=30,
        ge=1,
        description="Frames captured in the initialization burst",
    )
    streaming_frames: int = Field(
        default=150,
        ge=0,
        description="Frames captured in the streaming burst",
    )
    interval_init_ms: float = Field(
        default=0.0,
        ge=0,
        description="Inter-frame interval during initialization (ms)",
    )
    interval_stream_ms: float = Field(
        default=0.0,
        ge=0,
        description="Inter-frame interval during streaming (ms)",
    )
    poll_interval_ms: float = Field(
        default=5.0,
        gt=0,
        description="Maximum wait per iteration while the burst is active",
    )
    log_every_n_frames: int = Field(
        default=30,
        ge=1,
        description="Log progress every N frames",
    )


class HandshakeConfig(BaseModel):
    """Acknowledgment timing."""

    settling_delay_sec: float = Field(
        default=2.0,
        ge=0,
        description="Delay after the acknowledgment before streaming starts",
    )
    ack_timeout_sec: float = Field(
        default=300.0,
        ge=0,
        description="Deadline for the acknowledgment (0 = wait forever)",
    )


class CameraConfig(BaseModel):
    """Simulated camera configuration."""

    simulate: bool = Field(
        default=True,
        description="Use the simulated frame source",
    )
    width: int = Field(default=512, ge=1, description="Frame width in pixels")
    height: int = Field(default=512, ge=1, description="Frame height in pixels")
    fail_after: int = Field(
        default=0,
        ge=0,
        description="Stop every burst after N frames (0 = never)",
    )
    seed: int = Field(default=0, description="Noise generator seed")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="text", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for the imaging handshake.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    session: SessionConfig = Field(default_factory=SessionConfig)
    channels: ChannelConfig = Field(default_factory=ChannelConfig)
    acquisition: AcquisitionConfig = Field(default_factory=AcquisitionConfig)
    handshake: HandshakeConfig = Field(default_factory=HandshakeConfig)
    camera: CameraConfig = Field(default_factory=CameraConfig)
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

    # Channel settings
    if env_out := os.environ.get("IMAGING_OUTBOUND_PIPE"):
        config_data.setdefault("channels", {})["outbound_path"] = env_out
    if env_in := os.environ.get("IMAGING_INBOUND_PIPE"):
        config_data.setdefault("channels", {})["inbound_path"] = env_in
    if env_term := os.environ.get("IMAGING_LINE_TERMINATOR"):
        config_data.setdefault("channels", {})["line_terminator"] = env_term

    # Acquisition settings
    if env_init := os.environ.get("IMAGING_INITIAL_FRAMES"):
        config_data.setdefault("acquisition", {})["initial_frames"] = int(env_init)
    if env_stream := os.environ.get("IMAGING_STREAMING_FRAMES"):
        config_data.setdefault("acquisition", {})["streaming_frames"] = int(env_stream)

    # Session settings
    if env_demo := os.environ.get("IMAGING_DEMO_MODE"):
        config_data.setdefault("session", {})["demo_mode"] = env_demo.lower() in ("1", "true", "yes")
    if env_prefix := os.environ.get("IMAGING_STORAGE_PREFIX"):
        config_data.setdefault("session", {})["storage_prefix"] = env_prefix

    # Handshake settings
    if env_timeout := os.environ.get("IMAGING_ACK_TIMEOUT"):
        config_data.setdefault("handshake", {})["ack_timeout_sec"] = float(env_timeout)

    # Logging settings
    if env_log := os.environ.get("IMAGING_LOG_LEVEL"):
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
