"""
Imaging Handshake Main Application
==================================

Command-line entry point for one acquisition session.

Session flow:
    1. Resolve settings (YAML, environment, command line)
    2. Create the session identity
    3. Open the outbound and inbound control channels
    4. Run the acquisition phase controller to Done or Aborted

Exit status:
    0  Session reached Done
    1  Session aborted (insufficient frames, bad or missing acknowledgment)
    2  A control channel could not be opened

Usage:
    imaging-handshake --config config.yaml
    imaging-handshake --demo --initial-frames 30 --streaming-frames 150
"""

import argparse
import logging
import sys
from datetime import datetime
from typing import List, Optional

from imaging_handshake.acquisition import (
    FrameSink,
    FrameSource,
    SimulatedFrameSource,
    TiffFrameSink,
)
from imaging_handshake.channels import ControlChannelPair
from imaging_handshake.config import CameraConfig, Settings, load_config, setup_logging
from imaging_handshake.controller import AcquisitionPhaseController
from imaging_handshake.errors import ChannelUnavailable
from imaging_handshake.models import SessionResult, create_session


logger = logging.getLogger(__name__)


EXIT_DONE = 0
EXIT_ABORTED = 1
EXIT_CHANNEL_UNAVAILABLE = 2


# =============================================================================
# Factories
# =============================================================================

def create_frame_source(config: CameraConfig) -> FrameSource:
    """
    Create the frame source from configuration.

    Hardware cameras are injected by the caller through run_session();
    only the simulated source can be built from configuration.
    """
    if not config.simulate:
        raise ValueError(
            "No camera backend configured: pass a FrameSource to run_session() "
            "or enable camera.simulate"
        )

    return SimulatedFrameSource(
        width=config.width,
        height=config.height,
        fail_after=config.fail_after,
        seed=config.seed,
    )


def open_channels(settings: Settings) -> ControlChannelPair:
    """
    Open both control channels.

    Raises:
        ChannelUnavailable: Either pipe is missing or cannot be opened
    """
    channels = ControlChannelPair.from_config(settings.channels)
    try:
        channels.open_outbound()
        channels.open_receive()
    except ChannelUnavailable:
        channels.close()
        raise
    return channels


# =============================================================================
# Session
# =============================================================================

def run_session(
    settings: Settings,
    source: Optional[FrameSource] = None,
    sink: Optional[FrameSink] = None,
    channels: Optional[ControlChannelPair] = None,
    now: Optional[datetime] = None,
) -> SessionResult:
    """
    Run one acquisition session.

    Args:
        settings: Resolved settings
        source: Frame source (defaults to one built from settings.camera)
        sink: Frame store (defaults to a TIFF at the session storage path,
            closed on return)
        channels: Opened channel pair (defaults to the configured pipes)
        now: Session creation time

    Returns:
        SessionResult with the terminal phase

    Raises:
        ChannelUnavailable: Before any frame is captured
    """
    session = create_session(settings.session, now=now)
    logger.info(
        f"Session {session.session_id} created "
        f"(demo={settings.session.demo_mode}, store={session.storage_path})"
    )

    if source is None:
        source = create_frame_source(settings.camera)
    owned_sink: Optional[TiffFrameSink] = None
    if sink is None:
        owned_sink = sink = TiffFrameSink(session.storage_path)

    owns_channels = channels is None
    if channels is None:
        channels = open_channels(settings)

    try:
        controller = AcquisitionPhaseController(
            session=session,
            channels=channels,
            source=source,
            sink=sink,
            acquisition=settings.acquisition,
            handshake=settings.handshake,
        )
        result = controller.run()
    finally:
        # Done already finalized the store; Aborted leaves it open
        if owned_sink is not None:
            owned_sink.close()
        if owns_channels:
            channels.close()

    logger.info(
        f"Session {result.session_id} finished in {result.phase.value}: "
        f"{result.frames_persisted} frames, metrics={result.channel_metrics}"
    )
    return result


# =============================================================================
# Command Line
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="imaging-handshake",
        description="Run an acquisition session coordinated with an analysis engine",
    )
    parser.add_argument("--config", help="Path to config.yaml")
    parser.add_argument("--demo", action="store_true", help="Use the demo session name")
    parser.add_argument("--demo-name", help="Session identifier in demo mode")
    parser.add_argument("--storage-prefix", help="Directory for the session store")
    parser.add_argument("--outbound", help="Outbound pipe path")
    parser.add_argument("--inbound", help="Inbound pipe path")
    parser.add_argument("--initial-frames", type=int, help="Initialization burst size")
    parser.add_argument("--streaming-frames", type=int, help="Streaming burst size")
    parser.add_argument("--ack-timeout", type=float, help="Acknowledgment deadline (0 = none)")
    parser.add_argument("--log-level", help="Log level")
    parser.add_argument("--json", action="store_true", help="Print the session result as JSON")
    return parser


def apply_cli_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    """Return new settings with command-line values applied and validated."""
    data = settings.model_dump()

    if args.demo:
        data["session"]["demo_mode"] = True
    if args.demo_name:
        data["session"]["demo_name"] = args.demo_name
    if args.storage_prefix:
        data["session"]["storage_prefix"] = args.storage_prefix
    if args.outbound:
        data["channels"]["outbound_path"] = args.outbound
    if args.inbound:
        data["channels"]["inbound_path"] = args.inbound
    if args.initial_frames is not None:
        data["acquisition"]["initial_frames"] = args.initial_frames
    if args.streaming_frames is not None:
        data["acquisition"]["streaming_frames"] = args.streaming_frames
    if args.ack_timeout is not None:
        data["handshake"]["ack_timeout_sec"] = args.ack_timeout
    if args.log_level:
        data["logging"]["level"] = args.log_level

    return Settings.model_validate(data)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = apply_cli_overrides(load_config(args.config), args)
    setup_logging(settings)

    try:
        result = run_session(settings)
    except ChannelUnavailable as e:
        logger.error(f"Control channel unavailable: {e}")
        return EXIT_CHANNEL_UNAVAILABLE

    if args.json:
        print(result.model_dump_json(indent=2))

    return EXIT_DONE if result.succeeded else EXIT_ABORTED


if __name__ == "__main__":
    sys.exit(main())
