#!/usr/bin/env python3
"""
Mock Analysis Engine
====================

Standalone script playing the analysis side of the handshake.

This script:
    1. Creates both FIFOs if they are missing (POSIX only)
    2. Opens the imaging → analysis pipe for reading, then the
       analysis → imaging pipe for writing (same order the
       controller opens them, so neither side deadlocks)
    3. Logs every control message it receives
    4. Replies to startInitProcess with the configured acknowledgment
    5. Reports a summary when the imaging side closes its pipe

Usage:
    python scripts/mock_analysis_engine.py
    python scripts/mock_analysis_engine.py --reply garbage
    python scripts/mock_analysis_engine.py --reply-delay 5

Then, in another shell:
    imaging-handshake --demo
"""

import argparse
import logging
import os
import sys
import time

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from imaging_handshake.models.phase import ControlMessage


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
)
logger = logging.getLogger(__name__)


def ensure_fifo(path: str) -> None:
    """Create a FIFO at path unless something already exists there."""
    if os.path.exists(path):
        return
    os.mkfifo(path)
    logger.info(f"Created FIFO: {path}")


def run_engine(
    to_analysis: str,
    from_analysis: str,
    reply: str,
    reply_delay: float,
) -> dict:
    """
    Serve one session.

    Returns:
        Summary dict
    """
    ensure_fifo(to_analysis)
    ensure_fifo(from_analysis)

    logger.info("=" * 60)
    logger.info("Mock Analysis Engine")
    logger.info("=" * 60)
    logger.info(f"Reading from: {to_analysis}")
    logger.info(f"Writing to:   {from_analysis}")
    logger.info(f"Reply:        {reply!r} after {reply_delay:.1f}s")
    logger.info("=" * 60)

    received = []
    session_id = None
    start_time = time.time()

    with open(to_analysis, "rb", buffering=0) as inbound, \
            open(from_analysis, "wb", buffering=0) as outbound:
        logger.info("Both pipes open, waiting for messages")

        for raw in iter(inbound.readline, b""):
            message = raw.decode("ascii", errors="replace").rstrip("\r\n")
            received.append(message)

            if session_id is None:
                session_id = message
                logger.info(f"Session identifier: {session_id}")
            elif message == ControlMessage.FIRST_FRAME_READY.value:
                logger.info("First frame ready, preparing initialization")
            elif message == ControlMessage.START_INIT_PROCESS.value:
                logger.info("Initialization burst complete, running init analysis")
                time.sleep(reply_delay)
                outbound.write((reply + "\n").encode("ascii"))
                logger.info(f"Replied: {reply}")
            elif message == ControlMessage.START_STREAM_ANALYSIS.value:
                logger.info("Streaming started, switching to online analysis")
            else:
                logger.warning(f"Unknown message: {message!r}")

    total_time = time.time() - start_time

    logger.info("=" * 60)
    logger.info("FINAL SUMMARY")
    logger.info("=" * 60)
    logger.info(f"Session: {session_id}")
    logger.info(f"Messages received: {len(received)}")
    logger.info(f"Total runtime: {total_time:.1f} seconds")
    logger.info("=" * 60)

    return {
        "session_id": session_id,
        "messages": received,
        "streamed": ControlMessage.START_STREAM_ANALYSIS.value in received,
    }


def main():
    parser = argparse.ArgumentParser(
        description="Mock analysis engine for the imaging handshake"
    )
    parser.add_argument(
        "--to-analysis",
        type=str,
        default=os.environ.get("IMAGING_OUTBOUND_PIPE", "/tmp/imaging_to_analysis"),
        help="Pipe written by the imaging controller",
    )
    parser.add_argument(
        "--from-analysis",
        type=str,
        default=os.environ.get("IMAGING_INBOUND_PIPE", "/tmp/imaging_from_analysis"),
        help="Pipe read by the imaging controller",
    )
    parser.add_argument(
        "--reply",
        type=str,
        default=ControlMessage.START_STREAM_ACQUISITION.value,
        help="Acknowledgment sent after startInitProcess",
    )
    parser.add_argument(
        "--reply-delay",
        type=float,
        default=1.0,
        help="Seconds of simulated init analysis before replying (default: 1.0)",
    )

    args = parser.parse_args()

    result = run_engine(
        to_analysis=args.to_analysis,
        from_analysis=args.from_analysis,
        reply=args.reply,
        reply_delay=args.reply_delay,
    )

    sys.exit(0 if result["streamed"] else 1)


if __name__ == "__main__":
    main()
