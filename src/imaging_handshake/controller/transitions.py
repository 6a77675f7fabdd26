"""
Phase Transition Guards
=======================

Deterministic guards deciding where the acquisition state machine goes
after each phase.

Transition Rules:
    Init → AwaitAck:      drained frames == initial_frames
    Init → Aborted:       anything else (InsufficientFrames)
    AwaitAck → Streaming: received line == "startStreamAcquisition"
    AwaitAck → Aborted:   any other line, including "" (UnexpectedAcknowledgment)
    Streaming → Done:     always, once the streaming drain ends

Drain Rules:
    Init:      continue while pending > 0 or the burst is active
    Streaming: continue while pending > initial_frames or the burst is
               active, and fewer than streaming_frames were drained
"""

from dataclasses import dataclass
from typing import Optional

from imaging_handshake.errors import (
    HandshakeError,
    InsufficientFrames,
    UnexpectedAcknowledgment,
)
from imaging_handshake.models.phase import AcquisitionPhase, ControlMessage


@dataclass
class TransitionResult:
    """Result of a guard evaluation."""

    next_phase: AcquisitionPhase
    failure: Optional[HandshakeError] = None

    def __repr__(self) -> str:
        failure = self.failure.kind.value if self.failure else None
        return f"TransitionResult({self.next_phase.value}, failure={failure})"


def evaluate_init(drained: int, initial_frames: int) -> TransitionResult:
    """
    Guard at the end of the initialization burst.

    The counterpart expects exactly the configured number of frames,
    so any shortfall aborts the handshake.
    """
    if drained == initial_frames:
        return TransitionResult(AcquisitionPhase.AWAIT_ACK)
    return TransitionResult(
        AcquisitionPhase.ABORTED,
        InsufficientFrames(drained=drained, expected=initial_frames),
    )


def evaluate_ack(line: str) -> TransitionResult:
    """Guard on the single inbound acknowledgment (exact match only)."""
    if line == ControlMessage.START_STREAM_ACQUISITION.value:
        return TransitionResult(AcquisitionPhase.STREAMING)
    return TransitionResult(
        AcquisitionPhase.ABORTED,
        UnexpectedAcknowledgment(line),
    )


def should_drain(
    active: bool,
    pending: int,
    reserve: int = 0,
    drained: int = 0,
    limit: Optional[int] = None,
) -> bool:
    """
    Drain loop condition.

    Args:
        active: Whether the burst is still producing
        pending: Captured-but-undelivered frames
        reserve: Pending frames that may be left behind once the burst ends
        drained: Frames drained so far in this phase
        limit: Maximum frames to drain in this phase (None = unbounded)
    """
    if limit is not None and drained >= limit:
        return False
    return pending > reserve or active
