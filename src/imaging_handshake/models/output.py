"""
Session Result Models
=====================

Typed outcome of one acquisition session.

The controller never raises for guard failures; instead it returns a
SessionResult that the orchestrating caller inspects.

Output Contract:
    {
        "session_id": "20261019_101500",
        "phase": "Done",
        "frames_persisted": 180,
        "frames_by_phase": {"Init": 30, "Streaming": 150},
        "messages_sent": ["20261019_101500", "FirstFrameReady", ...],
        "failure_kind": null,
        "failure_message": null,
        "channel_metrics": {...}
    }
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from imaging_handshake.models.failures import FailureKind
from imaging_handshake.models.phase import AcquisitionPhase


class SessionResult(BaseModel):
    """
    Final outcome of a session.

    Attributes:
        session_id: Identifier of the session
        phase: Terminal phase reached (Done or Aborted)
        frames_persisted: Frames handed to the sink
        frames_by_phase: Frames drained per phase
        messages_sent: Outbound messages actually written, in order
        failure_kind: Why the session aborted, if it did
        failure_message: Human-readable detail for failure_kind
        channel_metrics: Control channel counters
    """

    session_id: str = Field(..., description="Session identifier")

    phase: AcquisitionPhase = Field(
        ...,
        description="Terminal phase (Done or Aborted)",
    )

    frames_persisted: int = Field(
        default=0,
        ge=0,
        description="Number of frames appended to the sink",
    )

    frames_by_phase: Dict[str, int] = Field(
        default_factory=dict,
        description="Frames drained in each phase",
    )

    messages_sent: List[str] = Field(
        default_factory=list,
        description="Outbound control messages successfully written",
    )

    failure_kind: Optional[FailureKind] = Field(
        default=None,
        description="Failure code when the session aborted",
    )

    failure_message: Optional[str] = Field(
        default=None,
        description="Human-readable failure detail",
    )

    channel_metrics: Dict[str, int] = Field(
        default_factory=dict,
        description="Control channel counters",
    )

    @property
    def succeeded(self) -> bool:
        """Whether the session reached Done."""
        return self.phase == AcquisitionPhase.DONE
