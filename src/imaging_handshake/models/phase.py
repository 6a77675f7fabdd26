"""
Acquisition Phase Models
========================

Discrete phases of one acquisition session and the fixed control
vocabulary exchanged with the analysis engine.

Phases:
    Init → AwaitAck → Streaming → Done
      └──────┴──────────→ Aborted

Messages (outbound):
    <sessionId>          once at startup
    FirstFrameReady      first frame of the initialization burst
    startInitProcess     initialization burst complete
    startStreamAnalysis  first frame of the streaming burst

Messages (inbound):
    startStreamAcquisition  the only accepted acknowledgment
"""

from enum import Enum


class AcquisitionPhase(str, Enum):
    """
    Phase of the acquisition state machine.

    Exactly one phase is current per session. Done and Aborted are
    terminal.

    Attributes:
        INIT: Initialization burst is being captured
        AWAIT_ACK: Blocked on the counterpart's acknowledgment
        STREAMING: Streaming burst is being captured
        DONE: Session completed and store finalized
        ABORTED: Session stopped before completing the handshake
    """

    INIT = "Init"
    AWAIT_ACK = "AwaitAck"
    STREAMING = "Streaming"
    DONE = "Done"
    ABORTED = "Aborted"

    @property
    def is_terminal(self) -> bool:
        """Whether no further transitions are possible."""
        return self in (AcquisitionPhase.DONE, AcquisitionPhase.ABORTED)


class ControlMessage(str, Enum):
    """
    Fixed control vocabulary.

    Identity is by exact string equality; no framing beyond the line
    terminator is applied.
    """

    FIRST_FRAME_READY = "FirstFrameReady"
    START_INIT_PROCESS = "startInitProcess"
    START_STREAM_ANALYSIS = "startStreamAnalysis"
    START_STREAM_ACQUISITION = "startStreamAcquisition"
