"""
Data Models
===========

Pydantic models and enums for the imaging handshake.

Models:
    Phase:
        - AcquisitionPhase: Init, AwaitAck, Streaming, Done, Aborted
        - ControlMessage: Fixed control vocabulary

    Session:
        - Session: Identity of one recording run

    Output:
        - FailureKind: Machine-readable abort codes
        - SessionResult: Typed session outcome
"""

from imaging_handshake.models.failures import FailureKind
from imaging_handshake.models.phase import AcquisitionPhase, ControlMessage
from imaging_handshake.models.session import Session, create_session
from imaging_handshake.models.output import SessionResult

__all__ = [
    # Phase
    "AcquisitionPhase",
    "ControlMessage",
    # Session
    "Session",
    "create_session",
    # Output
    "FailureKind",
    "SessionResult",
]
