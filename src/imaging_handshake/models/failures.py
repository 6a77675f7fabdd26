"""
Failure Kinds
=============

Fixed set of machine-readable failure codes for a session.

Each aborted session carries exactly ONE failure kind explaining
why the handshake could not complete.

Rules:
    - No free-text codes
    - One clear cause per code
    - Human-readable detail goes in the log and the result message
"""

from enum import Enum


class FailureKind(str, Enum):
    """
    Machine-readable failure codes.

    Attributes:
        CHANNEL_UNAVAILABLE: A control pipe could not be opened
        SEND_FAILED: An outbound write failed (advisory only)
        RECEIVE_FAILED: Reading the acknowledgment failed
        ACKNOWLEDGMENT_TIMEOUT: No acknowledgment before the deadline
        INSUFFICIENT_FRAMES: Init burst delivered fewer frames than configured
        UNEXPECTED_ACKNOWLEDGMENT: Counterpart replied with something else
        STORE_CLOSED: Frame appended after the store was finalized
    """

    CHANNEL_UNAVAILABLE = "CHANNEL_UNAVAILABLE"
    SEND_FAILED = "SEND_FAILED"
    RECEIVE_FAILED = "RECEIVE_FAILED"
    ACKNOWLEDGMENT_TIMEOUT = "ACKNOWLEDGMENT_TIMEOUT"
    INSUFFICIENT_FRAMES = "INSUFFICIENT_FRAMES"
    UNEXPECTED_ACKNOWLEDGMENT = "UNEXPECTED_ACKNOWLEDGMENT"
    STORE_CLOSED = "STORE_CLOSED"
