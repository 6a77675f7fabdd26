"""
Handshake Errors
================

Exception taxonomy for the acquisition handshake.

Propagation:
    - ChannelUnavailable: fatal, raised before any frame is captured
    - SendFailed: advisory, logged and counted by the controller
    - ReceiveFailed / AcknowledgmentTimeout: abort the session
    - InsufficientFrames / UnexpectedAcknowledgment: guard failures,
      recorded on the SessionResult rather than raised
    - StoreClosed: contract violation, always propagates
"""

from imaging_handshake.models.failures import FailureKind


class HandshakeError(Exception):
    """Base class for all handshake and acquisition errors."""

    kind: FailureKind


class ChannelUnavailable(HandshakeError):
    """A named control channel does not exist or cannot be opened."""

    kind = FailureKind.CHANNEL_UNAVAILABLE


class SendFailed(HandshakeError):
    """Writing a control message to the outbound channel failed."""

    kind = FailureKind.SEND_FAILED


class ReceiveFailed(HandshakeError):
    """Reading from the inbound channel failed or hit end of stream."""

    kind = FailureKind.RECEIVE_FAILED


class AcknowledgmentTimeout(ReceiveFailed):
    """No line arrived on the inbound channel before the deadline."""

    kind = FailureKind.ACKNOWLEDGMENT_TIMEOUT


class InsufficientFrames(HandshakeError):
    """The initialization burst ended before the configured frame count."""

    kind = FailureKind.INSUFFICIENT_FRAMES

    def __init__(self, drained: int, expected: int) -> None:
        super().__init__(
            f"Initialization burst delivered {drained} of {expected} frames"
        )
        self.drained = drained
        self.expected = expected


class UnexpectedAcknowledgment(HandshakeError):
    """The counterpart answered with something other than the expected ack."""

    kind = FailureKind.UNEXPECTED_ACKNOWLEDGMENT

    def __init__(self, received: str) -> None:
        super().__init__(f"Unexpected acknowledgment: {received!r}")
        self.received = received


class StoreClosed(HandshakeError):
    """A frame was appended to a store that has already been finalized."""

    kind = FailureKind.STORE_CLOSED
