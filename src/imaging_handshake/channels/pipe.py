"""
Control Channel Pair
====================

Two unidirectional, line-delimited byte channels shared with the
analysis engine.

    outbound: this process → analysis engine (sole writer: controller)
    inbound:  analysis engine → this process (sole writer: engine)

The channels are named pipes created outside this component. They are
opened once per session; failing to open either one is fatal.

Design Rules:
    - Plain ASCII lines, identity by exact string equality
    - The line terminator is resolved once, never per call
    - Sends are fire-and-forget; a failed send is never retried
    - Reads block until a full line arrives, the channel closes,
      or the optional deadline passes
"""

import logging
import queue
import threading
from pathlib import Path
from typing import BinaryIO, Optional, Union

from imaging_handshake.config import ChannelConfig
from imaging_handshake.errors import (
    AcknowledgmentTimeout,
    ChannelUnavailable,
    ReceiveFailed,
    SendFailed,
)


logger = logging.getLogger(__name__)


# Marks end of stream in the reader queue
_EOF = object()


class ChannelMetrics:
    """Metrics for ControlChannelPair observability."""

    __slots__ = (
        "messages_sent",
        "send_failures",
        "lines_received",
        "receive_failures",
    )

    def __init__(self) -> None:
        self.messages_sent: int = 0
        self.send_failures: int = 0
        self.lines_received: int = 0
        self.receive_failures: int = 0

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "messages_sent": self.messages_sent,
            "send_failures": self.send_failures,
            "lines_received": self.lines_received,
            "receive_failures": self.receive_failures,
        }


class ControlChannelPair:
    """
    Outbound and inbound control channels for one session.

    Attributes:
        outbound_path: Pipe carrying messages to the analysis engine
        inbound_path: Pipe carrying messages from the analysis engine
        terminator: Line terminator appended to every outbound message
        encoding: Text encoding of messages
        metrics: Operational counters

    Example:
        channels = ControlChannelPair.from_config(settings.channels)
        channels.open_outbound()
        channels.open_receive()

        channels.send_best_effort("FirstFrameReady")
        reply = channels.receive_line(timeout=300.0)
    """

    def __init__(
        self,
        outbound_path: Optional[Union[str, Path]] = None,
        inbound_path: Optional[Union[str, Path]] = None,
        terminator: str = "\n",
        encoding: str = "ascii",
    ) -> None:
        """
        Initialize the channel pair without opening anything.

        Args:
            outbound_path: Path of the outbound pipe
            inbound_path: Path of the inbound pipe
            terminator: Resolved line terminator (may be empty)
            encoding: Text encoding of messages
        """
        self.outbound_path = Path(outbound_path) if outbound_path else None
        self.inbound_path = Path(inbound_path) if inbound_path else None
        self.terminator = terminator
        self.encoding = encoding

        self._outbound: Optional[BinaryIO] = None
        self._inbound: Optional[BinaryIO] = None
        self._lines: "queue.Queue[object]" = queue.Queue()
        self._reader: Optional[threading.Thread] = None

        self.metrics = ChannelMetrics()

    @classmethod
    def from_config(cls, config: ChannelConfig) -> "ControlChannelPair":
        """Create a channel pair from the channels config section."""
        return cls(
            outbound_path=config.outbound_path,
            inbound_path=config.inbound_path,
            terminator=config.resolve_terminator(),
            encoding=config.encoding,
        )

    @classmethod
    def from_streams(
        cls,
        outbound: BinaryIO,
        inbound: BinaryIO,
        terminator: str = "\n",
        encoding: str = "ascii",
    ) -> "ControlChannelPair":
        """
        Wrap already-open binary streams.

        Used when the pipes are handed over by a parent process, and
        by tests.
        """
        pair = cls(terminator=terminator, encoding=encoding)
        pair._outbound = outbound
        pair._inbound = inbound
        return pair

    @property
    def is_open(self) -> bool:
        """Whether both directions are open."""
        return self._outbound is not None and self._inbound is not None

    # -------------------------------------------------------------------------
    # Opening
    # -------------------------------------------------------------------------

    def open_outbound(self) -> None:
        """
        Open the outbound channel for writing.

        On a FIFO this blocks until the analysis engine opens the
        reading end.

        Raises:
            ChannelUnavailable: Path missing or not writable
        """
        self._outbound = self._open(self.outbound_path, "wb", "outbound")

    def open_receive(self) -> None:
        """
        Open the inbound channel for reading.

        Raises:
            ChannelUnavailable: Path missing or not readable
        """
        self._inbound = self._open(self.inbound_path, "rb", "inbound")

    def _open(self, path: Optional[Path], mode: str, direction: str) -> BinaryIO:
        if path is None:
            raise ChannelUnavailable(f"No {direction} channel configured")
        if not path.exists():
            raise ChannelUnavailable(f"{direction} channel does not exist: {path}")

        # Unbuffered so close() never waits on the reader thread
        try:
            stream = open(path, mode, buffering=0)
        except OSError as e:
            raise ChannelUnavailable(
                f"Cannot open {direction} channel {path}: {e}"
            ) from e

        logger.info(f"Opened {direction} channel: {path}")
        return stream

    # -------------------------------------------------------------------------
    # Sending
    # -------------------------------------------------------------------------

    def send(self, message: str) -> None:
        """
        Write one control message followed by the line terminator.

        Args:
            message: Message text (no terminator)

        Raises:
            SendFailed: Channel not open, message not encodable, or write error
        """
        if self._outbound is None:
            self.metrics.send_failures += 1
            raise SendFailed("Outbound channel is not open")

        try:
            payload = (message + self.terminator).encode(self.encoding)
            self._outbound.write(payload)
            self._outbound.flush()
        except (OSError, ValueError) as e:
            self.metrics.send_failures += 1
            raise SendFailed(f"Failed to send {message!r}: {e}") from e

        self.metrics.messages_sent += 1
        logger.debug(f"Sent control message: {message}")

    def send_best_effort(self, message: str) -> bool:
        """
        Send a message, logging instead of raising on failure.

        The counterpart is assumed to tolerate a missing advisory
        message, so a failed send never changes the current phase.

        Returns:
            True if the message was written.
        """
        try:
            self.send(message)
            return True
        except SendFailed as e:
            logger.warning(f"{e} (continuing without redelivery)")
            return False

    # -------------------------------------------------------------------------
    # Receiving
    # -------------------------------------------------------------------------

    def receive_line(self, timeout: Optional[float] = None) -> str:
        """
        Block until one full line arrives on the inbound channel.

        A final unterminated line is returned when the writer closes
        its end, which is how counterparts without a line terminator
        deliver their message.

        Args:
            timeout: Seconds to wait. None or 0 = wait forever.

        Returns:
            The line with its terminator stripped.

        Raises:
            AcknowledgmentTimeout: No line before the deadline
            ReceiveFailed: Channel not open, closed, or read error
        """
        if self._inbound is None:
            self.metrics.receive_failures += 1
            raise ReceiveFailed("Inbound channel is not open")

        self._ensure_reader()

        try:
            if timeout:
                item = self._lines.get(timeout=timeout)
            else:
                item = self._lines.get()
        except queue.Empty:
            self.metrics.receive_failures += 1
            raise AcknowledgmentTimeout(
                f"No message on inbound channel within {timeout:.1f}s"
            )

        if item is _EOF:
            self.metrics.receive_failures += 1
            raise ReceiveFailed("Inbound channel closed before a line arrived")
        if isinstance(item, Exception):
            self.metrics.receive_failures += 1
            raise ReceiveFailed(f"Inbound read failed: {item}") from item

        self.metrics.lines_received += 1
        line = item.decode(self.encoding, errors="replace").rstrip("\r\n")
        logger.debug(f"Received control message: {line!r}")
        return line

    def _ensure_reader(self) -> None:
        """Start the background reader the first time it is needed."""
        if self._reader is not None:
            return
        self._reader = threading.Thread(
            target=self._read_loop,
            name="inbound-channel-reader",
            daemon=True,
        )
        self._reader.start()

    def _read_loop(self) -> None:
        """Read lines until end of stream, forwarding them to the queue."""
        stream = self._inbound
        try:
            while True:
                raw = stream.readline()
                if not raw:
                    self._lines.put(_EOF)
                    return
                self._lines.put(raw)
        except (OSError, ValueError) as e:
            self._lines.put(e)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close both directions. Safe to call more than once."""
        for name in ("_outbound", "_inbound"):
            stream = getattr(self, name)
            if stream is None:
                continue
            try:
                stream.close()
            except OSError as e:
                logger.warning(f"Error closing channel: {e}")
            setattr(self, name, None)

    def __enter__(self) -> "ControlChannelPair":
        return self

    def __exit__(self, *args) -> None:
        self.close()
