"""
Test Configuration
==================

Pytest fixtures and test doubles for the imaging handshake.
"""

import io
from collections import deque
from datetime import datetime
from typing import List, Optional

import numpy as np
import pytest

from imaging_handshake.acquisition import CapturedImage, FrameRecord, MemoryFrameSink
from imaging_handshake.channels import ControlChannelPair
from imaging_handshake.config import AcquisitionConfig, HandshakeConfig
from imaging_handshake.models import Session


class ScriptedFrameSource:
    """
    Frame source that delivers a scripted number of frames per burst.

    In "instant" mode every frame of a burst is pending as soon as the
    burst starts. In "paced" mode the burst stays active and frames
    arrive one at a time, each time the controller waits for a frame.
    """

    def __init__(self, deliver: Optional[List[int]] = None, mode: str = "instant") -> None:
        self.deliver = list(deliver or [])
        self.mode = mode
        self.bursts: List[tuple] = []
        self.stop_calls = 0
        self._pending: deque = deque()
        self._remaining = 0

    def start_burst(self, frame_count, interval_ms, stop_on_overflow=True):
        self.bursts.append((frame_count, interval_ms, stop_on_overflow))
        count = frame_count
        if len(self.deliver) >= len(self.bursts):
            count = min(frame_count, self.deliver[len(self.bursts) - 1])

        self._pending.clear()
        if self.mode == "instant":
            for _ in range(count):
                self._pending.append(self._image())
            self._remaining = 0
        else:
            self._remaining = count

    def pending_count(self):
        return len(self._pending)

    def is_active(self):
        return self._remaining > 0

    def take_next(self):
        if not self._pending:
            return None
        return self._pending.popleft()

    def wait_for_frame(self, timeout):
        if self._remaining > 0:
            self._remaining -= 1
            self._pending.append(self._image())
        return bool(self._pending)

    def stop(self):
        self.stop_calls += 1
        self._remaining = 0

    @staticmethod
    def _image():
        return CapturedImage(pixels=np.zeros((4, 4), dtype=np.uint16), timestamp=0.0)


class RecordingSink(MemoryFrameSink):
    """Memory sink that snapshots the outbound messages at every append."""

    def __init__(self, outbound: io.BytesIO) -> None:
        super().__init__()
        self._outbound = outbound
        self.messages_at_append: List[List[str]] = []

    def append(self, frame: FrameRecord) -> None:
        super().append(frame)
        self.messages_at_append.append(sent_messages(self._outbound))


def sent_messages(outbound: io.BytesIO) -> List[str]:
    """Decode the lines written to an in-memory outbound channel."""
    return outbound.getvalue().decode("ascii").splitlines()


@pytest.fixture
def session(tmp_path):
    """Provide a fixed session identity."""
    return Session(
        session_id="test_session",
        created_at=datetime(2026, 10, 19, 10, 15, 0),
        storage_path=tmp_path / "test_session.tif",
    )


@pytest.fixture
def acquisition_config():
    """Scenario A sizes with no inter-frame delay."""
    return AcquisitionConfig(
        initial_frames=30,
        streaming_frames=150,
        poll_interval_ms=1.0,
    )


@pytest.fixture
def handshake_config():
    """Short deadline and a settling delay the tests can observe."""
    return HandshakeConfig(settling_delay_sec=2.0, ack_timeout_sec=5.0)


@pytest.fixture
def outbound():
    return io.BytesIO()


def make_channels(outbound: io.BytesIO, reply: bytes) -> ControlChannelPair:
    """Channel pair whose inbound side already holds reply."""
    return ControlChannelPair.from_streams(outbound, io.BytesIO(reply), terminator="\n")
