"""
Acquisition Phase Controller Tests
==================================

End-to-end behaviour of the phase graph against scripted frame
sources and in-memory channels.
"""

import io
import logging
import os

import pytest

from imaging_handshake.acquisition import MemoryFrameSink
from imaging_handshake.channels import ControlChannelPair
from imaging_handshake.config import AcquisitionConfig, HandshakeConfig
from imaging_handshake.controller import AcquisitionPhaseController
from imaging_handshake.errors import StoreClosed
from imaging_handshake.models import AcquisitionPhase, FailureKind

from conftest import RecordingSink, ScriptedFrameSource, make_channels, sent_messages


ACK = b"startStreamAcquisition\n"


def build_controller(session, channels, source, sink, acquisition, handshake, sleeps=None):
    return AcquisitionPhaseController(
        session=session,
        channels=channels,
        source=source,
        sink=sink,
        acquisition=acquisition,
        handshake=handshake,
        sleep=(sleeps.append if sleeps is not None else lambda _: None),
    )


@pytest.mark.parametrize("mode", ["instant", "paced"])
class TestScenarioA:
    """Full handshake: 30 initialization frames, 150 streaming frames."""

    def test_reaches_done_with_all_frames(
        self, mode, session, outbound, acquisition_config, handshake_config
    ):
        """Session ends in Done with 180 frames persisted."""
        source = ScriptedFrameSource(mode=mode)
        sink = MemoryFrameSink()
        controller = build_controller(
            session, make_channels(outbound, ACK), source, sink,
            acquisition_config, handshake_config,
        )

        result = controller.run()

        assert result.phase == AcquisitionPhase.DONE
        assert result.succeeded
        assert result.frames_persisted == 180
        assert len(sink) == 180
        assert result.frames_by_phase == {"Init": 30, "Streaming": 150}
        assert result.failure_kind is None

    def test_message_sequence(
        self, mode, session, outbound, acquisition_config, handshake_config
    ):
        """Outbound messages appear exactly once each, in protocol order."""
        controller = build_controller(
            session, make_channels(outbound, ACK), ScriptedFrameSource(mode=mode),
            MemoryFrameSink(), acquisition_config, handshake_config,
        )

        result = controller.run()

        expected = [
            "test_session",
            "FirstFrameReady",
            "startInitProcess",
            "startStreamAnalysis",
        ]
        assert sent_messages(outbound) == expected
        assert result.messages_sent == expected

    def test_milestones_follow_boundary_frames(
        self, mode, session, outbound, acquisition_config, handshake_config
    ):
        """FirstFrameReady follows frame 0; startStreamAnalysis follows frame 30."""
        sink = RecordingSink(outbound)
        controller = build_controller(
            session, make_channels(outbound, ACK), ScriptedFrameSource(mode=mode),
            sink, acquisition_config, handshake_config,
        )

        controller.run()

        # Snapshot is taken inside append, before the milestone send
        assert sink.messages_at_append[0] == ["test_session"]
        assert sink.messages_at_append[1][-1] == "FirstFrameReady"
        assert "startStreamAnalysis" not in sink.messages_at_append[30]
        assert sink.messages_at_append[31][-1] == "startStreamAnalysis"

    def test_counter_contiguous_across_phases(
        self, mode, session, outbound, acquisition_config, handshake_config
    ):
        """Sequence indices run 0..179 with no reset and no gap."""
        sink = MemoryFrameSink()
        controller = build_controller(
            session, make_channels(outbound, ACK), ScriptedFrameSource(mode=mode),
            sink, acquisition_config, handshake_config,
        )

        controller.run()

        indices = [frame.index for frame in sink.frames]
        assert indices == list(range(180))
        assert all(frame.coordinate.time == frame.index for frame in sink.frames)
        assert {(f.coordinate.stage, f.coordinate.channel, f.coordinate.z) for f in sink.frames} == {(0, 0, 0)}
        assert controller.frame_count == 180


class TestBursts:
    """Burst parameters handed to the frame source."""

    def test_burst_sizes_and_intervals(self, session, outbound, handshake_config):
        """Streaming burst requests initial + streaming frames."""
        acquisition = AcquisitionConfig(
            initial_frames=30,
            streaming_frames=150,
            interval_init_ms=50.0,
            interval_stream_ms=20.0,
        )
        source = ScriptedFrameSource()
        controller = build_controller(
            session, make_channels(outbound, ACK), source, MemoryFrameSink(),
            acquisition, handshake_config,
        )

        controller.run()

        assert source.bursts == [(30, 50.0, True), (180, 20.0, True)]
        assert source.stop_calls == 2

    def test_settling_delay_after_ack(
        self, session, outbound, acquisition_config, handshake_config
    ):
        """The settling delay is applied once, after the acknowledgment."""
        sleeps = []
        controller = build_controller(
            session, make_channels(outbound, ACK), ScriptedFrameSource(),
            MemoryFrameSink(), acquisition_config, handshake_config, sleeps,
        )

        controller.run()

        assert sleeps == [2.0]

    def test_single_initial_frame(self, session, outbound, handshake_config):
        """With initial_frames=1 both milestones still fire once."""
        acquisition = AcquisitionConfig(initial_frames=1, streaming_frames=3)
        sink = MemoryFrameSink()
        controller = build_controller(
            session, make_channels(outbound, ACK), ScriptedFrameSource(),
            sink, acquisition, handshake_config,
        )

        result = controller.run()

        assert result.phase == AcquisitionPhase.DONE
        assert len(sink) == 4
        assert sent_messages(outbound).count("FirstFrameReady") == 1
        assert sent_messages(outbound).count("startStreamAnalysis") == 1


class TestScenarioB:
    """Counterpart replies with something other than the acknowledgment."""

    @pytest.mark.parametrize("reply", [b"garbage\n", b"\n", b"startStreamAcquisition \n", b"STARTSTREAMACQUISITION\n"])
    def test_unexpected_reply_aborts(
        self, reply, session, outbound, acquisition_config, handshake_config
    ):
        """Anything but the exact acknowledgment aborts without streaming."""
        source = ScriptedFrameSource()
        sink = MemoryFrameSink()
        sleeps = []
        controller = build_controller(
            session, make_channels(outbound, reply), source, sink,
            acquisition_config, handshake_config, sleeps,
        )

        result = controller.run()

        assert result.phase == AcquisitionPhase.ABORTED
        assert result.failure_kind == FailureKind.UNEXPECTED_ACKNOWLEDGMENT
        assert len(source.bursts) == 1
        assert len(sink) == 30
        assert not sink.finalized
        assert sleeps == [2.0]
        assert sent_messages(outbound) == ["test_session", "FirstFrameReady", "startInitProcess"]

    def test_closed_inbound_aborts(
        self, session, outbound, acquisition_config, handshake_config
    ):
        """End of stream before any line is a receive failure."""
        source = ScriptedFrameSource()
        sleeps = []
        controller = build_controller(
            session, make_channels(outbound, b""), source, MemoryFrameSink(),
            acquisition_config, handshake_config, sleeps,
        )

        result = controller.run()

        assert result.phase == AcquisitionPhase.ABORTED
        assert result.failure_kind == FailureKind.RECEIVE_FAILED
        assert len(source.bursts) == 1
        assert sleeps == []

    def test_ack_timeout_aborts(self, session, outbound, acquisition_config):
        """A silent counterpart hits the acknowledgment deadline."""
        read_fd, write_fd = os.pipe()
        inbound = os.fdopen(read_fd, "rb", buffering=0)
        channels = ControlChannelPair.from_streams(outbound, inbound)
        controller = build_controller(
            session, channels, ScriptedFrameSource(), MemoryFrameSink(),
            acquisition_config, HandshakeConfig(settling_delay_sec=0, ack_timeout_sec=0.1),
        )

        try:
            result = controller.run()
        finally:
            os.close(write_fd)

        assert result.phase == AcquisitionPhase.ABORTED
        assert result.failure_kind == FailureKind.ACKNOWLEDGMENT_TIMEOUT
        assert result.frames_persisted == 30


@pytest.mark.parametrize("mode", ["instant", "paced"])
class TestScenarioC:
    """Initialization burst stops early."""

    def test_short_init_burst_aborts(
        self, mode, session, outbound, acquisition_config, handshake_config
    ):
        """20 of 30 frames: no startInitProcess, no acknowledgment read."""
        source = ScriptedFrameSource(deliver=[20], mode=mode)
        sink = MemoryFrameSink()
        controller = build_controller(
            session, make_channels(outbound, ACK), source, sink,
            acquisition_config, handshake_config,
        )

        result = controller.run()

        assert result.phase == AcquisitionPhase.ABORTED
        assert result.failure_kind == FailureKind.INSUFFICIENT_FRAMES
        assert "20 of 30" in result.failure_message
        assert sent_messages(outbound) == ["test_session", "FirstFrameReady"]
        assert len(source.bursts) == 1
        assert len(sink) == 20
        assert controller.channels.metrics.lines_received == 0

    def test_empty_init_burst_sends_nothing(
        self, mode, session, outbound, acquisition_config, handshake_config
    ):
        """No frames at all: FirstFrameReady is never sent."""
        controller = build_controller(
            session, make_channels(outbound, ACK), ScriptedFrameSource(deliver=[0], mode=mode),
            MemoryFrameSink(), acquisition_config, handshake_config,
        )

        result = controller.run()

        assert result.phase == AcquisitionPhase.ABORTED
        assert sent_messages(outbound) == ["test_session"]


class BrokenOutbound(io.RawIOBase):
    """Outbound stream whose every write fails."""

    def writable(self):
        return True

    def write(self, data):
        raise BrokenPipeError("reader went away")


class TestBestEffortSends:
    """Send failures are logged and never change the phase."""

    def test_session_completes_when_every_send_fails(
        self, session, acquisition_config, handshake_config
    ):
        channels = ControlChannelPair.from_streams(BrokenOutbound(), io.BytesIO(ACK))
        controller = build_controller(
            session, channels, ScriptedFrameSource(), MemoryFrameSink(),
            acquisition_config, handshake_config,
        )

        result = controller.run()

        assert result.phase == AcquisitionPhase.DONE
        assert result.messages_sent == []
        assert result.channel_metrics["send_failures"] == 4
        assert result.channel_metrics["messages_sent"] == 0


class TestFinalize:
    """Store finalization happens once, only on Done."""

    def test_finalize_called_once_on_done(
        self, session, outbound, acquisition_config, handshake_config
    ):
        sink = MemoryFrameSink()
        controller = build_controller(
            session, make_channels(outbound, ACK), ScriptedFrameSource(), sink,
            acquisition_config, handshake_config,
        )

        controller.run()

        assert sink.finalize_calls == 1
        with pytest.raises(StoreClosed):
            sink.append(sink.frames[-1])

    def test_controller_runs_only_once(
        self, session, outbound, acquisition_config, handshake_config
    ):
        sink = MemoryFrameSink()
        controller = build_controller(
            session, make_channels(outbound, ACK), ScriptedFrameSource(), sink,
            acquisition_config, handshake_config,
        )
        controller.run()

        with pytest.raises(RuntimeError):
            controller.run()
        assert sink.finalize_calls == 1

    def test_closed_store_propagates(
        self, session, outbound, acquisition_config, handshake_config
    ):
        """Appending to an already finalized store is a contract violation."""
        sink = MemoryFrameSink()
        sink.finalize()
        controller = build_controller(
            session, make_channels(outbound, ACK), ScriptedFrameSource(), sink,
            acquisition_config, handshake_config,
        )

        with pytest.raises(StoreClosed):
            controller.run()

    def test_phase_before_run_is_init(
        self, session, outbound, acquisition_config, handshake_config
    ):
        controller = build_controller(
            session, make_channels(outbound, ACK), ScriptedFrameSource(),
            MemoryFrameSink(), acquisition_config, handshake_config,
        )

        assert controller.phase == AcquisitionPhase.INIT
        assert controller.result is None


class ArrivingDuringStoreSource(ScriptedFrameSource):
    """Paced source where the next frame lands while the current one is stored."""

    def take_next(self):
        image = super().take_next()
        if image is not None:
            self.wait_for_frame(0)
        return image


class TestProgressLogging:
    """Progress lines report the backlog after each stored frame."""

    def test_pending_reflects_frames_arrived_during_store(
        self, session, outbound, handshake_config, caplog
    ):
        acquisition = AcquisitionConfig(
            initial_frames=3,
            streaming_frames=0,
            poll_interval_ms=1.0,
            log_every_n_frames=1,
        )
        controller = build_controller(
            session, make_channels(outbound, ACK),
            ArrivingDuringStoreSource(mode="paced"), MemoryFrameSink(),
            acquisition, handshake_config,
        )

        with caplog.at_level(logging.INFO, logger="imaging_handshake.controller.graph"):
            result = controller.run()

        assert result.phase == AcquisitionPhase.DONE
        assert "Acquired 1 frames (pending=1)" in caplog.text
        assert "Acquired 3 frames (pending=0)" in caplog.text
