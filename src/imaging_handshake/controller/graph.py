"""
Acquisition Phase Graph
=======================

LangGraph state machine driving one acquisition session.

LangGraph is used for CONTROL FLOW only. Each node is one phase; the
conditional edges apply the guards from transitions.py.

Graph Structure:
    START → init ─┬→ await_ack ─┬→ streaming → done → END
                  └─────────────┴→ aborted → END

Handshake (outbound unless noted):
    <sessionId>             before init
    FirstFrameReady         after the frame with index 0 is stored
    startInitProcess        init drained exactly initial_frames
    startStreamAcquisition  (inbound) awaited in await_ack
    startStreamAnalysis     after the frame with index initial_frames is stored

Design Philosophy:
    - Single thread of control owns the counter and the phase
    - Control messages are best-effort; only the inbound read can abort
    - The frame counter never resets between phases
"""

import logging
import time
from typing import Any, Callable, Dict, List, Optional, Tuple, TypedDict

from langgraph.graph import StateGraph, END

from imaging_handshake.acquisition.frame import FrameRecord
from imaging_handshake.acquisition.sink import FrameSink
from imaging_handshake.acquisition.source import FrameSource
from imaging_handshake.channels.pipe import ControlChannelPair
from imaging_handshake.config import AcquisitionConfig, HandshakeConfig
from imaging_handshake.controller.transitions import (
    evaluate_ack,
    evaluate_init,
    should_drain,
)
from imaging_handshake.errors import HandshakeError, ReceiveFailed
from imaging_handshake.models.output import SessionResult
from imaging_handshake.models.phase import AcquisitionPhase, ControlMessage
from imaging_handshake.models.session import Session


logger = logging.getLogger(__name__)


class HandshakeGraphState(TypedDict):
    """
    State passed through the phase graph.

    Attributes:
        phase: Current acquisition phase
        frame_count: Running frame counter (next sequence index)
        frames_by_phase: Frames drained per phase
        messages_sent: Outbound messages written so far
        failure: Error that aborted the session, if any
    """
    phase: AcquisitionPhase
    frame_count: int
    frames_by_phase: Dict[str, int]
    messages_sent: List[str]
    failure: Optional[HandshakeError]


def create_initial_state(messages_sent: Optional[List[str]] = None) -> HandshakeGraphState:
    """Create initial graph state."""
    return {
        "phase": AcquisitionPhase.INIT,
        "frame_count": 0,
        "frames_by_phase": {},
        "messages_sent": list(messages_sent or []),
        "failure": None,
    }


class AcquisitionPhaseController:
    """
    State machine tying frame capture to the analysis handshake.

    Pulls frames from the source, hands each one to the sink, and sends
    control messages at fixed frame-count milestones. Between the two
    bursts it blocks on the inbound channel for the acknowledgment.

    A controller runs exactly one session.

    Example:
        controller = AcquisitionPhaseController(
            session=session,
            channels=channels,
            source=SimulatedFrameSource(),
            sink=TiffFrameSink(session.storage_path),
        )
        result = controller.run()
    """

    def __init__(
        self,
        session: Session,
        channels: ControlChannelPair,
        source: FrameSource,
        sink: FrameSink,
        acquisition: Optional[AcquisitionConfig] = None,
        handshake: Optional[HandshakeConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """
        Initialize the controller.

        Args:
            session: Identity of this run
            channels: Opened control channel pair
            source: Camera burst source
            sink: Frame store
            acquisition: Burst sizes and timing (uses defaults if None)
            handshake: Acknowledgment timing (uses defaults if None)
            sleep: Sleep function used for the settling delay
        """
        self.session = session
        self.channels = channels
        self.source = source
        self.sink = sink
        self.acquisition = acquisition or AcquisitionConfig()
        self.handshake = handshake or HandshakeConfig()
        self._sleep = sleep

        self._poll_sec = self.acquisition.poll_interval_ms / 1000.0
        self._graph = self._build_graph()
        self._state: HandshakeGraphState = create_initial_state()
        self._result: Optional[SessionResult] = None

        logger.info(
            f"AcquisitionPhaseController initialized: session={session.session_id}, "
            f"initial={self.acquisition.initial_frames}, "
            f"streaming={self.acquisition.streaming_frames}"
        )

    def _build_graph(self) -> StateGraph:
        """Build the LangGraph workflow."""
        workflow = StateGraph(HandshakeGraphState)

        workflow.add_node("init", self._init_node)
        workflow.add_node("await_ack", self._await_ack_node)
        workflow.add_node("streaming", self._streaming_node)
        workflow.add_node("done", self._done_node)
        workflow.add_node("aborted", self._aborted_node)

        workflow.set_entry_point("init")
        workflow.add_conditional_edges(
            "init",
            self._route,
            {AcquisitionPhase.AWAIT_ACK.value: "await_ack", AcquisitionPhase.ABORTED.value: "aborted"},
        )
        workflow.add_conditional_edges(
            "await_ack",
            self._route,
            {AcquisitionPhase.STREAMING.value: "streaming", AcquisitionPhase.ABORTED.value: "aborted"},
        )
        workflow.add_edge("streaming", "done")
        workflow.add_edge("done", END)
        workflow.add_edge("aborted", END)

        return workflow.compile()

    @staticmethod
    def _route(state: HandshakeGraphState) -> str:
        return state["phase"].value

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def run(self) -> SessionResult:
        """
        Run the session to a terminal phase.

        Returns:
            SessionResult describing the outcome

        Raises:
            RuntimeError: The controller already ran
            StoreClosed: The sink rejected a frame
        """
        if self._result is not None:
            raise RuntimeError("Controller already ran a session")

        sent = []
        if self.channels.send_best_effort(self.session.session_id):
            sent.append(self.session.session_id)

        self._state = self._graph.invoke(create_initial_state(messages_sent=sent))
        self._result = self._build_result(self._state)
        return self._result

    @property
    def phase(self) -> AcquisitionPhase:
        """Current (or final) phase."""
        return self._state["phase"]

    @property
    def frame_count(self) -> int:
        """Running frame counter."""
        return self._state["frame_count"]

    @property
    def result(self) -> Optional[SessionResult]:
        """Result of the completed session, if any."""
        return self._result

    # -------------------------------------------------------------------------
    # Nodes
    # -------------------------------------------------------------------------

    def _init_node(self, state: HandshakeGraphState) -> Dict[str, Any]:
        """
        Capture the initialization burst.

        Sends FirstFrameReady after the session's first frame and
        startInitProcess when exactly initial_frames were drained.
        """
        initial = self.acquisition.initial_frames
        logger.info(f"Phase {AcquisitionPhase.INIT.value}: capturing {initial} frames")

        self.source.start_burst(initial, self.acquisition.interval_init_ms, stop_on_overflow=True)
        counter, drained, sent = self._drain(
            start=state["frame_count"],
            milestone_index=0,
            milestone_message=ControlMessage.FIRST_FRAME_READY,
        )
        self.source.stop()

        messages = state["messages_sent"] + sent
        result = evaluate_init(drained, initial)
        if result.next_phase == AcquisitionPhase.AWAIT_ACK:
            if self._send(ControlMessage.START_INIT_PROCESS):
                messages.append(ControlMessage.START_INIT_PROCESS.value)
        else:
            logger.warning(f"{result.failure}; handshake cannot proceed")

        self._log_transition(AcquisitionPhase.INIT, result.next_phase)
        return {
            "phase": result.next_phase,
            "frame_count": counter,
            "frames_by_phase": {**state["frames_by_phase"], AcquisitionPhase.INIT.value: drained},
            "messages_sent": messages,
            "failure": result.failure,
        }

    def _await_ack_node(self, state: HandshakeGraphState) -> Dict[str, Any]:
        """Block for the counterpart's acknowledgment, then settle."""
        timeout = self.handshake.ack_timeout_sec or None
        logger.info(
            f"Phase {AcquisitionPhase.AWAIT_ACK.value}: waiting for "
            f"{ControlMessage.START_STREAM_ACQUISITION.value} "
            f"(timeout={'none' if timeout is None else f'{timeout:.1f}s'})"
        )

        try:
            line = self.channels.receive_line(timeout=timeout)
        except ReceiveFailed as e:
            logger.error(f"Acknowledgment not received: {e}")
            self._log_transition(AcquisitionPhase.AWAIT_ACK, AcquisitionPhase.ABORTED)
            return {"phase": AcquisitionPhase.ABORTED, "failure": e}

        # Counterpart has no readiness signal for its own receiving end
        if self.handshake.settling_delay_sec > 0:
            self._sleep(self.handshake.settling_delay_sec)

        result = evaluate_ack(line)
        if result.failure is not None:
            logger.warning(f"{result.failure}; not starting streaming acquisition")

        self._log_transition(AcquisitionPhase.AWAIT_ACK, result.next_phase)
        return {"phase": result.next_phase, "failure": result.failure}

    def _streaming_node(self, state: HandshakeGraphState) -> Dict[str, Any]:
        """
        Capture the streaming burst.

        The burst requests initial_frames extra frames as headroom; the
        drain stops after streaming_frames frames.
        """
        initial = self.acquisition.initial_frames
        streaming = self.acquisition.streaming_frames
        logger.info(f"Phase {AcquisitionPhase.STREAMING.value}: capturing {streaming} frames")

        self.source.start_burst(
            initial + streaming,
            self.acquisition.interval_stream_ms,
            stop_on_overflow=True,
        )
        counter, drained, sent = self._drain(
            start=state["frame_count"],
            milestone_index=initial,
            milestone_message=ControlMessage.START_STREAM_ANALYSIS,
            reserve=initial,
            limit=streaming,
        )
        self.source.stop()

        if drained < streaming:
            logger.warning(f"Streaming burst ended after {drained} of {streaming} frames")

        self._log_transition(AcquisitionPhase.STREAMING, AcquisitionPhase.DONE)
        return {
            "phase": AcquisitionPhase.DONE,
            "frame_count": counter,
            "frames_by_phase": {**state["frames_by_phase"], AcquisitionPhase.STREAMING.value: drained},
            "messages_sent": state["messages_sent"] + sent,
        }

    def _done_node(self, state: HandshakeGraphState) -> Dict[str, Any]:
        self.sink.finalize()
        logger.info(
            f"Session {self.session.session_id} complete: "
            f"{state['frame_count']} frames persisted"
        )
        return {"phase": AcquisitionPhase.DONE}

    def _aborted_node(self, state: HandshakeGraphState) -> Dict[str, Any]:
        failure = state.get("failure")
        logger.error(
            f"Session {self.session.session_id} aborted after "
            f"{state['frame_count']} frames: {failure}"
        )
        return {"phase": AcquisitionPhase.ABORTED}

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _drain(
        self,
        start: int,
        milestone_index: int,
        milestone_message: ControlMessage,
        reserve: int = 0,
        limit: Optional[int] = None,
    ) -> Tuple[int, int, List[str]]:
        """
        Move frames from the source to the sink.

        Args:
            start: Sequence index of the next frame
            milestone_index: Index after whose storage milestone_message is sent
            milestone_message: Message sent once, at milestone_index
            reserve: Pending frames that may be left once the burst ends
            limit: Maximum frames to drain

        Returns:
            Tuple of (next counter, frames drained, messages sent)
        """
        counter = start
        drained = 0
        sent: List[str] = []

        while True:
            # Read active before pending so the last frame is never missed
            active = self.source.is_active()
            pending = self.source.pending_count()
            if not should_drain(active, pending, reserve, drained, limit):
                break

            image = self.source.take_next() if pending > 0 else None
            if image is None:
                self.source.wait_for_frame(self._poll_sec)
                continue

            self.sink.append(FrameRecord.from_capture(counter, image))
            if counter == milestone_index and self._send(milestone_message):
                sent.append(milestone_message.value)

            counter += 1
            drained += 1

            if counter % self.acquisition.log_every_n_frames == 0:
                logger.info(f"Acquired {counter} frames (pending={self.source.pending_count()})")

        return counter, drained, sent

    def _send(self, message: ControlMessage) -> bool:
        ok = self.channels.send_best_effort(message.value)
        if ok:
            logger.info(f"Sent {message.value}")
        return ok

    @staticmethod
    def _log_transition(old: AcquisitionPhase, new: AcquisitionPhase) -> None:
        if new == AcquisitionPhase.ABORTED:
            logger.warning(f"PHASE CHANGE: {old.value} → {new.value}")
        else:
            logger.info(f"PHASE CHANGE: {old.value} → {new.value}")

    def _build_result(self, state: HandshakeGraphState) -> SessionResult:
        failure = state.get("failure")
        return SessionResult(
            session_id=self.session.session_id,
            phase=state["phase"],
            frames_persisted=state["frame_count"],
            frames_by_phase=state["frames_by_phase"],
            messages_sent=state["messages_sent"],
            failure_kind=failure.kind if failure is not None else None,
            failure_message=str(failure) if failure is not None else None,
            channel_metrics=self.channels.metrics.to_dict(),
        )
