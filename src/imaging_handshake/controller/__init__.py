"""
Controller Module
=================

LangGraph-based acquisition phase state machine.

    - graph.py: Phase graph, frame draining, handshake messages
    - transitions.py: Deterministic guards between phases

Key Design Decisions:
    - LangGraph is used for STRUCTURE, not reasoning
    - All transitions are deterministic and inspectable
    - Guard failures become a typed SessionResult, not exceptions
"""

from imaging_handshake.controller.graph import AcquisitionPhaseController
from imaging_handshake.controller.transitions import (
    TransitionResult,
    evaluate_ack,
    evaluate_init,
    should_drain,
)

__all__ = [
    "AcquisitionPhaseController",
    "TransitionResult",
    "evaluate_ack",
    "evaluate_init",
    "should_drain",
]
