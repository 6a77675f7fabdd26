"""
Imaging Handshake
=================

Phase controller for live imaging experiments that hand off to an
external online-analysis engine.

This package drives a camera burst, persists every captured frame, and
coordinates with the analysis process over a pair of line-delimited
pipes so that an experiment splits into an initialization phase and a
streaming-analysis phase without either side polling the other.

Components:
    - channels: Outbound/inbound control pipe pair
    - acquisition: Frame source and frame sink adapters
    - controller: LangGraph-based acquisition phase state machine
    - models: Phases, control vocabulary, session and result models

Example:
    from imaging_handshake.config import load_config
    from imaging_handshake.main import run_session

    result = run_session(load_config())
    print(result.phase, result.frames_persisted)
"""

__version__ = "0.1.0"
__author__ = "Imaging Handshake Project"

__all__ = [
    "__version__",
]
