"""
Acquisition Module
==================

Frame source and frame sink adapters.

The controller depends only on the FrameSource and FrameSink
protocols, never on a concrete camera or file format.

Components:
    - FrameRecord: Captured image tagged with its sequence index
    - FrameSource / SimulatedFrameSource: Burst capture
    - FrameSink / TiffFrameSink / MemoryFrameSink: Frame persistence
"""

from imaging_handshake.acquisition.frame import CapturedImage, FrameCoordinate, FrameRecord
from imaging_handshake.acquisition.source import FrameSource, SimulatedFrameSource
from imaging_handshake.acquisition.sink import FrameSink, MemoryFrameSink, TiffFrameSink


__all__ = [
    "CapturedImage",
    "FrameCoordinate",
    "FrameRecord",
    "FrameSource",
    "SimulatedFrameSource",
    "FrameSink",
    "MemoryFrameSink",
    "TiffFrameSink",
]
