"""
Frame Data Model
================

Internal frame representation for the acquisition pipeline.

Design Rules:
    - The controller assigns the sequence index, never the camera
    - Indices are zero-based, session-scoped and contiguous
    - Stage, channel and z are fixed at 0; time equals the index
"""

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True, slots=True)
class CapturedImage:
    """
    Raw image as delivered by a frame source.

    Attributes:
        pixels: Image data
        timestamp: UNIX timestamp of capture
    """

    pixels: np.ndarray
    timestamp: float

    def __repr__(self) -> str:
        """Compact repr that doesn't dump the pixels."""
        return (
            f"CapturedImage(shape={self.pixels.shape}, "
            f"timestamp={self.timestamp:.3f})"
        )


@dataclass(frozen=True, slots=True)
class FrameCoordinate:
    """Position of a frame in the store."""

    time: int
    stage: int = 0
    channel: int = 0
    z: int = 0

    def to_dict(self) -> dict:
        return {
            "time": self.time,
            "stage": self.stage,
            "channel": self.channel,
            "z": self.z,
        }


@dataclass(frozen=True, slots=True)
class FrameRecord:
    """
    Captured image plus its session sequence index.

    Owned by the controller until appended to a sink.

    Attributes:
        index: Zero-based, strictly increasing sequence index
        image: The captured image
        coordinate: Store coordinate (time = index)
    """

    index: int
    image: CapturedImage
    coordinate: FrameCoordinate

    @classmethod
    def from_capture(cls, index: int, image: CapturedImage) -> "FrameRecord":
        """Tag a captured image with its sequence index."""
        return cls(index=index, image=image, coordinate=FrameCoordinate(time=index))

    def __repr__(self) -> str:
        return f"FrameRecord(index={self.index}, {self.image!r})"
