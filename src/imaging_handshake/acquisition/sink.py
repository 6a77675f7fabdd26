"""
Frame Sink
==========

Persistent storage for captured frames.

Contract:
    append(frame)  Persist one frame
    finalize()     Close the store; any later append raises StoreClosed
    close()        TiffFrameSink only: release the file without finalizing;
                   later appends also raise StoreClosed

Implementations:
    - TiffFrameSink: One multi-page TIFF per session (tifffile)
    - MemoryFrameSink: Keeps frames in a list (tests, dry runs)
"""

import logging
from pathlib import Path
from typing import List, Optional, Protocol, Union

import tifffile

from imaging_handshake.acquisition.frame import FrameRecord
from imaging_handshake.errors import StoreClosed


logger = logging.getLogger(__name__)


class FrameSink(Protocol):
    """Protocol for frame stores."""

    def append(self, frame: FrameRecord) -> None:
        ...

    def finalize(self) -> None:
        ...


class MemoryFrameSink:
    """In-memory frame store."""

    def __init__(self) -> None:
        self.frames: List[FrameRecord] = []
        self.finalized: bool = False
        self.finalize_calls: int = 0

    def append(self, frame: FrameRecord) -> None:
        if self.finalized:
            raise StoreClosed(f"Cannot append frame {frame.index}: store finalized")
        self.frames.append(frame)

    def finalize(self) -> None:
        self.finalize_calls += 1
        self.finalized = True

    def __len__(self) -> int:
        return len(self.frames)


class TiffFrameSink:
    """
    Multi-page TIFF store, one page per frame.

    The file is created on the first append. Each page carries its
    frame coordinate and capture timestamp as JSON metadata.

    Attributes:
        path: Target TIFF file
        bigtiff: Write BigTIFF (needed beyond 4 GB)
        frames_written: Pages written so far
    """

    def __init__(self, path: Union[str, Path], bigtiff: bool = True) -> None:
        self.path = Path(path)
        self.bigtiff = bigtiff
        self.frames_written: int = 0

        self._writer: Optional[tifffile.TiffWriter] = None
        self._finalized: bool = False
        self._closed: bool = False

    @property
    def finalized(self) -> bool:
        return self._finalized

    def append(self, frame: FrameRecord) -> None:
        """
        Write one frame as a new page.

        Raises:
            StoreClosed: The store was already finalized or closed
        """
        if self._finalized:
            raise StoreClosed(
                f"Cannot append frame {frame.index}: {self.path} is finalized"
            )
        if self._closed:
            raise StoreClosed(
                f"Cannot append frame {frame.index}: {self.path} is closed"
            )

        if self._writer is None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._writer = tifffile.TiffWriter(self.path, bigtiff=self.bigtiff)
            logger.info(f"Opened frame store: {self.path}")

        metadata = frame.coordinate.to_dict()
        metadata["timestamp"] = frame.image.timestamp
        self._writer.write(
            frame.image.pixels,
            photometric="minisblack",
            metadata=metadata,
        )
        self.frames_written += 1

    def finalize(self) -> None:
        """Close the file. No further appends are accepted."""
        if self._writer is not None:
            self._writer.close()
            self._writer = None
        self._finalized = True
        logger.info(f"Frame store finalized: {self.path} ({self.frames_written} frames)")

    def close(self) -> None:
        """
        Release the file handle without finalizing.

        Used when a session ends without reaching Done: pages already
        written stay on disk and later appends raise StoreClosed.
        """
        self._closed = True
        if self._writer is None:
            return
        self._writer.close()
        self._writer = None
        logger.info(f"Frame store closed: {self.path} ({self.frames_written} frames)")
