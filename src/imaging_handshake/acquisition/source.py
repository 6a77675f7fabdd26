"""
Frame Source
============

Abstraction over camera hardware producing bursts of images.

This module provides the FrameSource protocol and the
SimulatedFrameSource used in demo mode and tests.

Contract:
    start_burst(count, interval_ms, stop_on_overflow)
        Begin an asynchronous capture burst
    pending_count()   Captured-but-undelivered frames
    is_active()       Whether the burst is still producing
    take_next()       Remove and return the oldest pending frame
    wait_for_frame()  Bounded wait for a frame or the end of the burst
    stop()            End the burst early or confirm completion
"""

import logging
import threading
import time
from collections import deque
from typing import Deque, Optional, Protocol

import numpy as np

from imaging_handshake.acquisition.frame import CapturedImage


logger = logging.getLogger(__name__)


class FrameSource(Protocol):
    """
    Protocol for camera backends.

    Burst state is written by the capture side and read by the
    controller; implementations provide their own thread safety.
    """

    def start_burst(
        self,
        frame_count: int,
        interval_ms: float,
        stop_on_overflow: bool = True,
    ) -> None:
        ...

    def pending_count(self) -> int:
        ...

    def is_active(self) -> bool:
        ...

    def take_next(self) -> Optional[CapturedImage]:
        """Oldest pending image, or None when nothing is pending."""
        ...

    def wait_for_frame(self, timeout: float) -> bool:
        """
        Wait until a frame is pending or the burst ends.

        Returns:
            True if a frame is pending when the wait returns.
        """
        ...

    def stop(self) -> None:
        ...


class SimulatedFrameSource:
    """
    Threaded camera stand-in.

    Generates uint16 noise frames at the requested interval from a
    background thread into a bounded buffer. Starting a new burst
    clears frames left over from the previous one, like a camera
    sequence buffer.

    Attributes:
        width: Frame width in pixels
        height: Frame height in pixels
        buffer_capacity: Maximum pending frames
        fail_after: Stop every burst after this many frames (0 = never)
        overflow_count: Frames lost to buffer overflow

    Example:
        source = SimulatedFrameSource(width=64, height=64)
        source.start_burst(30, interval_ms=10)

        while source.is_active() or source.pending_count() > 0:
            image = source.take_next()
    """

    def __init__(
        self,
        width: int = 512,
        height: int = 512,
        buffer_capacity: int = 1000,
        fail_after: int = 0,
        seed: int = 0,
    ) -> None:
        if buffer_capacity < 1:
            raise ValueError("buffer_capacity must be >= 1")

        self.width = width
        self.height = height
        self.buffer_capacity = buffer_capacity
        self.fail_after = fail_after

        self._rng = np.random.default_rng(seed)
        self._pending: Deque[CapturedImage] = deque()
        self._condition = threading.Condition()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._active: bool = False

        self.overflow_count: int = 0
        self.total_captured: int = 0

        logger.info(
            f"SimulatedFrameSource initialized: {width}x{height}, "
            f"buffer={buffer_capacity}, fail_after={fail_after or 'never'}"
        )

    def start_burst(
        self,
        frame_count: int,
        interval_ms: float,
        stop_on_overflow: bool = True,
    ) -> None:
        """
        Begin capturing frame_count frames in the background.

        Raises:
            RuntimeError: A burst is already running
        """
        if frame_count < 0:
            raise ValueError("frame_count must be >= 0")

        with self._condition:
            if self._active:
                raise RuntimeError("A burst is already active")
            self._pending.clear()
            self._active = True

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._capture_loop,
            args=(frame_count, interval_ms / 1000.0, stop_on_overflow),
            name="simulated-camera",
            daemon=True,
        )
        self._thread.start()
        logger.debug(f"Burst started: {frame_count} frames @ {interval_ms}ms")

    def pending_count(self) -> int:
        with self._condition:
            return len(self._pending)

    def is_active(self) -> bool:
        with self._condition:
            return self._active

    def take_next(self) -> Optional[CapturedImage]:
        with self._condition:
            if not self._pending:
                return None
            return self._pending.popleft()

    def wait_for_frame(self, timeout: float) -> bool:
        with self._condition:
            self._condition.wait_for(
                lambda: bool(self._pending) or not self._active,
                timeout=timeout,
            )
            return bool(self._pending)

    def stop(self) -> None:
        """Stop the burst and wait for the capture thread to exit."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None
        with self._condition:
            self._active = False
            self._condition.notify_all()

    def _capture_loop(
        self,
        frame_count: int,
        interval_sec: float,
        stop_on_overflow: bool,
    ) -> None:
        try:
            for i in range(frame_count):
                if self._stop_event.is_set():
                    break
                if self.fail_after and i >= self.fail_after:
                    logger.warning(
                        f"Simulated camera stopped after {i} of {frame_count} frames"
                    )
                    break

                image = CapturedImage(
                    pixels=self._rng.integers(
                        0, 4096, size=(self.height, self.width), dtype=np.uint16
                    ),
                    timestamp=time.time(),
                )

                with self._condition:
                    if len(self._pending) >= self.buffer_capacity:
                        self.overflow_count += 1
                        if stop_on_overflow:
                            logger.error("Sequence buffer overflow, stopping burst")
                            break
                        self._pending.popleft()
                    self._pending.append(image)
                    self.total_captured += 1
                    self._condition.notify_all()

                if interval_sec > 0 and self._stop_event.wait(interval_sec):
                    break
        finally:
            with self._condition:
                self._active = False
                self._condition.notify_all()
