"""
Frame Buffer
=============

Thread-safe bounded channel for frame delivery.

This module provides the FrameBuffer class, the channel between the
ingestion thread and consumers running elsewhere (an event loop, a UI
thread, a processing worker).

Design Rules:
    - Fixed maximum size (drops oldest on overflow)
    - put() never blocks the ingestion thread
    - Frames come out in capture order
    - Does NOT process or modify frames
"""

import logging
import threading
import time
from collections import deque
from typing import Deque, Optional

from camstream.stream.frame import Frame


logger = logging.getLogger(__name__)


class FrameBuffer:
    """
    Thread-safe bounded FIFO of frames.

    Uses a drop-oldest policy when the buffer is full so that a slow
    consumer never stalls the network read loop. Consumers that only
    care about the newest image use get_latest().

    Attributes:
        maxsize: Maximum number of frames to buffer
        dropped_count: Number of frames dropped due to overflow

    Example:
        buffer = FrameBuffer(maxsize=50)

        # Producer (ingestion thread)
        buffer.put(frame)

        # Consumer (any thread)
        frame = buffer.get(timeout=1.0)
    """

    def __init__(self, maxsize: int = 50) -> None:
        """
        Initialize frame buffer.

        Args:
            maxsize: Maximum frames to buffer. Must be >= 1.
        """
        if maxsize < 1:
            raise ValueError("maxsize must be >= 1")

        self._frames: Deque[Frame] = deque(maxlen=maxsize)
        self._ready = threading.Condition()
        self._dropped_count: int = 0
        self._total_put: int = 0

    @property
    def maxsize(self) -> int:
        return self._frames.maxlen

    @property
    def size(self) -> int:
        """Current number of frames in buffer."""
        with self._ready:
            return len(self._frames)

    @property
    def dropped_count(self) -> int:
        """Number of frames dropped due to overflow."""
        return self._dropped_count

    @property
    def total_put(self) -> int:
        """Total frames ever put into buffer."""
        return self._total_put

    def put(self, frame: Frame) -> bool:
        """
        Add frame to buffer, dropping oldest if full.

        Returns:
            True if frame was added without dropping,
            False if the oldest frame was dropped to make room.
        """
        with self._ready:
            self._total_put += 1
            dropped = len(self._frames) == self._frames.maxlen
            self._frames.append(frame)

            if dropped:
                self._dropped_count += 1
                if self._dropped_count % 100 == 1:
                    logger.warning(
                        f"Buffer full, dropped oldest frame. "
                        f"Total dropped: {self._dropped_count}"
                    )

            self._ready.notify()
            return not dropped

    def _wait_for_frame(self, timeout: Optional[float]) -> bool:
        # Caller holds self._ready
        if timeout is None:
            while not self._frames:
                self._ready.wait()
            return True

        deadline = time.monotonic() + timeout
        while not self._frames:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            self._ready.wait(remaining)
        return True

    def get(self, timeout: Optional[float] = None) -> Optional[Frame]:
        """
        Get the oldest buffered frame.

        Args:
            timeout: Maximum seconds to wait. None = wait forever.

        Returns:
            Next frame, or None if timeout occurred.
        """
        with self._ready:
            if not self._wait_for_frame(timeout):
                return None
            return self._frames.popleft()

    def get_nowait(self) -> Optional[Frame]:
        """Get the oldest buffered frame, or None if empty."""
        with self._ready:
            return self._frames.popleft() if self._frames else None

    def get_latest(self, timeout: Optional[float] = None) -> Optional[Frame]:
        """
        Get the newest frame and discard everything older.

        Args:
            timeout: Maximum seconds to wait. None = wait forever.

        Returns:
            Newest frame, or None if timeout occurred.
        """
        with self._ready:
            if not self._wait_for_frame(timeout):
                return None
            frame = self._frames.pop()
            self._frames.clear()
            return frame

    def clear(self) -> int:
        """
        Clear all frames from buffer.

        Returns:
            Number of frames cleared.
        """
        with self._ready:
            cleared = len(self._frames)
            self._frames.clear()
        return cleared

    def metrics(self) -> dict:
        """Buffer metrics for observability."""
        with self._ready:
            return {
                "size": len(self._frames),
                "maxsize": self._frames.maxlen,
                "dropped_count": self._dropped_count,
                "total_put": self._total_put,
            }
