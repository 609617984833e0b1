"""
Frame Extractor
===============

Turns a chunked byte stream into complete JPEG frames.

Two extractors, one per stream style:

    SingleJpegExtractor:
        One frame per HTTP response. Chunks accumulate until EOF and
        the whole body is the frame. When the body outgrows the buffer
        the offset wraps to zero and earlier bytes are lost (legacy
        polling behaviour, kept as is).

    MultipartFrameExtractor:
        Many frames per HTTP response, separated by a boundary token.
        A frame starts at the JPEG start marker (FF D8) and ends where
        the next boundary begins. The boundary search rolls across
        chunk splits, so results do not depend on how the transport
        happened to chunk the body.

Results from MultipartFrameExtractor.feed() are tagged: each item is
either the bytes of a complete frame or a FrameTooLarge instance for
a frame that was dropped.

Example:
    extractor = MultipartFrameExtractor(b"--frame")

    for chunk in handle.iter_chunks(1024):
        for result in extractor.feed(chunk):
            if isinstance(result, FrameTooLarge):
                logger.warning(result)
            else:
                emit(result)
"""

import logging
from enum import Enum
from typing import List, Optional, Union

from camstream.stream.errors import FrameTooLarge


logger = logging.getLogger(__name__)


# Magic 2 byte header of every JPEG image
JPEG_START = b"\xff\xd8"

# Accumulation buffer capacity
BUFFER_SIZE = 1024 * 1024

# Portion read from the socket at once
READ_SIZE = 1024


ExtractResult = Union[bytes, FrameTooLarge]


def find_subsequence(haystack: Union[bytes, bytearray], needle: bytes, start: int = 0) -> int:
    """
    Return the index of the first occurrence of needle at or after start.

    Returns:
        Index of the match, or -1 if not found
    """
    if not needle:
        return -1
    return haystack.find(needle, start)


class _ParseState(str, Enum):
    SCANNING = "SCANNING"          # looking for FF D8
    ACCUMULATING = "ACCUMULATING"  # inside a frame, looking for the boundary
    DISCARDING = "DISCARDING"      # oversized frame, skipping to the boundary


class MultipartFrameExtractor:
    """
    Stateful parser for multipart/x-mixed-replace bodies.

    Create one instance per connection; state is never carried over
    to a new response.

    Attributes:
        boundary: Boundary delimiter, including the leading "--"
        capacity: Maximum frame size in bytes
        frames_extracted: Complete frames returned so far
        frames_dropped: Frames dropped for exceeding capacity
    """

    def __init__(self, boundary: bytes, capacity: int = BUFFER_SIZE) -> None:
        """
        Initialize extractor.

        Args:
            boundary: Boundary bytes as derived from the Content-Type header
            capacity: Maximum frame size in bytes. Must be >= 1.
        """
        if not boundary:
            raise ValueError("boundary must not be empty")
        if capacity < 1:
            raise ValueError("capacity must be >= 1")

        self.boundary = boundary
        self.capacity = capacity
        self.frames_extracted = 0
        self.frames_dropped = 0

        self._state = _ParseState.SCANNING
        self._frame = bytearray()
        # Carry-over so markers split across chunks are still found
        self._tail = b""

    @property
    def accumulated(self) -> int:
        """Bytes held for the frame in progress."""
        return len(self._frame)

    @property
    def in_frame(self) -> bool:
        return self._state is _ParseState.ACCUMULATING

    def feed(self, chunk: bytes) -> List[ExtractResult]:
        """
        Consume one chunk.

        Args:
            chunk: Next bytes of the response body

        Returns:
            Frames completed by this chunk (bytes) and frames dropped
            while processing it (FrameTooLarge), in stream order
        """
        results: List[ExtractResult] = []
        data = bytes(chunk)

        while data:
            if self._state is _ParseState.SCANNING:
                data = self._scan(data)
            elif self._state is _ParseState.ACCUMULATING:
                data = self._accumulate(data, results)
            else:
                data = self._discard(data)

        return results

    def _scan(self, data: bytes) -> bytes:
        window = self._tail + data
        start = find_subsequence(window, JPEG_START)

        if start == -1:
            # Everything before the marker is part headers; drop it
            self._tail = window[-(len(JPEG_START) - 1):]
            return b""

        self._tail = b""
        self._frame = bytearray()
        self._state = _ParseState.ACCUMULATING
        return window[start:]

    def _accumulate(self, data: bytes, results: List[ExtractResult]) -> bytes:
        held = len(self._frame)
        overlap_from = max(0, held - (len(self.boundary) - 1))
        window = bytes(self._frame[overlap_from:]) + data
        hit = find_subsequence(window, self.boundary)

        if hit == -1:
            if held + len(data) > self.capacity:
                results.append(self._drop(held + len(data)))
                self._tail = window[-(len(self.boundary) - 1):] if len(self.boundary) > 1 else b""
                self._state = _ParseState.DISCARDING
                return b""
            self._frame.extend(data)
            return b""

        end = overlap_from + hit
        taken = max(0, end - held)
        remainder = bytes(self._frame[end:]) + data[taken:]

        if end > self.capacity:
            results.append(self._drop(end))
        else:
            results.append(self._complete(bytes(self._frame[:end]) + data[:taken]))

        self._frame = bytearray()
        self._state = _ParseState.SCANNING
        return remainder

    def _discard(self, data: bytes) -> bytes:
        window = self._tail + data
        hit = find_subsequence(window, self.boundary)

        if hit == -1:
            keep = len(self.boundary) - 1
            self._tail = window[-keep:] if keep else b""
            return b""

        self._tail = b""
        self._state = _ParseState.SCANNING
        return window[hit + len(self.boundary):]

    def _complete(self, frame: bytes) -> bytes:
        # The CRLF before a delimiter belongs to the delimiter
        if frame.endswith(b"\r\n"):
            frame = frame[:-2]
        elif frame.endswith(b"\n"):
            frame = frame[:-1]
        self.frames_extracted += 1
        return frame

    def _drop(self, size: int) -> FrameTooLarge:
        self.frames_dropped += 1
        self._frame = bytearray()
        return FrameTooLarge(size, self.capacity)


class SingleJpegExtractor:
    """
    Accumulates one JPEG body per HTTP response.

    Attributes:
        capacity: Accumulation buffer size in bytes
        read_size: Largest chunk fed at once
        wraps: Times the offset wrapped to zero (data lost)
    """

    def __init__(self, capacity: int = BUFFER_SIZE, read_size: int = READ_SIZE) -> None:
        if read_size < 1 or capacity < read_size:
            raise ValueError("capacity must be >= read_size >= 1")

        self.capacity = capacity
        self.read_size = read_size
        self.wraps = 0
        self._buffer = bytearray()

    @property
    def accumulated(self) -> int:
        return len(self._buffer)

    def feed(self, chunk: bytes) -> None:
        """Append a chunk, wrapping to offset zero when the buffer is full."""
        if len(self._buffer) > self.capacity - self.read_size:
            self.wraps += 1
            logger.warning(
                f"JPEG body exceeded {self.capacity} bytes, "
                f"discarding {len(self._buffer)} accumulated bytes"
            )
            self._buffer.clear()
        self._buffer.extend(chunk)

    def finish(self) -> Optional[bytes]:
        """
        Return the accumulated body at EOF and reset.

        Returns:
            Frame bytes, or None for an empty body
        """
        data = bytes(self._buffer)
        self._buffer.clear()
        return data or None
