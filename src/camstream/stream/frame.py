"""
Frame Data Model
=================

Internal frame representation for the ingestion pipeline.

This module defines the typed Frame class that is handed from the
ingestion worker to consumers (callback and FrameBuffer).

Design Rules:
    - This is the ONLY frame format passed to consumers
    - Does NOT decode or manipulate image data
    - Holds an immutable copy of the bytes, so the worker's
      accumulation buffer can be reused without affecting consumers
"""

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Frame:
    """
    Complete image extracted from a camera stream.

    Attributes:
        data: Raw JPEG bytes, starting with the FF D8 marker
        sequence: Per-stream counter, increases by 1 per emitted frame
        timestamp: UNIX timestamp when the frame was completed
    """

    data: bytes
    sequence: int
    timestamp: float

    @property
    def size(self) -> int:
        """Frame size in bytes."""
        return len(self.data)

    def __repr__(self) -> str:
        """Compact repr that doesn't dump the full image."""
        return (
            f"Frame(sequence={self.sequence}, "
            f"timestamp={self.timestamp:.3f}, "
            f"size={len(self.data)})"
        )
