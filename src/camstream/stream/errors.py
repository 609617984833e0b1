"""
Stream Errors
=============

Exception taxonomy for the ingestion layer.

    StreamError
    ├── ConfigError       empty/invalid source, fatal, raised to the caller
    ├── ProtocolError     endpoint is not an MJPEG stream, fatal, never retried
    ├── TransientIOError  timeout, reset, malformed frame; retried with backoff
    └── FrameTooLarge     frame exceeded buffer capacity; frame dropped only

Design Rules:
    - Cancellation is NOT an error and has no exception here
    - FrameTooLarge is returned as a tagged result by the extractor,
      it is never raised out of the read loop
"""


class StreamError(Exception):
    """Base class for ingestion errors."""
    pass


class ConfigError(StreamError, ValueError):
    """Raised when the stream source is missing or invalid."""
    pass


class ProtocolError(StreamError):
    """Raised when the response cannot be parsed as a multipart stream."""
    pass


class TransientIOError(StreamError):
    """Raised for recoverable read, connect and decode failures."""
    pass


class FrameTooLarge(StreamError):
    """
    A frame grew past the accumulation buffer capacity.

    Attributes:
        size: Bytes the frame would have needed
        capacity: Buffer capacity in bytes
    """

    def __init__(self, size: int, capacity: int) -> None:
        super().__init__(
            f"Frame of at least {size} bytes exceeds buffer capacity of {capacity} bytes"
        )
        self.size = size
        self.capacity = capacity
