"""
Stream Module
=============

HTTP camera ingestion components.

This module provides the ingestion layer for camstream:
    - StreamConfig: Resolved, immutable connection parameters
    - Connector: requests-based HTTP connector (Basic/Digest, HTTP/1.0)
    - MultipartFrameExtractor / SingleJpegExtractor: byte-level frame parsing
    - IngestionWorker: Connect/read/retry loop with cooperative cancellation
    - CameraStream: start/stop/restart façade owning the background thread
    - Frame, FrameBuffer: Frame model and thread-safe drop-oldest channel

Example:
    from camstream.stream import CameraStream, StreamConfig

    stream = CameraStream(StreamConfig.create(url="http://cam:81/stream"))
    stream.start()

    frame = stream.frames.get(timeout=1.0)
    stream.close()
"""

from camstream.stream.frame import Frame
from camstream.stream.buffer import FrameBuffer
from camstream.stream.errors import (
    ConfigError,
    FrameTooLarge,
    ProtocolError,
    StreamError,
    TransientIOError,
)
from camstream.stream.source_config import StreamConfig
from camstream.stream.connector import ConnectionHandle, Connector, multipart_boundary
from camstream.stream.extractor import (
    MultipartFrameExtractor,
    SingleJpegExtractor,
    find_subsequence,
)
from camstream.stream.worker import IngestionWorker, WorkerMetrics
from camstream.stream.camera import CameraStream


__all__ = [
    "Frame",
    "FrameBuffer",
    "StreamError",
    "ConfigError",
    "ProtocolError",
    "TransientIOError",
    "FrameTooLarge",
    "StreamConfig",
    "Connector",
    "ConnectionHandle",
    "multipart_boundary",
    "MultipartFrameExtractor",
    "SingleJpegExtractor",
    "find_subsequence",
    "IngestionWorker",
    "WorkerMetrics",
    "CameraStream",
]
