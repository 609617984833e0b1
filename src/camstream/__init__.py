"""
camstream
=========

Resilient HTTP camera stream ingestion.

This package opens an HTTP connection to a network camera, extracts
complete JPEG frames from either a multipart (MJPEG) stream or a
single-image polling endpoint, and delivers them to consumers while
reconnecting through transient network failures.

Components:
    - stream: Connector, frame extractors, ingestion worker, CameraStream
    - models: WorkerStatus and TerminationReason enums
    - config: Pydantic settings loaded from YAML and environment
    - main: FastAPI service exposing one camera

Example:
    from camstream.stream import CameraStream, StreamConfig

    with CameraStream(StreamConfig.create(url="http://cam:81/stream")) as stream:
        stream.start()
        frame = stream.frames.get(timeout=2.0)
"""

__version__ = "0.1.0"
__author__ = "camstream Project"

__all__ = [
    "__version__",
]
