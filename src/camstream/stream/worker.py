"""
Ingestion Worker
================

Runs the connect / read / extract loop for one camera source.

This module provides the IngestionWorker class which:
    - Opens the camera endpoint through a Connector
    - Feeds response chunks into a frame extractor
    - Delivers complete frames to a callback and a FrameBuffer
    - Retries transient failures with a fixed, interruptible backoff
    - Terminates exactly once, with a TerminationReason

State machine:
    IDLE -> CONNECTING -> STREAMING <-> RETRYING -> TERMINATED

Retry policy:
    - Every failed attempt increments a consecutive-error counter
    - More than max_consecutive_errors in a row ends the run (DEVICE_LOST)
    - The counter resets whenever a frame is delivered
    - A ProtocolError (not an MJPEG endpoint) ends the run at once

Design Rules:
    - run() executes on the calling thread; the read loop is sequential
    - Cancellation is cooperative: checked before each read, at the top
      of each attempt, and during waits
    - cancel() also aborts the open response so a blocked read returns
    - Nothing raised inside an attempt escapes run()
"""

import logging
import threading
import time
from contextlib import contextmanager
from typing import Callable, Iterator, Optional, Protocol

from camstream.models.status import TerminationReason, WorkerStatus
from camstream.stream.buffer import FrameBuffer
from camstream.stream.connector import multipart_boundary, redact_url
from camstream.stream.errors import FrameTooLarge, ProtocolError, TransientIOError
from camstream.stream.extractor import (
    BUFFER_SIZE,
    READ_SIZE,
    MultipartFrameExtractor,
    SingleJpegExtractor,
)
from camstream.stream.frame import Frame
from camstream.stream.image_decoder import ImageDecodeError, decode_frame_bgr
from camstream.stream.source_config import MODE_JPEG, StreamConfig


logger = logging.getLogger(__name__)


MAX_CONSECUTIVE_ERRORS = 3
RETRY_BACKOFF_MS = 250
POLL_INTERVAL_MS = 10

# Longest uninterrupted sleep while waiting, so host shutdown is noticed
_WAIT_SLICE_SEC = 0.1


FrameCallback = Callable[[Frame], None]
TerminatedCallback = Callable[[TerminationReason], None]


class StreamHandle(Protocol):
    """What the worker needs from an open response."""

    @property
    def content_type(self) -> Optional[str]: ...

    def iter_chunks(self, size: int) -> Iterator[bytes]: ...

    def abort(self) -> None: ...

    def close(self) -> None: ...


class StreamConnector(Protocol):
    """What the worker needs from a connector."""

    def open(self, cache_bust: bool = False) -> StreamHandle: ...


class WorkerMetrics:
    """Metrics for IngestionWorker observability."""

    __slots__ = (
        "connection_attempts",
        "frames_emitted",
        "frames_skipped",
        "frames_oversized",
        "errors_total",
        "consecutive_errors",
        "bytes_read",
        "last_frame_at",
    )

    def __init__(self) -> None:
        self.connection_attempts: int = 0
        self.frames_emitted: int = 0
        self.frames_skipped: int = 0
        self.frames_oversized: int = 0
        self.errors_total: int = 0
        self.consecutive_errors: int = 0
        self.bytes_read: int = 0
        self.last_frame_at: float = 0.0

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "connection_attempts": self.connection_attempts,
            "frames_emitted": self.frames_emitted,
            "frames_skipped": self.frames_skipped,
            "frames_oversized": self.frames_oversized,
            "errors_total": self.errors_total,
            "consecutive_errors": self.consecutive_errors,
            "bytes_read": self.bytes_read,
            "last_frame_at": self.last_frame_at,
        }


class IngestionWorker:
    """
    One run of the ingestion loop for a camera.

    A worker runs once. After it terminates, a new worker must be
    created for the next run (see CameraStream).

    Attributes:
        config: Resolved connection parameters
        metrics: Counters, possibly shared across runs
        status: Current WorkerStatus

    Example:
        worker = IngestionWorker(
            config,
            Connector(config),
            on_frame=lambda frame: print(frame),
        )
        threading.Thread(target=worker.run, daemon=True).start()
        ...
        worker.cancel(TerminationReason.STOPPED_BY_USER)
    """

    def __init__(
        self,
        config: StreamConfig,
        connector: StreamConnector,
        on_frame: Optional[FrameCallback] = None,
        on_terminated: Optional[TerminatedCallback] = None,
        buffer: Optional[FrameBuffer] = None,
        keep_running: Optional[Callable[[], bool]] = None,
        metrics: Optional[WorkerMetrics] = None,
        read_size: int = READ_SIZE,
        buffer_size: int = BUFFER_SIZE,
        max_consecutive_errors: int = MAX_CONSECUTIVE_ERRORS,
        retry_backoff_ms: int = RETRY_BACKOFF_MS,
        poll_interval_ms: int = POLL_INTERVAL_MS,
        decode_frames: bool = False,
        first_sequence: int = 0,
    ) -> None:
        """
        Initialize ingestion worker.

        Args:
            config: Resolved connection parameters
            connector: Opens responses for config
            on_frame: Called on the worker thread for every frame
            on_terminated: Called exactly once when the run ends
            buffer: FrameBuffer that also receives every frame
            keep_running: Host shutdown flag, consulted with cancellation
            metrics: Metrics object to update (new one if None)
            read_size: Bytes requested per read
            buffer_size: Frame accumulation capacity
            max_consecutive_errors: Errors tolerated in a row
            retry_backoff_ms: Wait between failed attempts
            poll_interval_ms: Wait between requests in polling mode
            decode_frames: Reject frames that OpenCV cannot decode
            first_sequence: Sequence number of the previous frame
        """
        self.config = config
        self.metrics = metrics if metrics is not None else WorkerMetrics()

        self._connector = connector
        self._on_frame = on_frame
        self._on_terminated = on_terminated
        self._buffer = buffer
        self._keep_running = keep_running or (lambda: True)

        self._read_size = read_size
        self._buffer_size = buffer_size
        self._max_errors = max_consecutive_errors
        self._backoff_sec = retry_backoff_ms / 1000.0
        self._poll_interval_sec = poll_interval_ms / 1000.0
        self._decode_frames = decode_frames
        self._min_frame_interval = 1.0 / config.max_fps if config.max_fps > 0 else 0.0

        # State
        self._lock = threading.Lock()
        self._cancel = threading.Event()
        self._pending_reason = TerminationReason.STOPPED_BY_USER
        self._status = WorkerStatus.IDLE
        self._handle: Optional[StreamHandle] = None
        self._sequence = first_sequence
        self._last_emit: Optional[float] = None

    @property
    def status(self) -> WorkerStatus:
        return self._status

    @property
    def sequence(self) -> int:
        """Sequence number of the last delivered frame."""
        return self._sequence

    @property
    def polling(self) -> bool:
        return self.config.mode == MODE_JPEG

    # =========================================================================
    # Control
    # =========================================================================

    def cancel(self, reason: TerminationReason) -> None:
        """
        Ask the run to end with the given reason.

        Safe to call from any thread, any number of times; the last
        reason given before the run ends wins.
        """
        with self._lock:
            if self._status is WorkerStatus.TERMINATED:
                return
            self._pending_reason = reason
            self._cancel.set()
            handle = self._handle

        if handle is not None:
            try:
                handle.abort()
            except Exception as e:
                logger.debug(f"Abort of open response failed: {e}")

    def _should_stop(self) -> bool:
        return self._cancel.is_set() or not self._keep_running()

    def _stop_reason(self) -> TerminationReason:
        if self._cancel.is_set():
            return self._pending_reason
        return TerminationReason.STOPPED_BY_USER

    def _wait(self, seconds: float) -> bool:
        """Sleep up to `seconds`. Returns True if the run should stop."""
        deadline = time.monotonic() + seconds
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return self._should_stop()
            if self._cancel.wait(min(remaining, _WAIT_SLICE_SEC)):
                return True
            if not self._keep_running():
                return True

    def _set_status(self, status: WorkerStatus) -> None:
        with self._lock:
            if self._status is not WorkerStatus.TERMINATED:
                self._status = status

    # =========================================================================
    # Run loop
    # =========================================================================

    def run(self) -> TerminationReason:
        """
        Execute the ingestion loop until stopped or the device is lost.

        Returns:
            The TerminationReason that was notified
        """
        with self._lock:
            if self._status is not WorkerStatus.IDLE:
                raise RuntimeError("IngestionWorker can only run once")
            self._status = WorkerStatus.CONNECTING

        logger.info(
            f"Ingestion starting: {redact_url(self.config.url)} "
            f"(mode={self.config.mode})"
        )
        self.metrics.consecutive_errors = 0

        reason = TerminationReason.DEVICE_LOST
        try:
            reason = self._run_loop()
        finally:
            self._terminate(reason)
        return reason

    def _run_loop(self) -> TerminationReason:
        while not self._should_stop():
            self._set_status(WorkerStatus.CONNECTING)
            self.metrics.connection_attempts += 1

            try:
                if self.polling:
                    self._poll_once()
                else:
                    self._stream_multipart()

            except ProtocolError as e:
                if self._should_stop():
                    break
                self.metrics.errors_total += 1
                logger.error(f"Protocol error, not retrying: {e}")
                return TerminationReason.DEVICE_LOST

            except Exception as e:
                if self._should_stop():
                    break

                self.metrics.errors_total += 1
                self.metrics.consecutive_errors += 1
                logger.error(
                    f"Stream error ({self.metrics.consecutive_errors}/"
                    f"{self._max_errors}): {e}"
                )

                if self.metrics.consecutive_errors > self._max_errors:
                    logger.error(
                        f"Giving up on {redact_url(self.config.url)} after "
                        f"{self.metrics.consecutive_errors} consecutive errors"
                    )
                    return TerminationReason.DEVICE_LOST

                self._set_status(WorkerStatus.RETRYING)
                logger.info(
                    f"Reconnecting in {self._backoff_sec:.2f}s "
                    f"(attempt {self.metrics.connection_attempts + 1})"
                )
                if self._wait(self._backoff_sec):
                    break

            else:
                if self.polling and self._wait(self._next_poll_delay()):
                    break

        return self._stop_reason()

    def _terminate(self, reason: TerminationReason) -> None:
        with self._lock:
            self._status = WorkerStatus.TERMINATED
            self._handle = None

        logger.info(
            f"Ingestion stopped: {redact_url(self.config.url)} "
            f"(reason={reason.value}, frames={self.metrics.frames_emitted})"
        )

        if self._on_terminated is not None:
            try:
                self._on_terminated(reason)
            except Exception:
                logger.exception("on_terminated callback failed")

    @contextmanager
    def _connection(self) -> Iterator[StreamHandle]:
        handle = self._connector.open(cache_bust=self.polling)
        with self._lock:
            self._handle = handle
        try:
            yield handle
        finally:
            with self._lock:
                self._handle = None
            handle.close()

    # =========================================================================
    # Stream styles
    # =========================================================================

    def _stream_multipart(self) -> None:
        """Read one persistent multipart response until it ends."""
        with self._connection() as handle:
            boundary = multipart_boundary(handle.content_type)
            extractor = MultipartFrameExtractor(boundary, capacity=self._buffer_size)
            self._set_status(WorkerStatus.STREAMING)

            if self._should_stop():
                return

            for chunk in handle.iter_chunks(self._read_size):
                self.metrics.bytes_read += len(chunk)

                for result in extractor.feed(chunk):
                    if isinstance(result, FrameTooLarge):
                        self.metrics.frames_oversized += 1
                        logger.warning(f"Dropped frame: {result}")
                    else:
                        self._deliver(result)

                if self._should_stop():
                    return

        if not self._should_stop():
            raise TransientIOError("Stream ended by the server")

    def _poll_once(self) -> None:
        """Fetch one JPEG with a fresh request."""
        extractor = SingleJpegExtractor(capacity=self._buffer_size, read_size=self._read_size)

        with self._connection() as handle:
            self._set_status(WorkerStatus.STREAMING)

            for chunk in handle.iter_chunks(self._read_size):
                if self._should_stop():
                    return
                self.metrics.bytes_read += len(chunk)
                extractor.feed(chunk)

        # An aborted read looks like EOF; never emit a partial body
        if self._should_stop():
            return

        data = extractor.finish()
        if data is None:
            raise TransientIOError("Empty JPEG response")
        self._deliver(data)

    def _next_poll_delay(self) -> float:
        delay = self._poll_interval_sec
        if self._min_frame_interval and self._last_emit is not None:
            due = self._last_emit + self._min_frame_interval - time.monotonic()
            delay = max(delay, due)
        return delay

    # =========================================================================
    # Delivery
    # =========================================================================

    def _deliver(self, data: bytes) -> None:
        now = time.monotonic()
        if (
            self._min_frame_interval
            and self._last_emit is not None
            and now - self._last_emit < self._min_frame_interval
        ):
            self.metrics.frames_skipped += 1
            return

        if self._decode_frames:
            try:
                decode_frame_bgr(data)
            except ImageDecodeError as e:
                raise TransientIOError(f"Malformed frame: {e}") from e

        self._sequence += 1
        self._last_emit = now
        frame = Frame(data=data, sequence=self._sequence, timestamp=time.time())

        if self._buffer is not None:
            self._buffer.put(frame)
        if self._on_frame is not None:
            self._on_frame(frame)

        self.metrics.frames_emitted += 1
        self.metrics.last_frame_at = frame.timestamp
        self.metrics.consecutive_errors = 0
