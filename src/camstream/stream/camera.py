"""
Camera Stream
=============

Lifecycle façade for one camera source.

CameraStream owns the background thread, the connector and the frame
channel, and exposes start / stop / restart / close to the host.

Lifecycle:
    - start(): spawns the ingestion thread (no-op when running)
    - stop(): ends the current run with STOPPED_BY_USER; when nothing
      is running, on_terminated fires synchronously instead
    - restart(): ends the current run with RESTART, then a fresh
      IngestionWorker reconnects with the same StreamConfig
    - close(): stops, joins the thread, releases the HTTP session

Example:
    stream = CameraStream(
        StreamConfig.create(url="http://192.168.1.20:81/stream"),
        on_terminated=lambda reason: print("finished:", reason),
    )

    with stream:
        stream.start()
        while True:
            frame = stream.frames.get(timeout=1.0)
            if frame:
                process(frame.data)
"""

import logging
import threading
from typing import TYPE_CHECKING, Callable, Optional

from camstream.models.status import TerminationReason, WorkerStatus
from camstream.stream.buffer import FrameBuffer
from camstream.stream.connector import Connector, redact_url
from camstream.stream.errors import ConfigError
from camstream.stream.source_config import StreamConfig
from camstream.stream.worker import (
    FrameCallback,
    IngestionWorker,
    StreamConnector,
    TerminatedCallback,
    WorkerMetrics,
)

if TYPE_CHECKING:
    from camstream.config import Settings


logger = logging.getLogger(__name__)


class CameraStream:
    """
    Start/stop/restart façade around IngestionWorker.

    Attributes:
        config: Resolved connection parameters
        frames: FrameBuffer receiving every delivered frame
        metrics: Metrics accumulated over all runs
        restarts: Number of controlled reconnects performed
    """

    def __init__(
        self,
        config: StreamConfig,
        connector: Optional[StreamConnector] = None,
        buffer: Optional[FrameBuffer] = None,
        on_frame: Optional[FrameCallback] = None,
        on_terminated: Optional[TerminatedCallback] = None,
        keep_running: Optional[Callable[[], bool]] = None,
        join_timeout: float = 5.0,
        **worker_options,
    ) -> None:
        """
        Initialize camera stream.

        Args:
            config: Resolved connection parameters
            connector: Connector to use (a requests-based one if None)
            buffer: Frame channel (a FrameBuffer(50) if None)
            on_frame: Called on the ingestion thread for every frame
            on_terminated: Called once per run with the TerminationReason
            keep_running: Host shutdown flag
            join_timeout: Seconds close() waits for the thread
            **worker_options: Passed to IngestionWorker (read_size,
                buffer_size, max_consecutive_errors, retry_backoff_ms,
                poll_interval_ms, decode_frames)
        """
        self.config = config
        self.frames = buffer if buffer is not None else FrameBuffer()
        self.metrics = WorkerMetrics()
        self.restarts = 0

        self._connector = connector if connector is not None else Connector(config)
        self._on_frame = on_frame
        self._on_terminated = on_terminated
        self._keep_running = keep_running
        self._join_timeout = join_timeout
        self._worker_options = worker_options

        self._lock = threading.RLock()
        self._thread: Optional[threading.Thread] = None
        self._worker: Optional[IngestionWorker] = None
        self._stopping = False
        self._closed = False
        self._notified = False
        self._last_reason: Optional[TerminationReason] = None

    @classmethod
    def from_settings(cls, settings: "Settings", **kwargs) -> "CameraStream":
        """Build a stream from the camera and ingestion sections of Settings."""
        ingestion = settings.ingestion
        options = {
            "buffer": FrameBuffer(maxsize=ingestion.max_queue_size),
            "read_size": ingestion.read_size,
            "buffer_size": ingestion.buffer_size,
            "max_consecutive_errors": ingestion.max_consecutive_errors,
            "retry_backoff_ms": ingestion.retry_backoff_ms,
            "poll_interval_ms": ingestion.poll_interval_ms,
            "decode_frames": ingestion.decode_frames,
        }
        options.update(kwargs)
        return cls(StreamConfig.from_settings(settings.camera), **options)

    # =========================================================================
    # State
    # =========================================================================

    @property
    def source(self) -> str:
        return self.config.url

    @property
    def is_running(self) -> bool:
        """True until the background thread has completed."""
        thread = self._thread
        return thread is not None and thread.is_alive()

    @property
    def status(self) -> WorkerStatus:
        worker = self._worker
        return worker.status if worker is not None else WorkerStatus.IDLE

    @property
    def last_reason(self) -> Optional[TerminationReason]:
        """Reason of the most recent termination notification."""
        return self._last_reason

    @property
    def closed(self) -> bool:
        return self._closed

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> None:
        """
        Start ingesting in a background thread.

        Raises:
            ConfigError: If the source URL is empty or the stream is closed
        """
        with self._lock:
            if self._closed:
                raise ConfigError("CameraStream is closed")
            if self.is_running:
                return
            if not self.config.url:
                raise ConfigError("Video source is not specified.")

            self._stopping = False
            self._notified = False
            self._worker = self._new_worker()
            self._thread = threading.Thread(
                target=self._run,
                args=(self._worker,),
                name=f"camstream:{redact_url(self.config.url)}",
                daemon=True,
            )
            self._thread.start()

        logger.info(f"Camera stream started: {redact_url(self.config.url)}")

    def stop(self) -> None:
        """Stop ingesting. Idempotent."""
        with self._lock:
            self._stopping = True
            if self.is_running and self._worker is not None:
                self._worker.cancel(TerminationReason.STOPPED_BY_USER)
                return
            if self._notified:
                return

        # Never ran: report the stop right away, no thread involved
        self._notify_terminated(TerminationReason.STOPPED_BY_USER)

    def restart(self) -> None:
        """Drop the current connection and reconnect with a fresh worker."""
        with self._lock:
            if self._stopping or not self.is_running or self._worker is None:
                return
            self._worker.cancel(TerminationReason.RESTART)

    def close(self) -> None:
        """
        Stop, wait for the thread and release network resources.

        Safe to call when never started and more than once.
        """
        self.stop()

        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(self._join_timeout)
            if thread.is_alive():
                logger.warning(
                    f"Ingestion thread for {redact_url(self.config.url)} "
                    f"did not stop within {self._join_timeout}s"
                )

        with self._lock:
            if self._closed:
                return
            self._closed = True

        close = getattr(self._connector, "close", None)
        if close is not None:
            close()

    def __enter__(self) -> "CameraStream":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    # =========================================================================
    # Internals
    # =========================================================================

    def _new_worker(self) -> IngestionWorker:
        previous = self._worker.sequence if self._worker is not None else 0
        return IngestionWorker(
            self.config,
            self._connector,
            on_frame=self._on_frame,
            on_terminated=self._notify_terminated,
            buffer=self.frames,
            keep_running=self._keep_running,
            metrics=self.metrics,
            first_sequence=previous,
            **self._worker_options,
        )

    def _run(self, worker: IngestionWorker) -> None:
        while True:
            reason = worker.run()

            with self._lock:
                if reason is not TerminationReason.RESTART:
                    return
                # A stop that arrived after the RESTART run ended found no
                # worker to cancel; report it here
                stopped = self._stopping or self._closed
                if not stopped:
                    self.restarts += 1
                    worker = self._worker = self._new_worker()

            if stopped:
                self._notify_terminated(TerminationReason.STOPPED_BY_USER)
                return

            logger.info(
                f"Restarting {redact_url(self.config.url)} "
                f"(restart {self.restarts})"
            )

    def _notify_terminated(self, reason: TerminationReason) -> None:
        with self._lock:
            self._notified = True
            self._last_reason = reason

        if self._on_terminated is not None:
            self._on_terminated(reason)
