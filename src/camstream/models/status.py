"""
Worker Status Models
====================

Lifecycle states and termination reasons for the ingestion worker.

State Machine:
    IDLE -> CONNECTING -> STREAMING <-> RETRYING -> TERMINATED

    - CONNECTING: an HTTP request is being opened
    - STREAMING: bytes are flowing through the frame extractor
    - RETRYING: a read/parse error occurred, waiting out the backoff
    - TERMINATED: final for a worker instance

Every transition into TERMINATED carries exactly one TerminationReason.

Example:
    from camstream.models.status import TerminationReason

    def on_terminated(reason: TerminationReason) -> None:
        if reason is TerminationReason.DEVICE_LOST:
            alert("camera offline")
"""

from enum import Enum


class WorkerStatus(str, Enum):
    """
    Lifecycle state of an ingestion worker.

    Attributes:
        IDLE: Created, not yet running
        CONNECTING: Opening the HTTP connection
        STREAMING: Reading and extracting frames
        RETRYING: Waiting before the next connection attempt
        TERMINATED: Run finished (final)
    """

    IDLE = "IDLE"
    CONNECTING = "CONNECTING"
    STREAMING = "STREAMING"
    RETRYING = "RETRYING"
    TERMINATED = "TERMINATED"


class TerminationReason(str, Enum):
    """
    Why a worker run ended.

    Attributes:
        DEVICE_LOST: Too many consecutive errors, or a fatal protocol error
        STOPPED_BY_USER: stop(), close(), or host shutdown
        RESTART: restart() requested; a fresh run follows
    """

    DEVICE_LOST = "DEVICE_LOST"
    STOPPED_BY_USER = "STOPPED_BY_USER"
    RESTART = "RESTART"
