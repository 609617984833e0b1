"""
Data Models
===========

Enums shared by the ingestion layer and the service.

Models:
    - WorkerStatus: IDLE, CONNECTING, STREAMING, RETRYING, TERMINATED
    - TerminationReason: DEVICE_LOST, STOPPED_BY_USER, RESTART
"""

from camstream.models.status import TerminationReason, WorkerStatus

__all__ = [
    "TerminationReason",
    "WorkerStatus",
]
