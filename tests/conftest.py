"""
Test Configuration
==================

Pytest fixtures and fakes for camstream tests.

Fakes:
    - FakeHandle: scripted response body, optionally held open until aborted
    - FakeConnector: hands out scripted handles, then fails
    - camera_server: real local HTTP server for connector tests
"""

import random
import threading
import time
from dataclasses import dataclass, field
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Callable, Dict, Iterator, List, Optional

import pytest

from camstream.stream.errors import TransientIOError


BOUNDARY = "myboundary"
MULTIPART_CONTENT_TYPE = f"multipart/x-mixed-replace; boundary={BOUNDARY}"


# =============================================================================
# Builders
# =============================================================================

def make_jpeg_like(size: int, seed: int = 0) -> bytes:
    """
    Build fake JPEG bytes: SOI marker, filler, EOI marker.

    Filler never contains '-' so a "--boundary" cannot occur inside.
    """
    rng = random.Random(seed)
    filler = bytes(rng.choice(range(0x2E, 0xFF)) for _ in range(max(0, size - 4)))
    return b"\xff\xd8" + filler + b"\xff\xd9"


def build_multipart(frames: List[bytes], boundary: str = BOUNDARY, closing: bool = True) -> bytes:
    """Build a multipart/x-mixed-replace body from frames."""
    delimiter = b"--" + boundary.encode()
    parts = []
    for frame in frames:
        parts.append(
            delimiter
            + b"\r\nContent-Type: image/jpeg\r\n"
            + b"Content-Length: " + str(len(frame)).encode() + b"\r\n\r\n"
            + frame
            + b"\r\n"
        )
    if closing:
        parts.append(delimiter + b"--\r\n")
    return b"".join(parts)


def split_chunks(data: bytes, size: int) -> List[bytes]:
    return [data[i:i + size] for i in range(0, len(data), size)]


def wait_until(predicate: Callable[[], bool], timeout: float = 3.0) -> bool:
    """Poll predicate until it is true or timeout expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


# =============================================================================
# Fakes
# =============================================================================

class FakeHandle:
    """Scripted response for the ingestion worker."""

    def __init__(
        self,
        body: bytes = b"",
        content_type: Optional[str] = MULTIPART_CONTENT_TYPE,
        chunk_size: int = 1024,
        hold_open: bool = False,
        fail_after: Optional[int] = None,
    ) -> None:
        self.body = body
        self.content_type = content_type
        self.chunk_size = chunk_size
        self.hold_open = hold_open
        self.fail_after = fail_after
        self.closed = False
        self.aborted = threading.Event()

    def iter_chunks(self, size: int) -> Iterator[bytes]:
        for index, chunk in enumerate(split_chunks(self.body, self.chunk_size)):
            if self.fail_after is not None and index >= self.fail_after:
                raise TransientIOError("connection reset by peer")
            if self.aborted.is_set():
                return
            yield chunk
        if self.hold_open:
            self.aborted.wait(5.0)

    def abort(self) -> None:
        self.aborted.set()

    def close(self) -> None:
        self.closed = True
        self.aborted.set()


class FakeConnector:
    """Returns handles from a script; raises TransientIOError when exhausted."""

    def __init__(self, handles: Optional[List[FakeHandle]] = None, factory=None) -> None:
        self.handles = list(handles or [])
        self.factory = factory
        self.opened: List[FakeHandle] = []
        self.cache_bust_flags: List[bool] = []
        self.closed = False
        self._lock = threading.Lock()

    @property
    def open_count(self) -> int:
        return len(self.cache_bust_flags)

    def open(self, cache_bust: bool = False) -> FakeHandle:
        with self._lock:
            self.cache_bust_flags.append(cache_bust)
            if self.handles:
                handle = self.handles.pop(0)
            elif self.factory is not None:
                handle = self.factory()
            else:
                raise TransientIOError("connection refused")
            self.opened.append(handle)
            return handle

    def close(self) -> None:
        self.closed = True


class Recorder:
    """Collects frames and termination reasons from callbacks."""

    def __init__(self) -> None:
        self.frames = []
        self.reasons = []
        self.terminated = threading.Event()

    def on_frame(self, frame) -> None:
        self.frames.append(frame)

    def on_terminated(self, reason) -> None:
        self.reasons.append(reason)
        self.terminated.set()


# =============================================================================
# Local camera server
# =============================================================================

@dataclass
class RecordedRequest:
    path: str
    headers: Dict[str, str]
    version: str


@dataclass
class CameraServerState:
    url: str = ""
    status: int = 200
    content_type: str = MULTIPART_CONTENT_TYPE
    body: bytes = b""
    stall: float = 0.0
    requests: List[RecordedRequest] = field(default_factory=list)
    release: threading.Event = field(default_factory=threading.Event)


@pytest.fixture
def camera_server():
    """
    HTTP server on localhost that replays a configured response.

    With `stall` set, the connection stays open after the body until
    the test ends or `stall` seconds pass.
    """
    state = CameraServerState()

    class Handler(BaseHTTPRequestHandler):
        def do_GET(self):
            state.requests.append(
                RecordedRequest(self.path, dict(self.headers), self.request_version)
            )
            self.send_response(state.status)
            self.send_header("Content-Type", state.content_type)
            self.end_headers()
            self.wfile.write(state.body)
            if state.stall:
                # Keep the connection open and silent, like an idle camera
                self.wfile.flush()
                state.release.wait(state.stall)

        def log_message(self, format, *args):
            pass

    server = ThreadingHTTPServer(("127.0.0.1", 0), Handler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    state.url = f"http://127.0.0.1:{server.server_address[1]}/stream"

    yield state

    state.release.set()
    server.shutdown()
    server.server_close()


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def sample_frames():
    """Five fake JPEG frames of varied sizes."""
    return [make_jpeg_like(size, seed=i) for i, size in enumerate([300, 1500, 4097, 64, 2600])]


@pytest.fixture
def real_jpeg():
    """A small JPEG that OpenCV can decode."""
    import cv2
    import numpy as np

    image = np.zeros((16, 24, 3), dtype=np.uint8)
    image[:, :12] = (0, 128, 255)
    ok, encoded = cv2.imencode(".jpg", image)
    assert ok
    return encoded.tobytes()
