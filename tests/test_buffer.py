"""
Frame Buffer Tests
==================

Drop-oldest queue between the ingestion thread and consumers.
"""

import threading

import pytest

from camstream.stream.buffer import FrameBuffer
from camstream.stream.frame import Frame


def make_frame(sequence: int) -> Frame:
    return Frame(data=b"\xff\xd8" + bytes([sequence % 256]) + b"\xff\xd9", sequence=sequence, timestamp=1000.0 + sequence)


class TestFrame:
    """Frame value object."""

    def test_size(self):
        assert make_frame(1).size == 5

    def test_repr_does_not_dump_bytes(self):
        frame = Frame(data=b"\xff" * 5000, sequence=3, timestamp=0.0)
        assert "size=5000" in repr(frame)
        assert len(repr(frame)) < 100

    def test_immutable(self):
        frame = make_frame(1)
        with pytest.raises(AttributeError):
            frame.sequence = 2


class TestFrameBuffer:
    """FIFO with bounded size."""

    def test_fifo_order(self):
        buffer = FrameBuffer(maxsize=5)
        for i in range(3):
            assert buffer.put(make_frame(i))

        assert [buffer.get_nowait().sequence for _ in range(3)] == [0, 1, 2]

    def test_drops_oldest_when_full(self):
        buffer = FrameBuffer(maxsize=2)
        buffer.put(make_frame(1))
        buffer.put(make_frame(2))

        assert buffer.put(make_frame(3)) is False

        assert buffer.dropped_count == 1
        assert buffer.total_put == 3
        assert [buffer.get_nowait().sequence for _ in range(2)] == [2, 3]

    def test_get_timeout_returns_none(self):
        assert FrameBuffer().get(timeout=0.01) is None

    def test_get_wakes_on_put(self):
        buffer = FrameBuffer()
        threading.Timer(0.05, buffer.put, args=(make_frame(7),)).start()

        frame = buffer.get(timeout=2.0)

        assert frame is not None
        assert frame.sequence == 7

    def test_clear(self):
        buffer = FrameBuffer(maxsize=10)
        for i in range(4):
            buffer.put(make_frame(i))

        assert buffer.clear() == 4
        assert buffer.size == 0

    def test_metrics(self):
        buffer = FrameBuffer(maxsize=1)
        buffer.put(make_frame(1))
        buffer.put(make_frame(2))

        assert buffer.metrics() == {
            "size": 1,
            "maxsize": 1,
            "dropped_count": 1,
            "total_put": 2,
        }

    def test_rejects_zero_size(self):
        with pytest.raises(ValueError):
            FrameBuffer(maxsize=0)

    def test_get_latest_discards_older_frames(self):
        buffer = FrameBuffer(maxsize=10)
        for i in range(4):
            buffer.put(make_frame(i))

        assert buffer.get_latest(timeout=0.1).sequence == 3
        assert buffer.size == 0
        assert buffer.get_latest(timeout=0.01) is None
