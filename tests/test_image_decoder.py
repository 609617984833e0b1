"""
Image Decoder Tests
===================

OpenCV validation of extracted frames.
"""

import pytest

from camstream.stream.frame import Frame
from camstream.stream.image_decoder import (
    ImageDecodeError,
    decode_frame_bgr,
    get_frame_dimensions,
)


class TestDecodeFrame:
    """JPEG decoding."""

    def test_decodes_bytes(self, real_jpeg):
        image = decode_frame_bgr(real_jpeg)
        assert image.shape == (16, 24, 3)

    def test_decodes_frame(self, real_jpeg):
        frame = Frame(data=real_jpeg, sequence=1, timestamp=0.0)
        assert get_frame_dimensions(frame) == (16, 24)

    def test_empty_frame(self):
        with pytest.raises(ImageDecodeError):
            decode_frame_bgr(b"")

    def test_truncated_markers_only(self):
        with pytest.raises(ImageDecodeError):
            decode_frame_bgr(b"\xff\xd8" + b"\x10" * 300 + b"\xff\xd9")

    def test_dimensions_of_garbage(self):
        assert get_frame_dimensions(b"not a jpeg") is None
