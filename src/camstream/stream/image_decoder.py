"""
Image Decoder
=============

Decodes JPEG frame bytes into OpenCV matrices.

Design Rules:
    - This is the ONLY place in the codebase that decodes images
    - Validates shape and dtype
    - Fails fast on corrupt frames

The ingestion worker only calls this when frame decoding is enabled,
to reject frames that are recognized as complete but do not decode.
"""

import logging
from typing import Optional, Tuple, Union

import cv2
import numpy as np

from camstream.stream.frame import Frame


logger = logging.getLogger(__name__)


class ImageDecodeError(Exception):
    """Raised when image decoding fails."""
    pass


def _frame_bytes(frame: Union[Frame, bytes]) -> bytes:
    return frame.data if isinstance(frame, Frame) else bytes(frame)


def decode_frame_bgr(frame: Union[Frame, bytes]) -> np.ndarray:
    """
    Decode a JPEG frame to a BGR numpy array.

    Args:
        frame: Frame, or raw JPEG bytes

    Returns:
        BGR image as np.ndarray (H, W, 3), dtype=uint8

    Raises:
        ImageDecodeError: If decoding fails or image is invalid
    """
    data = _frame_bytes(frame)
    if not data:
        raise ImageDecodeError("Empty frame")

    try:
        nparr = np.frombuffer(data, np.uint8)
        bgr = cv2.imdecode(nparr, cv2.IMREAD_COLOR)
    except cv2.error as e:
        raise ImageDecodeError(f"OpenCV failed to decode {len(data)} bytes: {e}") from e

    if bgr is None:
        raise ImageDecodeError(
            f"Failed to decode {len(data)} bytes: cv2.imdecode returned None"
        )

    if len(bgr.shape) != 3 or bgr.shape[2] != 3:
        raise ImageDecodeError(f"Invalid image shape: {bgr.shape}")

    if bgr.dtype != np.uint8:
        raise ImageDecodeError(f"Invalid dtype: {bgr.dtype}")

    return bgr


def get_frame_dimensions(frame: Union[Frame, bytes]) -> Optional[Tuple[int, int]]:
    """
    Get frame dimensions.

    Returns:
        Tuple of (height, width) or None if decode fails
    """
    try:
        return decode_frame_bgr(frame).shape[:2]
    except ImageDecodeError:
        return None
