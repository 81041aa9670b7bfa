"""
Frame to luminance conversion.

Reduces a camera frame (or an eye-region crop of one) to the single
brightness value the blink detector consumes.
"""

from typing import Optional

import cv2
import numpy as np

from gazenav.core.samples import LuminanceSample
from gazenav.utils.logger import get_logger

logger = get_logger(__name__)


def frame_luminance(frame: Optional[np.ndarray]) -> Optional[float]:
    """
    Mean brightness of a frame on the 0-255 scale.

    Args:
        frame: Grayscale (H, W), BGR (H, W, 3) or BGRA (H, W, 4) image

    Returns:
        Mean luminance, or None for empty / malformed frames
    """
    if frame is None or not isinstance(frame, np.ndarray) or frame.size == 0:
        return None

    if frame.dtype not in (np.uint8, np.uint16, np.float32):
        frame = frame.astype(np.float32)

    if frame.ndim == 2:
        gray = frame
    elif frame.ndim == 3 and frame.shape[2] == 3:
        gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
    elif frame.ndim == 3 and frame.shape[2] == 4:
        gray = cv2.cvtColor(frame, cv2.COLOR_BGRA2GRAY)
    elif frame.ndim == 3 and frame.shape[2] == 1:
        gray = np.ascontiguousarray(frame[:, :, 0])
    else:
        logger.debug(f"Unsupported frame shape {frame.shape}")
        return None

    return float(cv2.mean(gray)[0])


class LuminanceSampler:
    """
    Turn frames into timestamped luminance samples.

    An optional region of interest limits the average to the eye area,
    which makes eyelid closure a much larger share of the signal.
    """

    def __init__(self, roi: Optional[tuple[int, int, int, int]] = None):
        """
        Initialize sampler.

        Args:
            roi: (x, y, width, height) crop applied before averaging
        """
        self._roi = roi
        self._dropped_frames = 0

    def sample(self, frame: Optional[np.ndarray], timestamp_ms: float) -> Optional[LuminanceSample]:
        """
        Convert a frame.

        Args:
            frame: Camera frame
            timestamp_ms: Capture time in milliseconds

        Returns:
            LuminanceSample, or None if the frame was unusable
        """
        if frame is not None and self._roi is not None:
            x, y, w, h = self._roi
            frame = frame[y:y + h, x:x + w]

        value = frame_luminance(frame)
        if value is None:
            self._dropped_frames += 1
            return None

        return LuminanceSample(timestamp_ms=timestamp_ms, value=value)

    def set_roi(self, roi: Optional[tuple[int, int, int, int]]):
        self._roi = roi

    @property
    def dropped_frames(self) -> int:
        return self._dropped_frames
