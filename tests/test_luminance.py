"""
Tests for frame luminance extraction.
"""

import numpy as np
import pytest

from gazenav.vision.luminance import LuminanceSampler, frame_luminance


class TestFrameLuminance:
    """Tests for frame_luminance."""

    def test_grayscale(self):
        """Test the mean of a grayscale frame."""
        frame = np.full((48, 64), 100, dtype=np.uint8)

        assert frame_luminance(frame) == pytest.approx(100.0)

    def test_bgr_gray_value(self):
        """Test that a neutral BGR frame keeps its value."""
        frame = np.full((48, 64, 3), 80, dtype=np.uint8)

        assert frame_luminance(frame) == pytest.approx(80.0, abs=0.5)

    def test_bgr_weights_green(self):
        """Test that green contributes more than blue."""
        green = np.zeros((10, 10, 3), dtype=np.uint8)
        green[:, :, 1] = 200
        blue = np.zeros((10, 10, 3), dtype=np.uint8)
        blue[:, :, 0] = 200

        assert frame_luminance(green) > frame_luminance(blue)

    def test_bgra(self):
        """Test four-channel frames."""
        frame = np.full((10, 10, 4), 120, dtype=np.uint8)

        assert frame_luminance(frame) == pytest.approx(120.0, abs=0.5)

    def test_float64_converted(self):
        """Test that unsupported dtypes are converted."""
        frame = np.zeros((10, 10), dtype=np.float64)
        frame[:5, :] = 100.0

        assert frame_luminance(frame) == pytest.approx(50.0)

    def test_single_channel_3d(self):
        """Test (H, W, 1) frames."""
        frame = np.full((10, 10, 1), 30, dtype=np.uint8)

        assert frame_luminance(frame) == pytest.approx(30.0)

    @pytest.mark.parametrize(
        "frame",
        [
            None,
            np.zeros((0, 0), dtype=np.uint8),
            np.zeros((10, 10, 2), dtype=np.uint8),
            [[1, 2], [3, 4]],
        ],
    )
    def test_unusable_frames(self, frame):
        """Test that malformed input yields None."""
        assert frame_luminance(frame) is None


class TestLuminanceSampler:
    """Tests for LuminanceSampler."""

    def test_sample(self):
        """Test that a frame becomes a timestamped sample."""
        sampler = LuminanceSampler()

        sample = sampler.sample(np.full((10, 10), 90, dtype=np.uint8), 1234.0)

        assert sample.timestamp_ms == 1234.0
        assert sample.value == pytest.approx(90.0)

    def test_roi(self):
        """Test that the region of interest limits the average."""
        frame = np.zeros((100, 100), dtype=np.uint8)
        frame[:, 50:] = 200
        sampler = LuminanceSampler(roi=(50, 0, 50, 100))

        assert sampler.sample(frame, 0.0).value == pytest.approx(200.0)

        sampler.set_roi(None)
        assert sampler.sample(frame, 1.0).value == pytest.approx(100.0)

    def test_dropped_frames_counted(self):
        """Test that unusable frames are counted."""
        sampler = LuminanceSampler()

        assert sampler.sample(None, 0.0) is None
        assert sampler.sample(np.zeros((0, 0), dtype=np.uint8), 1.0) is None

        assert sampler.dropped_frames == 2
