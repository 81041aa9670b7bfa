"""
Tests for the gaze pipeline (rate limit, mirror, correction, smoothing, dead zone).
"""

import math

import pytest

from gazenav.core.config import GazeConfig
from gazenav.core.events import EventHub
from gazenav.core.samples import RawGazeSample, Viewport
from gazenav.vision.calibrator import CalibrationOffsets
from gazenav.vision.smoothing import GazePipeline


VIEWPORT = Viewport(1000, 800)


def make_pipeline(offsets_provider=None, hub=None, **overrides):
    values = dict(mirror=False)
    values.update(overrides)
    return GazePipeline(GazeConfig(**values), VIEWPORT, offsets_provider, hub)


class TestGazePipeline:
    """Tests for GazePipeline.process."""

    def test_first_sample_seeds_position(self):
        """Test that the first sample is emitted unchanged."""
        pipeline = make_pipeline()

        point = pipeline.process(RawGazeSample(0, 400, 300))

        assert (point.x, point.y) == (400, 300)
        assert pipeline.current_position == point

    def test_converges_on_steady_gaze(self):
        """Test that a constant input settles within the dead zone."""
        pipeline = make_pipeline()
        pipeline.process(RawGazeSample(0, 100, 100))

        for i in range(1, 80):
            pipeline.process(RawGazeSample(i * 40, 500, 500))

        position = pipeline.current_position
        assert math.hypot(position.x - 500, position.y - 500) < 12.5

    def test_smoothing_factor(self):
        """Test one EMA step."""
        pipeline = make_pipeline(smoothing_factor=0.3, dead_zone_px=0)
        pipeline.process(RawGazeSample(0, 100, 100))

        point = pipeline.process(RawGazeSample(100, 200, 100))

        assert point.x == pytest.approx(130.0)
        assert point.y == pytest.approx(100.0)

    def test_rate_limited(self):
        """Test that 200 Hz input yields at most target_hz points per second."""
        pipeline = make_pipeline(dead_zone_px=0, target_hz=30)
        emitted = []

        for i in range(200):
            x = 0 if i % 2 == 0 else 1000
            point = pipeline.process(RawGazeSample(i * 5, x, 400))
            if point is not None:
                emitted.append(point)

        assert 0 < len(emitted) <= 30
        assert pipeline.statistics["rate_limited"] > 0

    def test_mirror(self):
        """Test that the x axis is flipped for mirrored previews."""
        pipeline = make_pipeline(mirror=True)

        point = pipeline.process(RawGazeSample(0, 100, 300))

        assert point.x == pytest.approx(900.0)
        assert point.y == pytest.approx(300.0)

    def test_dead_zone(self):
        """Test that small movements are held and large ones pass."""
        pipeline = make_pipeline(smoothing_factor=1.0, dead_zone_px=12)

        assert pipeline.process(RawGazeSample(0, 500, 500)) is not None
        assert pipeline.process(RawGazeSample(100, 505, 505)) is None
        assert pipeline.current_position.x == 500

        moved = pipeline.process(RawGazeSample(200, 520, 500))
        assert moved is not None
        assert moved.x == pytest.approx(520.0)
        assert pipeline.statistics["dead_zoned"] == 1

    def test_non_finite_rejected(self):
        """Test that NaN samples are dropped without touching state."""
        pipeline = make_pipeline()

        assert pipeline.process(RawGazeSample(0, float("nan"), 100)) is None
        assert pipeline.process(RawGazeSample(0, 100, float("inf"))) is None
        assert pipeline.process(None) is None
        assert pipeline.current_position is None
        assert pipeline.statistics["rejected"] == 3

        # Rate limiter untouched: a sample at the same timestamp passes
        assert pipeline.process(RawGazeSample(0, 200, 200)) is not None

    def test_offsets_applied(self):
        """Test that calibration offsets correct the raw point."""
        offsets = CalibrationOffsets(offset_x=50, offset_y=0, scale_x=2.0, scale_y=1.0)
        pipeline = make_pipeline(offsets_provider=lambda: offsets)

        point = pipeline.process(RawGazeSample(0, 150, 300))

        assert point.x == pytest.approx(200.0)
        assert point.y == pytest.approx(300.0)

    def test_offsets_swap_picked_up(self):
        """Test that new offsets apply from the next sample."""
        active = [CalibrationOffsets.identity()]
        pipeline = make_pipeline(
            offsets_provider=lambda: active[0], smoothing_factor=1.0, dead_zone_px=0
        )

        assert pipeline.process(RawGazeSample(0, 100, 100)).x == pytest.approx(100.0)

        active[0] = CalibrationOffsets(scale_x=2.0)
        assert pipeline.process(RawGazeSample(100, 100, 100)).x == pytest.approx(200.0)

    def test_output_clamped(self):
        """Test that corrected points never leave the viewport."""
        offsets = CalibrationOffsets(scale_x=10.0, scale_y=10.0)
        pipeline = make_pipeline(offsets_provider=lambda: offsets)

        point = pipeline.process(RawGazeSample(0, 900, 700))

        assert (point.x, point.y) == (1000, 800)

    def test_published(self):
        """Test that emitted points are published on the hub."""
        hub = EventHub()
        received = []
        hub.gaze.subscribe(received.append)
        pipeline = make_pipeline(hub=hub)

        point = pipeline.process(RawGazeSample(0, 400, 300))
        pipeline.process(RawGazeSample(100, 401, 300))

        assert received == [point]

    def test_update_config_applies_next_sample(self):
        """Test runtime changes of rate and smoothing."""
        pipeline = make_pipeline(target_hz=10, smoothing_factor=1.0, dead_zone_px=0)
        pipeline.process(RawGazeSample(0, 100, 100))
        assert pipeline.process(RawGazeSample(50, 200, 100)) is None

        pipeline.update_config(GazeConfig(target_hz=100, smoothing_factor=1.0,
                                          dead_zone_px=0, mirror=False))

        assert pipeline.process(RawGazeSample(60, 200, 100)) is not None

    def test_reset(self):
        """Test that reset forgets the smoothed position."""
        pipeline = make_pipeline()
        pipeline.process(RawGazeSample(0, 100, 100))

        pipeline.reset()

        assert pipeline.current_position is None
        assert pipeline.process(RawGazeSample(0, 700, 700)).x == 700
