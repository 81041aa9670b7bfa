"""
Gaze pipeline: correction, rate limiting and jitter control.

Per raw sample:
1. Reject non-finite coordinates (state untouched)
2. Rate limit to ``target_hz`` on sample timestamps
3. Undo preview mirroring if configured
4. Apply the active calibration offsets
5. Exponential moving average per axis
6. Dead zone: hold position unless it moved at least ``dead_zone_px``
"""

import math
from dataclasses import dataclass
from typing import Callable, Optional

from gazenav.core.config import GazeConfig
from gazenav.core.events import EventHub
from gazenav.core.samples import RawGazeSample, Viewport
from gazenav.utils.logger import get_logger
from gazenav.utils.timing import RateLimiter
from gazenav.vision.calibrator import CalibrationOffsets

logger = get_logger(__name__)

OffsetsProvider = Callable[[], CalibrationOffsets]


@dataclass(frozen=True)
class GazePoint:
    """Smoothed gaze position in viewport pixels."""

    x: float
    y: float
    timestamp_ms: float


class GazePipeline:
    """
    Turn raw gaze predictions into a stable cursor coordinate.

    The active offsets come from ``offsets_provider`` and are read once
    per accepted sample, so a calibration that completes between two
    samples takes effect as a whole on the next one.
    """

    def __init__(
        self,
        config: GazeConfig,
        viewport: Viewport,
        offsets_provider: Optional[OffsetsProvider] = None,
        hub: Optional[EventHub] = None,
    ):
        """
        Initialize pipeline.

        Args:
            config: Gaze configuration
            viewport: Viewport size (mirror axis and clamp bounds)
            offsets_provider: Returns the active calibration offsets
            hub: Event hub to publish gaze points on
        """
        config.validate()
        self._config = config
        self._viewport = viewport
        self._offsets_provider = offsets_provider or CalibrationOffsets.identity
        self._hub = hub

        self._limiter = RateLimiter(config.target_hz)

        # Current smoothed position
        self._smoothed_x: Optional[float] = None
        self._smoothed_y: Optional[float] = None

        self._last_emitted: Optional[GazePoint] = None

        self._rejected = 0
        self._rate_limited = 0
        self._dead_zoned = 0
        self._emitted = 0

        logger.info(
            f"GazePipeline initialized: smoothing={config.smoothing_factor:.2f}, "
            f"dead_zone={config.dead_zone_px:.0f}px, rate={config.target_hz:.0f}Hz, "
            f"mirror={config.mirror}"
        )

    def process(self, sample: RawGazeSample) -> Optional[GazePoint]:
        """
        Feed one raw gaze sample.

        Args:
            sample: Raw prediction in viewport pixels

        Returns:
            GazePoint if a new position was emitted, else None
        """
        if sample is None or not sample.is_finite() or not math.isfinite(sample.timestamp_ms):
            self._rejected += 1
            return None

        cfg = self._config

        if not self._limiter.accept(sample.timestamp_ms):
            self._rate_limited += 1
            return None

        raw_x = sample.x
        if cfg.mirror:
            raw_x = self._viewport.width - raw_x

        x, y = self._offsets_provider().apply(raw_x, sample.y, self._viewport)

        if self._smoothed_x is None or self._smoothed_y is None:
            self._smoothed_x = x
            self._smoothed_y = y
        else:
            alpha = cfg.smoothing_factor
            self._smoothed_x = self._smoothed_x * (1.0 - alpha) + x * alpha
            self._smoothed_y = self._smoothed_y * (1.0 - alpha) + y * alpha

        if self._last_emitted is not None:
            distance = math.hypot(
                self._smoothed_x - self._last_emitted.x,
                self._smoothed_y - self._last_emitted.y,
            )
            if distance < cfg.dead_zone_px:
                self._dead_zoned += 1
                return None

        point = GazePoint(x=self._smoothed_x, y=self._smoothed_y, timestamp_ms=sample.timestamp_ms)
        self._last_emitted = point
        self._emitted += 1

        if self._hub is not None:
            self._hub.gaze.publish(point)

        return point

    def update_config(self, config: GazeConfig):
        """
        Replace configuration; takes effect on the next sample.

        Raises:
            ConfigError: If the new configuration is invalid
        """
        config.validate()
        self._config = config
        self._limiter.target_hz = config.target_hz
        logger.debug(
            f"Gaze config updated: smoothing={config.smoothing_factor:.2f}, "
            f"dead_zone={config.dead_zone_px:.0f}px"
        )

    def update_viewport(self, viewport: Viewport):
        self._viewport = viewport
        logger.info(f"Viewport updated: {viewport.width:.0f}x{viewport.height:.0f}")

    def set_offsets_provider(self, provider: OffsetsProvider):
        self._offsets_provider = provider

    def reset(self):
        """Reset smoothing and rate limiting (e.g., after calibration)."""
        self._smoothed_x = None
        self._smoothed_y = None
        self._last_emitted = None
        self._limiter.reset()
        logger.debug("Gaze pipeline reset")

    @property
    def current_position(self) -> Optional[GazePoint]:
        """Last emitted position."""
        return self._last_emitted

    @property
    def viewport(self) -> Viewport:
        return self._viewport

    @property
    def statistics(self) -> dict:
        return {
            "emitted": self._emitted,
            "rejected": self._rejected,
            "rate_limited": self._rate_limited,
            "dead_zoned": self._dead_zoned,
        }
