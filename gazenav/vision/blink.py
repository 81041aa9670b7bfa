"""
Blink detection from a per-frame luminance stream.

A closing eyelid darkens the eye region for a few frames. The detector
keeps a rolling baseline of recent brightness so that its thresholds
follow ambient lighting, and runs a two-state machine:

    IDLE --(sharp drop well below baseline)--> CLOSING
    CLOSING --(sharp rise back toward baseline)--> IDLE (+ BlinkEvent)

A blink only counts if its duration lies strictly between
``min_blink_ms`` (shorter is flicker) and ``max_blink_ms`` (longer is a
deliberate eye closure). A CLOSING state that outlives ``max_blink_ms``
is abandoned without an event.
"""

from collections import deque
from dataclasses import dataclass
from enum import Enum, auto
from typing import Deque, Optional, Tuple

import numpy as np

from gazenav.core.config import BlinkConfig
from gazenav.core.events import EventHub
from gazenav.core.samples import LuminanceSample, is_finite_number
from gazenav.utils.logger import get_logger

logger = get_logger(__name__)


class BlinkState(Enum):
    """Blink detector states."""

    IDLE = auto()
    CLOSING = auto()


@dataclass(frozen=True)
class BlinkEvent:
    """A completed blink."""

    duration_ms: float
    strength: float  # Brightness change at reopening
    timestamp_ms: float  # When the eye reopened


class BaselineWindow:
    """
    Fixed-capacity FIFO of recent luminance values.

    Mean and population standard deviation are computed from the current
    contents only; evicted values have no influence.
    """

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._values: Deque[float] = deque(maxlen=capacity)

    def push(self, value: float):
        self._values.append(float(value))

    def stats(self) -> Tuple[float, float]:
        """
        Returns:
            (mean, stdev) of the window, (0.0, 0.0) when empty
        """
        if not self._values:
            return 0.0, 0.0
        values = np.fromiter(self._values, dtype=np.float64, count=len(self._values))
        return float(values.mean()), float(values.std())

    def resize(self, capacity: int):
        """Change capacity, keeping the newest values."""
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._values = deque(self._values, maxlen=capacity)

    def clear(self):
        self._values.clear()

    @property
    def capacity(self) -> int:
        return self._values.maxlen

    def __len__(self) -> int:
        return len(self._values)


class BlinkDetector:
    """
    Classify a luminance stream into blink events.

    Samples must be fed in arrival order. Unusable samples (None, NaN,
    infinite) are skipped and leave every piece of state untouched.
    """

    def __init__(self, config: BlinkConfig, hub: Optional[EventHub] = None):
        """
        Initialize detector.

        Args:
            config: Blink thresholds
            hub: Event hub to publish blinks on (optional)
        """
        config.validate()
        self._config = config
        self._hub = hub

        self._window = BaselineWindow(config.window_size)
        self._state = BlinkState.IDLE
        self._blink_start_ms: Optional[float] = None
        self._previous: Optional[float] = None

        self._blink_count = 0
        self._skipped_samples = 0

        logger.info(
            f"BlinkDetector initialized: window={config.window_size}, "
            f"duration=({config.min_blink_ms:.0f}, {config.max_blink_ms:.0f})ms"
        )

    def process(self, sample: LuminanceSample) -> Optional[BlinkEvent]:
        """
        Feed one luminance sample.

        Args:
            sample: Mean frame brightness with timestamp

        Returns:
            BlinkEvent if this sample completed a valid blink, else None
        """
        if (
            sample is None
            or not is_finite_number(sample.value)
            or not is_finite_number(sample.timestamp_ms)
        ):
            self._skipped_samples += 1
            return None

        cfg = self._config
        now = sample.timestamp_ms
        current = float(sample.value)

        intensity_change = 0.0 if self._previous is None else abs(current - self._previous)
        self._previous = current

        self._window.push(current)
        mean, stdev = self._window.stats()
        drop_threshold = max(cfg.min_drop, stdev * cfg.drop_factor)

        if self._state == BlinkState.CLOSING and now - self._blink_start_ms > cfg.max_blink_ms:
            logger.debug(f"Eye closed longer than {cfg.max_blink_ms:.0f}ms, blink abandoned")
            self._reset_blink()

        sharp_change = intensity_change > drop_threshold

        if self._state == BlinkState.IDLE:
            if sharp_change and current < mean - stdev * cfg.enter_factor:
                self._state = BlinkState.CLOSING
                self._blink_start_ms = now
            return None

        if sharp_change and current > mean - stdev * cfg.exit_factor:
            duration = now - self._blink_start_ms
            self._reset_blink()

            if cfg.min_blink_ms < duration < cfg.max_blink_ms:
                event = BlinkEvent(
                    duration_ms=duration,
                    strength=intensity_change,
                    timestamp_ms=now,
                )
                self._blink_count += 1
                logger.info(f"Blink detected ({duration:.0f}ms)")
                if self._hub is not None:
                    self._hub.blink.publish(event)
                return event

            logger.debug(f"Blink of {duration:.0f}ms outside accepted range, ignored")

        return None

    def _reset_blink(self):
        self._state = BlinkState.IDLE
        self._blink_start_ms = None

    def update_config(self, config: BlinkConfig):
        """
        Replace thresholds; takes effect on the next sample.

        Raises:
            ConfigError: If the new configuration is invalid
        """
        config.validate()
        if config.window_size != self._window.capacity:
            self._window.resize(config.window_size)
        self._config = config
        logger.debug("Blink config updated")

    def reset(self):
        """Forget baseline and any blink in progress."""
        self._window.clear()
        self._previous = None
        self._reset_blink()

    @property
    def state(self) -> BlinkState:
        return self._state

    @property
    def baseline(self) -> Tuple[float, float]:
        """Current (mean, stdev) of the baseline window."""
        return self._window.stats()

    @property
    def window(self) -> BaselineWindow:
        return self._window

    @property
    def statistics(self) -> dict:
        return {
            "blinks": self._blink_count,
            "skipped_samples": self._skipped_samples,
        }
