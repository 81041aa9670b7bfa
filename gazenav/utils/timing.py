"""
Timing utilities: a shared millisecond clock, rate limiting and FPS tracking.

All components work on millisecond timestamps taken from the same
monotonic clock, so sample timestamps and tick times are comparable.
"""

import time
from typing import Optional


def monotonic_ms() -> float:
    """Current monotonic time in milliseconds."""
    return time.perf_counter() * 1000.0


class FPSCounter:
    """
    Track and calculate ticks per second.

    Used by the controller to report how fast frames are being driven.
    """

    def __init__(self, window_size: int = 30):
        """
        Initialize FPS counter.

        Args:
            window_size: Number of intervals to average over
        """
        self._window_size = window_size
        self._frame_times: list[float] = []
        self._last_time: Optional[float] = None

    def tick(self, now_ms: Optional[float] = None) -> float:
        """
        Register a tick and return current FPS.

        Args:
            now_ms: Tick timestamp in milliseconds (default: monotonic clock)

        Returns:
            Current FPS (ticks per second)
        """
        current_time = monotonic_ms() if now_ms is None else now_ms

        if self._last_time is not None:
            self._frame_times.append(current_time - self._last_time)

            # Keep only last N intervals
            if len(self._frame_times) > self._window_size:
                self._frame_times.pop(0)

        self._last_time = current_time

        return self.fps

    @property
    def fps(self) -> float:
        """
        Get current FPS.

        Returns:
            Current FPS, or 0.0 if no intervals recorded
        """
        if not self._frame_times:
            return 0.0

        avg_frame_time = sum(self._frame_times) / len(self._frame_times)
        if avg_frame_time <= 0:
            return 0.0

        return 1000.0 / avg_frame_time

    def reset(self):
        """Reset FPS counter."""
        self._frame_times.clear()
        self._last_time = None


class RateLimiter:
    """
    Drop events that arrive faster than a target rate.

    Unlike a sleeping frame limiter this never blocks: ``accept`` answers
    whether an event stamped ``now_ms`` may pass, based on the last
    accepted timestamp.
    """

    def __init__(self, target_hz: float):
        """
        Initialize rate limiter.

        Args:
            target_hz: Maximum accepted events per second (0 disables limiting)
        """
        self._target_hz = target_hz
        self._min_interval_ms = 1000.0 / target_hz if target_hz > 0 else 0.0
        self._last_accepted: Optional[float] = None

    def accept(self, now_ms: float) -> bool:
        """
        Check whether an event at ``now_ms`` may pass, and record it if so.

        Args:
            now_ms: Event timestamp in milliseconds

        Returns:
            True if accepted, False if it arrived too soon
        """
        if (
            self._last_accepted is not None
            and now_ms - self._last_accepted < self._min_interval_ms
        ):
            return False

        self._last_accepted = now_ms
        return True

    @property
    def target_hz(self) -> float:
        """Get target rate."""
        return self._target_hz

    @target_hz.setter
    def target_hz(self, hz: float):
        """
        Set target rate.

        Args:
            hz: Maximum accepted events per second
        """
        self._target_hz = hz
        self._min_interval_ms = 1000.0 / hz if hz > 0 else 0.0

    @property
    def min_interval_ms(self) -> float:
        """Minimum spacing between accepted events."""
        return self._min_interval_ms

    def reset(self):
        """Forget the last accepted timestamp."""
        self._last_accepted = None
