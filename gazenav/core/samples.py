"""
Input sample records and the bounded-wait sample mailbox.

Raw gaze coordinate contract: ``RawGazeSample.x`` / ``.y`` are always in
viewport pixels. A sample source whose model reports normalized [0, 1]
values must rescale them before handing samples to GazeNav.
"""

import asyncio
import math
from collections import deque
from dataclasses import dataclass
from typing import Deque, Optional, Protocol


@dataclass(frozen=True)
class LuminanceSample:
    """Mean brightness of one video frame."""

    timestamp_ms: float
    value: float


@dataclass(frozen=True)
class RawGazeSample:
    """Uncalibrated gaze prediction in viewport pixels."""

    timestamp_ms: float
    x: float
    y: float

    def is_finite(self) -> bool:
        """True if both coordinates are usable numbers."""
        return is_finite_number(self.x) and is_finite_number(self.y)


@dataclass(frozen=True)
class Viewport:
    """Viewport size in pixels."""

    width: float
    height: float

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Invalid viewport size: {self.width}x{self.height}")


def is_finite_number(value) -> bool:
    """True for real, finite numbers (bools and None excluded)."""
    if value is None or isinstance(value, bool):
        return False
    try:
        return math.isfinite(value)
    except TypeError:
        return False


class GazeSampleSource(Protocol):
    """Pull-side access to raw gaze predictions."""

    async def next_sample(self, timeout_s: float) -> Optional[RawGazeSample]:
        """Wait up to ``timeout_s`` for a new sample; None on timeout."""
        ...

    def latest(self) -> Optional[RawGazeSample]:
        """Most recent sample, if any."""
        ...


class SampleMailbox:
    """
    Hand raw gaze samples from a push-style source to pull-style readers.

    The producer calls ``put`` for every prediction. A reader awaits
    ``next_sample(timeout_s)``, which yields the next pending sample or
    None once the timeout expires. Only the most recent ``capacity``
    samples are kept, so a slow reader never sees an unbounded backlog.

    Waiters are plain futures created on the running loop, so one
    mailbox can serve successive ``asyncio.run`` calls.
    """

    def __init__(self, capacity: int = 1):
        """
        Initialize mailbox.

        Args:
            capacity: Pending samples retained (oldest dropped first)
        """
        self._pending: Deque[RawGazeSample] = deque(maxlen=capacity)
        self._waiters: Deque[asyncio.Future] = deque()
        self._latest: Optional[RawGazeSample] = None

    def put(self, sample: RawGazeSample):
        """Deliver a sample to the oldest waiter, or queue it."""
        self._latest = sample
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(sample)
                return
        self._pending.append(sample)

    async def next_sample(self, timeout_s: float) -> Optional[RawGazeSample]:
        """
        Wait for the next sample.

        Args:
            timeout_s: Maximum wait in seconds

        Returns:
            The sample, or None if none arrived in time
        """
        if self._pending:
            return self._pending.popleft()

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            return await asyncio.wait_for(waiter, timeout=timeout_s)
        except asyncio.TimeoutError:
            return None
        finally:
            if waiter in self._waiters:
                self._waiters.remove(waiter)

    def latest(self) -> Optional[RawGazeSample]:
        """Most recent sample, if any."""
        return self._latest

    def clear(self):
        """Drop pending samples."""
        self._pending.clear()
