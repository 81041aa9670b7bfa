"""
Calibration: map raw gaze predictions onto viewport pixels.

Provides the guided calibration routine and the affine correction it
produces.

Routine (one pass per target, in configured order):
1. Show target at its pixel position
2. Wait for the settle delay (gaze travels to the target, not sampled)
3. Poll a fixed number of raw samples, each poll bounded by a timeout
4. Reduce the samples to a per-axis median (robust to blinks/dropouts)
5. Hide target

Then fit, independently per axis, a scale and offset such that

    corrected = (raw - offset) * scale

maps the raw medians onto the target positions. The new offsets replace
the old ones in a single assignment once every target is done, so a
reader never observes a half-updated correction.
"""

import asyncio
import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np
from scipy import stats  # median absolute deviation (sample spread)

from gazenav.core.config import CalibrationConfig
from gazenav.core.events import CapabilityMonitor, EventHub
from gazenav.core.samples import GazeSampleSource, RawGazeSample, Viewport
from gazenav.storage.schema import CalibrationPoint
from gazenav.utils.logger import get_logger
from gazenav.utils.timing import monotonic_ms

logger = get_logger(__name__)


class CalibrationBusyError(RuntimeError):
    """A calibration run is already in progress."""

    pass


@dataclass(frozen=True)
class CalibrationTarget:
    """Calibration target in normalized [0, 1] screen space."""

    x_norm: float
    y_norm: float

    def to_pixels(self, viewport: Viewport) -> Tuple[float, float]:
        return (self.x_norm * viewport.width, self.y_norm * viewport.height)


@dataclass(frozen=True)
class CalibrationOffsets:
    """
    Per-axis affine correction.

    corrected = (raw - offset) * scale, clamped to the viewport.
    Identity is offset 0, scale 1.
    """

    offset_x: float = 0.0
    offset_y: float = 0.0
    scale_x: float = 1.0
    scale_y: float = 1.0

    @classmethod
    def identity(cls) -> "CalibrationOffsets":
        return cls()

    @property
    def is_identity(self) -> bool:
        return self == CalibrationOffsets.identity()

    def apply(self, raw_x: float, raw_y: float, viewport: Viewport) -> Tuple[float, float]:
        """
        Correct a raw gaze coordinate.

        Args:
            raw_x: Raw x (viewport pixels)
            raw_y: Raw y (viewport pixels)
            viewport: Clamp bounds

        Returns:
            (x, y) within [0, width] x [0, height]
        """
        x = (raw_x - self.offset_x) * self.scale_x
        y = (raw_y - self.offset_y) * self.scale_y
        return (
            min(max(x, 0.0), viewport.width),
            min(max(y, 0.0), viewport.height),
        )

    def to_dict(self) -> dict:
        return {
            "offset_x": self.offset_x,
            "offset_y": self.offset_y,
            "scale_x": self.scale_x,
            "scale_y": self.scale_y,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CalibrationOffsets":
        offsets = cls(
            offset_x=float(data["offset_x"]),
            offset_y=float(data["offset_y"]),
            scale_x=float(data["scale_x"]),
            scale_y=float(data["scale_y"]),
        )
        if not all(math.isfinite(v) for v in offsets.to_dict().values()):
            raise ValueError("Calibration offsets must be finite")
        return offsets


@dataclass(frozen=True)
class TargetShown:
    """Show (visible=True) or hide a calibration target."""

    target_index: int
    x: float
    y: float
    visible: bool


@dataclass(frozen=True)
class CalibrationProgress:
    """Emitted after every poll during sampling."""

    target_index: int
    sample_index: int  # 1-based poll number for this target
    total: int  # Polls per target
    target_count: int
    collected: int  # Samples actually received so far for this target


@dataclass(frozen=True)
class CalibrationComplete:
    """A calibration run finished and its offsets are now active."""

    offsets: CalibrationOffsets
    sample_count: int
    points: Tuple[CalibrationPoint, ...]
    timestamp_ms: float


@dataclass(frozen=True)
class CalibrationWiped:
    """Offsets were reset to identity."""

    previous: CalibrationOffsets
    timestamp_ms: float


@dataclass
class CalibrationResult:
    """Outcome of one calibration run."""

    offsets: CalibrationOffsets
    points: List[CalibrationPoint] = field(default_factory=list)

    @property
    def sample_count(self) -> int:
        return sum(p.sample_count for p in self.points)


def fit_axis(
    raw_medians: Sequence[float],
    target_positions: Sequence[float],
    extent: float,
) -> Tuple[float, float]:
    """
    Fit offset and scale for one axis.

    The scale matches the spread of the raw medians to the spread of the
    targets, the offset puts the raw centroid onto the target centroid
    under ``corrected = (raw - offset) * scale``. Rotation is not modeled.

    Args:
        raw_medians: Median raw coordinate per target
        target_positions: Target pixel coordinate per target
        extent: Viewport size on this axis (fallback raw range)

    Returns:
        (offset, scale)
    """
    raw = np.asarray(raw_medians, dtype=np.float64)
    targets = np.asarray(target_positions, dtype=np.float64)

    raw_range = float(raw.max() - raw.min())
    if raw_range == 0.0:
        logger.warning("Raw gaze range collapsed on one axis, using viewport extent")
        raw_range = float(extent)

    target_range = float(targets.max() - targets.min())
    scale = target_range / raw_range if target_range > 0 else 1.0

    offset = float(raw.mean() - targets.mean() / scale)
    return offset, scale


def fit_offsets(points: Sequence[CalibrationPoint], viewport: Viewport) -> CalibrationOffsets:
    """
    Fit a full correction from calibration points.

    Args:
        points: One point per target (median gaze vs. target position)
        viewport: Viewport the targets were shown in

    Returns:
        CalibrationOffsets
    """
    if not points:
        return CalibrationOffsets.identity()

    offset_x, scale_x = fit_axis(
        [p.gaze_x for p in points], [p.screen_x for p in points], viewport.width
    )
    offset_y, scale_y = fit_axis(
        [p.gaze_y for p in points], [p.screen_y for p in points], viewport.height
    )
    return CalibrationOffsets(
        offset_x=offset_x, offset_y=offset_y, scale_x=scale_x, scale_y=scale_y
    )


def summarize_samples(
    samples: Sequence[RawGazeSample],
    target_x: float,
    target_y: float,
) -> CalibrationPoint:
    """
    Reduce the samples of one target to a calibration point.

    Medians are taken per axis. With no samples the target position
    itself stands in for the median, which keeps the fit well defined.
    """
    if not samples:
        return CalibrationPoint(
            screen_x=target_x,
            screen_y=target_y,
            gaze_x=target_x,
            gaze_y=target_y,
            sample_count=0,
        )

    xs = np.array([s.x for s in samples], dtype=np.float64)
    ys = np.array([s.y for s in samples], dtype=np.float64)

    return CalibrationPoint(
        screen_x=target_x,
        screen_y=target_y,
        gaze_x=float(np.median(xs)),
        gaze_y=float(np.median(ys)),
        sample_count=len(samples),
        spread_x=float(stats.median_abs_deviation(xs)),
        spread_y=float(stats.median_abs_deviation(ys)),
    )


class CalibrationEngine:
    """
    Runs the calibration routine and owns the active offsets.

    The offsets are an immutable value; completion and ``wipe`` replace
    the reference, nothing else writes it. Runs must not overlap: a
    second ``run`` while one is active raises CalibrationBusyError.
    Cancelling the task running ``run`` abandons it without committing.
    """

    def __init__(
        self,
        config: CalibrationConfig,
        source: Optional[GazeSampleSource],
        hub: Optional[EventHub] = None,
        monitor: Optional[CapabilityMonitor] = None,
    ):
        """
        Initialize engine.

        Args:
            config: Calibration configuration
            source: Pull-style raw gaze source (None if unavailable)
            hub: Event hub for progress/complete/wiped events
            monitor: Capability monitor for reporting a missing source
        """
        config.validate()
        self._config = config
        self._source = source
        self._hub = hub
        self._monitor = monitor or CapabilityMonitor(hub)

        self._offsets = CalibrationOffsets.identity()
        self._running = False
        self._last_result: Optional[CalibrationResult] = None

        logger.info(
            f"CalibrationEngine initialized: {len(config.target_positions)} targets, "
            f"{config.samples_per_target} samples each"
        )

    @property
    def offsets(self) -> CalibrationOffsets:
        """Active correction."""
        return self._offsets

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def last_result(self) -> Optional[CalibrationResult]:
        return self._last_result

    @property
    def targets(self) -> List[CalibrationTarget]:
        return [CalibrationTarget(x, y) for x, y in self._config.target_positions]

    def set_source(self, source: Optional[GazeSampleSource]):
        """Attach (or detach) the raw gaze source."""
        self._source = source
        if source is not None:
            self._monitor.restore("gaze_source")

    async def run(self, viewport: Viewport) -> Optional[CalibrationResult]:
        """
        Run the full calibration routine.

        Args:
            viewport: Current viewport size

        Returns:
            CalibrationResult, or None if no gaze source is available

        Raises:
            CalibrationBusyError: If a run is already in progress
        """
        if self._running:
            raise CalibrationBusyError("Calibration already running")

        if self._source is None:
            self._monitor.report("gaze_source", "no gaze sample source attached")
            return None

        self._running = True
        config = self._config
        try:
            targets = self.targets
            logger.info(f"Calibration started: {len(targets)} targets")

            points = []
            for index, target in enumerate(targets):
                points.append(await self._sample_target(index, target, viewport, config))

            offsets = fit_offsets(points, viewport)
            result = CalibrationResult(offsets=offsets, points=points)

            # Commit: single reference swap
            self._offsets = offsets
            self._last_result = result

            logger.info(
                f"Calibration complete: {result.sample_count} samples, "
                f"scale=({offsets.scale_x:.3f}, {offsets.scale_y:.3f}), "
                f"offset=({offsets.offset_x:.1f}, {offsets.offset_y:.1f})"
            )
            if self._hub is not None:
                self._hub.calibration_complete.publish(
                    CalibrationComplete(
                        offsets=offsets,
                        sample_count=result.sample_count,
                        points=tuple(points),
                        timestamp_ms=monotonic_ms(),
                    )
                )
            return result

        finally:
            self._running = False

    async def _sample_target(
        self,
        index: int,
        target: CalibrationTarget,
        viewport: Viewport,
        config: CalibrationConfig,
    ) -> CalibrationPoint:
        target_x, target_y = target.to_pixels(viewport)
        total = config.samples_per_target
        timeout_s = config.sample_timeout_ms / 1000.0

        self._publish_target(TargetShown(index, target_x, target_y, visible=True))
        try:
            await asyncio.sleep(config.settle_delay_ms / 1000.0)

            samples: List[RawGazeSample] = []
            for sample_index in range(1, total + 1):
                sample = await self._source.next_sample(timeout_s)
                if sample is not None and sample.is_finite():
                    samples.append(sample)

                if self._hub is not None:
                    self._hub.calibration_progress.publish(
                        CalibrationProgress(
                            target_index=index,
                            sample_index=sample_index,
                            total=total,
                            target_count=len(config.target_positions),
                            collected=len(samples),
                        )
                    )
        finally:
            self._publish_target(TargetShown(index, target_x, target_y, visible=False))

        if not samples:
            logger.warning(f"No gaze samples for target {index}, using target position")
        else:
            logger.debug(f"Target {index}: {len(samples)}/{total} samples")

        return summarize_samples(samples, target_x, target_y)

    def _publish_target(self, event: TargetShown):
        if self._hub is not None:
            self._hub.calibration_target.publish(event)

    def wipe(self) -> CalibrationOffsets:
        """
        Reset offsets to identity.

        Returns:
            The offsets that were active before the wipe
        """
        previous = self._offsets
        self._offsets = CalibrationOffsets.identity()
        self._last_result = None
        logger.info("Calibration wiped")
        if self._hub is not None:
            self._hub.calibration_wiped.publish(
                CalibrationWiped(previous=previous, timestamp_ms=monotonic_ms())
            )
        return previous

    def restore(self, offsets: CalibrationOffsets):
        """Activate offsets from a previously completed (persisted) run."""
        self._offsets = offsets
        logger.info("Calibration offsets restored")

    def update_config(self, config: CalibrationConfig):
        """
        Replace configuration; used by the next run.

        Raises:
            ConfigError: If the new configuration is invalid
        """
        config.validate()
        self._config = config
        logger.debug("Calibration config updated")
