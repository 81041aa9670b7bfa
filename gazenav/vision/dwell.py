"""
Dwell clicking.

Each frame the target under the gaze point is resolved. Landing on a
target starts an onset delay (so merely passing over it does nothing);
after that a dwell timer fills from 0 to 1, and on reaching 1 an
activation fires once and the state is cleared. Looking away, or at a
different target, throws away any progress.
"""

import math
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional

from gazenav.core.config import DwellConfig
from gazenav.core.events import CapabilityMonitor, EventHub
from gazenav.utils.logger import get_logger

logger = get_logger(__name__)

TargetResolver = Callable[[float, float], Optional[str]]


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle in viewport pixels."""

    left: float
    top: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def bottom(self) -> float:
        return self.top + self.height

    def contains(self, x: float, y: float) -> bool:
        return self.left <= x <= self.right and self.top <= y <= self.bottom

    def distance_to(self, x: float, y: float) -> float:
        """Distance from a point to the rectangle (0 inside)."""
        dx = max(self.left - x, 0.0, x - self.right)
        dy = max(self.top - y, 0.0, y - self.bottom)
        return math.hypot(dx, dy)


@dataclass(frozen=True)
class DwellTarget:
    """An interactive region."""

    target_id: str
    bounds: Rect


@dataclass
class DwellState:
    """Progress toward activating one target."""

    current_target_id: Optional[str] = None
    onset_deadline_ms: Optional[float] = None
    dwell_timer_start_ms: Optional[float] = None


@dataclass(frozen=True)
class DwellProgress:
    """Per-frame progress for visual feedback (e.g. a filling ring)."""

    target_id: Optional[str]
    progress: float  # 0..1
    x: float
    y: float
    timestamp_ms: float


@dataclass(frozen=True)
class Activation:
    """Dwell completed on a target: treat as a click."""

    target_id: str
    timestamp_ms: float


class RegionRegistry:
    """
    Registry of interactive regions usable as a target resolver.

    Resolution: a region containing the point wins (the smallest one if
    several overlap); otherwise the nearest region whose edge is within
    ``snap_radius_px``; otherwise none.
    """

    def __init__(self, snap_radius_px: float = 0.0):
        self._targets: Dict[str, DwellTarget] = {}
        self.snap_radius_px = snap_radius_px

    def register(self, target_id: str, bounds: Rect):
        self._targets[target_id] = DwellTarget(target_id, bounds)

    def unregister(self, target_id: str) -> bool:
        return self._targets.pop(target_id, None) is not None

    def replace_all(self, targets: Iterable[DwellTarget]):
        """Swap in a new set of regions (e.g. after a layout change)."""
        self._targets = {t.target_id: t for t in targets}

    def clear(self):
        self._targets.clear()

    def resolve(self, x: float, y: float) -> Optional[str]:
        best_id = None
        best_key = None
        for target in self._targets.values():
            bounds = target.bounds
            if bounds.contains(x, y):
                key = (0, bounds.width * bounds.height)
            else:
                distance = bounds.distance_to(x, y)
                if distance > self.snap_radius_px:
                    continue
                key = (1, distance)
            if best_key is None or key < best_key:
                best_id, best_key = target.target_id, key
        return best_id

    __call__ = resolve

    def __len__(self) -> int:
        return len(self._targets)

    def __contains__(self, target_id: str) -> bool:
        return target_id in self._targets


class DwellController:
    """
    Convert a gaze point stream into one-shot activations.

    ``update`` must be called once per frame with the latest smoothed
    point. Configuration is read at the start of every update, so
    changed durations apply from the next frame without resetting a
    dwell in progress.
    """

    def __init__(
        self,
        config: DwellConfig,
        resolver: Optional[TargetResolver],
        hub: Optional[EventHub] = None,
        monitor: Optional[CapabilityMonitor] = None,
    ):
        """
        Initialize controller.

        Args:
            config: Dwell timing
            resolver: Maps (x, y) to a target id or None
            hub: Event hub for progress and activation events
            monitor: Capability monitor for reporting a missing resolver
        """
        config.validate()
        self._config = config
        self._resolver = resolver
        self._hub = hub
        self._monitor = monitor or CapabilityMonitor(hub)

        self._state = DwellState()
        self._activations = 0
        self._sync_snap_radius()

        logger.info(
            f"DwellController initialized: onset={config.onset_delay_ms:.0f}ms, "
            f"dwell={config.dwell_duration_ms:.0f}ms"
        )

    def update(self, x: float, y: float, now_ms: float) -> DwellProgress:
        """
        Evaluate one frame.

        Args:
            x: Gaze x (viewport pixels)
            y: Gaze y (viewport pixels)
            now_ms: Frame time in milliseconds

        Returns:
            DwellProgress for this frame
        """
        if self._resolver is None:
            self._monitor.report("target_resolver", "no target resolver attached")
            self.reset()
            return DwellProgress(None, 0.0, x, y, now_ms)

        if not (math.isfinite(x) and math.isfinite(y)):
            return self._publish(DwellProgress(self._state.current_target_id, 0.0, x, y, now_ms))

        cfg = self._config
        target_id = self._resolver(x, y)

        if target_id is None:
            self.reset()
            return self._publish(DwellProgress(None, 0.0, x, y, now_ms))

        state = self._state
        if target_id != state.current_target_id:
            deadline = now_ms + cfg.onset_delay_ms
            self._state = DwellState(
                current_target_id=target_id,
                onset_deadline_ms=deadline,
                # Dwell time counts from the end of the onset delay
                dwell_timer_start_ms=deadline,
            )
            return self._publish(DwellProgress(target_id, 0.0, x, y, now_ms))

        if now_ms <= state.onset_deadline_ms:
            return self._publish(DwellProgress(target_id, 0.0, x, y, now_ms))

        elapsed = now_ms - state.dwell_timer_start_ms
        progress = min(max(elapsed / cfg.dwell_duration_ms, 0.0), 1.0)

        if progress >= 1.0:
            self.reset()
            self._activations += 1
            logger.info(f"Dwell activation: {target_id}")
            completed = self._publish(DwellProgress(target_id, 1.0, x, y, now_ms))
            if self._hub is not None:
                self._hub.activation.publish(Activation(target_id, now_ms))
            return completed

        return self._publish(DwellProgress(target_id, progress, x, y, now_ms))

    def _publish(self, progress: DwellProgress) -> DwellProgress:
        if self._hub is not None:
            self._hub.dwell_progress.publish(progress)
        return progress

    def reset(self):
        """Cancel any dwell in progress."""
        self._state = DwellState()

    def set_resolver(self, resolver: Optional[TargetResolver]):
        """Attach (or detach) the target resolver."""
        self._resolver = resolver
        self.reset()
        self._sync_snap_radius()
        if resolver is not None:
            self._monitor.restore("target_resolver")

    def _sync_snap_radius(self):
        # Only the stock registry knows about snapping
        if isinstance(self._resolver, RegionRegistry):
            self._resolver.snap_radius_px = self._config.snap_radius_px

    def update_config(self, config: DwellConfig):
        """
        Replace timing; applies from the next frame.

        Raises:
            ConfigError: If the new configuration is invalid
        """
        config.validate()
        self._config = config
        self._sync_snap_radius()
        logger.debug(
            f"Dwell config updated: onset={config.onset_delay_ms:.0f}ms, "
            f"dwell={config.dwell_duration_ms:.0f}ms"
        )

    @property
    def state(self) -> DwellState:
        """Snapshot of the current dwell state."""
        s = self._state
        return DwellState(s.current_target_id, s.onset_deadline_ms, s.dwell_timer_start_ms)

    @property
    def activations(self) -> int:
        return self._activations
