"""
Typed publish/subscribe for GazeNav output events.

One ``EventChannel`` per event kind. Subscribers are plain callables;
``subscribe`` returns a ``Subscription`` whose ``unsubscribe`` removes
exactly that listener. A subscriber that raises is logged and skipped,
delivery to the others continues.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, Generic, List, Optional, TypeVar

from gazenav.utils.logger import get_logger

if TYPE_CHECKING:
    from gazenav.vision.blink import BlinkEvent
    from gazenav.vision.calibrator import (
        CalibrationComplete,
        CalibrationProgress,
        CalibrationWiped,
        TargetShown,
    )
    from gazenav.vision.dwell import Activation, DwellProgress
    from gazenav.vision.smoothing import GazePoint

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class CapabilityUnavailable:
    """An upstream capability is missing; the dependent processing stops."""

    capability: str  # "gaze_source", "target_resolver", ...
    reason: str


@dataclass(frozen=True)
class CapabilityRestored:
    """A previously reported capability is available again."""

    capability: str


@dataclass(frozen=True)
class ConfigChanged:
    """A configuration section was replaced."""

    section: str
    changes: Dict[str, Any]


class Subscription:
    """Handle returned by ``EventChannel.subscribe``."""

    def __init__(self, channel: "EventChannel", callback: Callable):
        self._channel = channel
        self._callback = callback
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self):
        """Remove the listener. Safe to call more than once."""
        if self._active:
            self._channel._remove(self._callback)
            self._active = False


class EventChannel(Generic[T]):
    """Fan-out of one event kind to any number of listeners."""

    def __init__(self, name: str):
        self._name = name
        self._listeners: List[Callable[[T], None]] = []

    @property
    def name(self) -> str:
        return self._name

    def subscribe(self, callback: Callable[[T], None]) -> Subscription:
        """
        Register a listener.

        Args:
            callback: Called with each published event

        Returns:
            Subscription handle for removing the listener
        """
        self._listeners.append(callback)
        return Subscription(self, callback)

    def publish(self, event: T) -> int:
        """
        Deliver an event to every listener.

        Args:
            event: Immutable event record

        Returns:
            Number of listeners that handled the event without error
        """
        delivered = 0
        # Copy so listeners may unsubscribe while being notified
        for callback in list(self._listeners):
            try:
                callback(event)
                delivered += 1
            except Exception as e:
                logger.error(f"Listener on '{self._name}' failed: {e}")
        return delivered

    def _remove(self, callback: Callable):
        try:
            self._listeners.remove(callback)
        except ValueError:
            pass

    def __len__(self) -> int:
        return len(self._listeners)


@dataclass
class EventHub:
    """All event channels of one GazeNav pipeline."""

    blink: EventChannel["BlinkEvent"] = field(default_factory=lambda: EventChannel("blink"))
    gaze: EventChannel["GazePoint"] = field(default_factory=lambda: EventChannel("gaze"))
    calibration_target: EventChannel["TargetShown"] = field(
        default_factory=lambda: EventChannel("calibration_target")
    )
    calibration_progress: EventChannel["CalibrationProgress"] = field(
        default_factory=lambda: EventChannel("calibration_progress")
    )
    calibration_complete: EventChannel["CalibrationComplete"] = field(
        default_factory=lambda: EventChannel("calibration_complete")
    )
    calibration_wiped: EventChannel["CalibrationWiped"] = field(
        default_factory=lambda: EventChannel("calibration_wiped")
    )
    dwell_progress: EventChannel["DwellProgress"] = field(
        default_factory=lambda: EventChannel("dwell_progress")
    )
    activation: EventChannel["Activation"] = field(
        default_factory=lambda: EventChannel("activation")
    )
    capability_unavailable: EventChannel[CapabilityUnavailable] = field(
        default_factory=lambda: EventChannel("capability_unavailable")
    )
    capability_restored: EventChannel[CapabilityRestored] = field(
        default_factory=lambda: EventChannel("capability_restored")
    )
    config_changed: EventChannel[ConfigChanged] = field(
        default_factory=lambda: EventChannel("config_changed")
    )


class CapabilityMonitor:
    """
    Report a missing capability once instead of failing every frame.

    Components call ``report`` whenever they find a capability missing;
    only the first call after it was last available publishes.
    """

    def __init__(self, hub: Optional[EventHub] = None):
        self._hub = hub
        self._missing: Dict[str, str] = {}

    def report(self, capability: str, reason: str) -> bool:
        """
        Mark a capability unavailable.

        Returns:
            True if this call published the report, False if already known
        """
        if capability in self._missing:
            return False

        self._missing[capability] = reason
        logger.error(f"Capability unavailable: {capability} ({reason})")
        if self._hub is not None:
            self._hub.capability_unavailable.publish(CapabilityUnavailable(capability, reason))
        return True

    def restore(self, capability: str) -> bool:
        """
        Mark a capability available again.

        Returns:
            True if it had been reported missing
        """
        if self._missing.pop(capability, None) is None:
            return False

        logger.info(f"Capability restored: {capability}")
        if self._hub is not None:
            self._hub.capability_restored.publish(CapabilityRestored(capability))
        return True

    def is_missing(self, capability: str) -> bool:
        return capability in self._missing
