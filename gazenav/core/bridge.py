"""
Integration bridge for external consumers.

``connect`` attaches plain callbacks for gaze points, blinks and dwell
clicks and hands back a ``Connection`` that removes all of them at once.
``Diagnostics`` is a passive observer that keeps running counters and a
one-line status text for overlays or logs.
"""

from typing import Callable, List, Optional

from gazenav.core.events import EventHub, Subscription
from gazenav.utils.logger import get_logger
from gazenav.vision.blink import BlinkEvent
from gazenav.vision.dwell import Activation, DwellProgress
from gazenav.vision.smoothing import GazePoint

logger = get_logger(__name__)


class Connection:
    """Handle for a group of subscriptions."""

    def __init__(self, subscriptions: List[Subscription]):
        self._subscriptions = subscriptions

    @property
    def connected(self) -> bool:
        return any(s.active for s in self._subscriptions)

    def disconnect(self):
        """Remove every listener of this connection."""
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []
        logger.info("Integration bridge disconnected")


def connect(
    hub: EventHub,
    on_gaze: Optional[Callable[[float, float], None]] = None,
    on_blink: Optional[Callable[[BlinkEvent], None]] = None,
    on_click: Optional[Callable[[Activation], None]] = None,
) -> Connection:
    """
    Attach external callbacks to a pipeline's events.

    Args:
        hub: Event hub of the pipeline
        on_gaze: Called with (x, y) of every gaze point
        on_blink: Called with every BlinkEvent
        on_click: Called with every dwell Activation

    Returns:
        Connection whose ``disconnect`` removes all callbacks
    """
    subscriptions = []
    if on_gaze is not None:
        subscriptions.append(hub.gaze.subscribe(lambda point: on_gaze(point.x, point.y)))
    if on_blink is not None:
        subscriptions.append(hub.blink.subscribe(on_blink))
    if on_click is not None:
        subscriptions.append(hub.activation.subscribe(on_click))

    logger.info(f"Integration bridge active ({len(subscriptions)} listeners)")
    return Connection(subscriptions)


class Diagnostics:
    """
    Running counters over the event streams.

    Purely an observer: enabling or disabling it never changes what the
    pipeline does.
    """

    def __init__(self, hub: EventHub):
        self._hub = hub
        self._connection: Optional[Connection] = None
        self._extra: List[Subscription] = []

        self.blink_count = 0
        self.click_count = 0
        self.last_gaze: Optional[GazePoint] = None
        self.last_progress: Optional[DwellProgress] = None

    @property
    def enabled(self) -> bool:
        return self._connection is not None

    def enable(self):
        if self.enabled:
            return
        self._connection = connect(
            self._hub,
            on_blink=self._handle_blink,
            on_click=self._handle_click,
        )
        self._extra = [
            self._hub.gaze.subscribe(self._handle_gaze),
            self._hub.dwell_progress.subscribe(self._handle_progress),
        ]
        logger.info("Diagnostics enabled")

    def disable(self):
        if not self.enabled:
            return
        self._connection.disconnect()
        self._connection = None
        for subscription in self._extra:
            subscription.unsubscribe()
        self._extra = []
        logger.info("Diagnostics disabled")

    def _handle_gaze(self, point: GazePoint):
        self.last_gaze = point

    def _handle_blink(self, event: BlinkEvent):
        self.blink_count += 1

    def _handle_click(self, activation: Activation):
        self.click_count += 1

    def _handle_progress(self, progress: DwellProgress):
        self.last_progress = progress

    def status_text(self) -> str:
        """Status line, e.g. ``x:640 y:360 | blinks:3``."""
        if self.last_gaze is None:
            return f"x:- y:- | blinks:{self.blink_count}"
        return (
            f"x:{self.last_gaze.x:.0f} y:{self.last_gaze.y:.0f} "
            f"| blinks:{self.blink_count}"
        )
