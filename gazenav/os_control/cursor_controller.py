"""
OS pointer bridge.

Moves the system cursor to each smoothed gaze point and left-clicks on
dwell activations, using pynput.
"""

from typing import List, Optional, Tuple

from gazenav.core.events import EventHub, Subscription
from gazenav.utils.logger import get_logger
from gazenav.vision.dwell import Activation
from gazenav.vision.smoothing import GazePoint

logger = get_logger(__name__)


class CursorControlError(Exception):
    """Cursor control errors."""

    pass


class CursorController:
    """
    Drive the OS pointer from pipeline events.

    Safety features:
    - Screen bounds clamping
    - Emergency stop (disable) that drops all moves and clicks
    - Pointer errors are logged, never raised into the pipeline
    """

    def __init__(
        self,
        screen_width: int,
        screen_height: int,
        mouse=None,
        button=None,
        click_on_activation: bool = True,
    ):
        """
        Initialize cursor controller.

        Args:
            screen_width: Screen width in pixels
            screen_height: Screen height in pixels
            mouse: pynput-compatible mouse (default: a new pynput Controller)
            button: Button used for dwell clicks (default: pynput Button.left)
            click_on_activation: Left-click when a dwell completes
        """
        self._screen_width = screen_width
        self._screen_height = screen_height
        self._click_on_activation = click_on_activation

        if mouse is None or button is None:
            # pynput.mouse connects to the display on import
            try:
                from pynput.mouse import Button, Controller as MouseController
            except Exception as e:
                raise CursorControlError(f"No pointer backend available: {e}") from e
            mouse = mouse if mouse is not None else MouseController()
            button = button if button is not None else Button.left
        self._mouse = mouse
        self._button = button

        self._enabled = True
        self._subscriptions: List[Subscription] = []

        self._total_moves = 0
        self._total_clicks = 0
        self._failed = 0

        logger.info(f"CursorController initialized: {screen_width}x{screen_height}")

    def attach(self, hub: EventHub):
        """Follow gaze points and activations of a pipeline."""
        self.detach()
        self._subscriptions = [
            hub.gaze.subscribe(self._on_gaze),
            hub.activation.subscribe(self._on_activation),
        ]

    def detach(self):
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []

    def _on_gaze(self, point: GazePoint):
        self.move_to(int(round(point.x)), int(round(point.y)))

    def _on_activation(self, activation: Activation):
        if self._click_on_activation:
            self.click()

    def move_to(self, x: int, y: int) -> bool:
        """
        Move cursor to absolute screen position.

        Returns:
            True if cursor moved, False if disabled or failed
        """
        if not self._enabled:
            return False

        x_clamped = max(0, min(x, self._screen_width - 1))
        y_clamped = max(0, min(y, self._screen_height - 1))

        if x != x_clamped or y != y_clamped:
            logger.debug(f"Cursor position clamped: ({x},{y}) -> ({x_clamped},{y_clamped})")

        try:
            self._mouse.position = (x_clamped, y_clamped)
        except Exception as e:
            self._failed += 1
            logger.error(f"Failed to move cursor: {e}")
            return False

        self._total_moves += 1
        return True

    def click(self) -> bool:
        """
        Left-click at the current position.

        Returns:
            True if clicked, False if disabled or failed
        """
        if not self._enabled:
            return False

        try:
            self._mouse.click(self._button, 1)
        except Exception as e:
            self._failed += 1
            logger.error(f"Failed to click: {e}")
            return False

        self._total_clicks += 1
        logger.debug("Dwell click sent")
        return True

    def get_position(self) -> Optional[Tuple[int, int]]:
        try:
            pos = self._mouse.position
            return (int(pos[0]), int(pos[1]))
        except Exception as e:
            logger.error(f"Failed to get cursor position: {e}")
            return None

    def enable(self):
        self._enabled = True
        logger.info("Cursor control enabled")

    def disable(self):
        """Emergency stop."""
        self._enabled = False
        logger.info("Cursor control disabled")

    def is_enabled(self) -> bool:
        return self._enabled

    def update_screen_size(self, width: int, height: int):
        self._screen_width = width
        self._screen_height = height
        logger.info(f"Screen size updated: {width}x{height}")

    @property
    def statistics(self) -> dict:
        return {
            "total_moves": self._total_moves,
            "total_clicks": self._total_clicks,
            "failed": self._failed,
        }
