"""
Tracker state machine.

    IDLE -> TRACKING <-> PAUSED
    IDLE | TRACKING | PAUSED -> CALIBRATING -> (state it was entered from)
    Any -> ERROR -> IDLE

Calibration may be re-triggered while tracking; when it finishes the
tracker returns to wherever it was.
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Dict, FrozenSet, Optional

from gazenav.utils.logger import get_logger

logger = get_logger(__name__)


class TrackerState(Enum):
    """Tracker states."""

    IDLE = auto()  # Samples ignored except luminance
    CALIBRATING = auto()  # Calibration routine owns the gaze stream
    TRACKING = auto()  # Gaze pipeline and dwell active
    PAUSED = auto()  # Samples accepted, nothing emitted
    ERROR = auto()  # Needs reset


_TRANSITIONS: Dict[TrackerState, FrozenSet[TrackerState]] = {
    TrackerState.IDLE: frozenset(
        {TrackerState.CALIBRATING, TrackerState.TRACKING, TrackerState.ERROR}
    ),
    TrackerState.CALIBRATING: frozenset(
        {TrackerState.IDLE, TrackerState.TRACKING, TrackerState.PAUSED, TrackerState.ERROR}
    ),
    TrackerState.TRACKING: frozenset(
        {TrackerState.PAUSED, TrackerState.CALIBRATING, TrackerState.IDLE, TrackerState.ERROR}
    ),
    TrackerState.PAUSED: frozenset(
        {TrackerState.TRACKING, TrackerState.CALIBRATING, TrackerState.IDLE, TrackerState.ERROR}
    ),
    TrackerState.ERROR: frozenset({TrackerState.IDLE}),
}


def is_valid_transition(from_state: TrackerState, to_state: TrackerState) -> bool:
    """
    Check if a state transition is valid.

    Staying in the same state is always allowed.
    """
    if from_state == to_state:
        return True
    return to_state in _TRANSITIONS[from_state]


@dataclass(frozen=True)
class ErrorInfo:
    """Why the tracker entered ERROR."""

    error_type: str
    message: str
    recoverable: bool = True


class StateMachine:
    """Holds the current tracker state and enforces valid transitions."""

    def __init__(self, initial_state: TrackerState = TrackerState.IDLE):
        self._current_state = initial_state
        self._previous_state: Optional[TrackerState] = None
        self._error: Optional[ErrorInfo] = None

    @property
    def current_state(self) -> TrackerState:
        return self._current_state

    @property
    def previous_state(self) -> Optional[TrackerState]:
        return self._previous_state

    @property
    def error(self) -> Optional[ErrorInfo]:
        return self._error

    def can_transition_to(self, new_state: TrackerState) -> bool:
        return is_valid_transition(self._current_state, new_state)

    def transition_to(self, new_state: TrackerState) -> bool:
        """
        Move to ``new_state``.

        Returns:
            True if the transition happened, False if it is not allowed
        """
        if not self.can_transition_to(new_state):
            logger.warning(
                f"Rejected transition {self._current_state.name} -> {new_state.name}"
            )
            return False

        if new_state != self._current_state:
            logger.debug(f"State {self._current_state.name} -> {new_state.name}")
            self._previous_state = self._current_state
            self._current_state = new_state

        if new_state != TrackerState.ERROR:
            self._error = None

        return True

    def set_error(self, error_info: ErrorInfo) -> bool:
        """Enter ERROR with the given details."""
        self._error = error_info
        logger.error(f"{error_info.error_type}: {error_info.message}")
        return self.transition_to(TrackerState.ERROR)

    def reset(self):
        """Return to IDLE unconditionally, clearing any error."""
        self._previous_state = self._current_state
        self._current_state = TrackerState.IDLE
        self._error = None
