"""
Calibration data schema and validation.

Privacy: Only stores numeric calibration parameters,
no images, no personal information.
"""

import math
from dataclasses import dataclass, asdict, field
from typing import List, Dict, Any
from datetime import datetime

from gazenav.utils.logger import get_logger

logger = get_logger(__name__)


def _finite(*values: float) -> bool:
    return all(isinstance(v, (int, float)) and math.isfinite(v) for v in values)


@dataclass(frozen=True)
class CalibrationPoint:
    """
    Result of sampling one calibration target.

    All coordinates are viewport pixels.
    """

    # Target position on screen
    screen_x: float
    screen_y: float

    # Median raw gaze while the target was shown
    gaze_x: float
    gaze_y: float

    # Samples behind the median (0 = target position used as fallback)
    sample_count: int

    # Median absolute deviation of the samples
    spread_x: float = 0.0
    spread_y: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CalibrationPoint":
        """Create from dictionary."""
        return cls(**data)

    def validate(self) -> bool:
        """
        Validate calibration point data.

        Returns:
            True if valid, raises ValueError if invalid
        """
        if not _finite(self.screen_x, self.screen_y, self.gaze_x, self.gaze_y):
            raise ValueError("Coordinates must be finite numbers")

        if self.screen_x < 0 or self.screen_y < 0:
            raise ValueError("Screen coordinates must be non-negative")

        if self.sample_count < 0:
            raise ValueError("Sample count must not be negative")

        if not _finite(self.spread_x, self.spread_y) or self.spread_x < 0 or self.spread_y < 0:
            raise ValueError("Spread must be a non-negative number")

        return True


@dataclass
class CalibrationData:
    """
    Complete persisted calibration.

    Privacy: Contains only numeric mapping parameters.
    """

    # Schema version for future compatibility
    version: str = "1.0"

    # Timestamp of calibration
    timestamp: str = ""

    # Viewport size at time of calibration
    viewport_width: float = 0
    viewport_height: float = 0

    # Fitted correction
    offsets: Dict[str, float] = field(default_factory=dict)

    # One point per target
    points: List[CalibrationPoint] = field(default_factory=list)

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = datetime.now().isoformat()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "version": self.version,
            "timestamp": self.timestamp,
            "viewport_width": self.viewport_width,
            "viewport_height": self.viewport_height,
            "offsets": dict(self.offsets),
            "points": [point.to_dict() for point in self.points],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CalibrationData":
        """Create from dictionary."""
        points = [CalibrationPoint.from_dict(p) for p in data.get("points", [])]

        return cls(
            version=data.get("version", "1.0"),
            timestamp=data.get("timestamp", ""),
            viewport_width=data.get("viewport_width", 0),
            viewport_height=data.get("viewport_height", 0),
            offsets=dict(data.get("offsets", {})),
            points=points,
        )

    def validate(self) -> bool:
        """
        Validate calibration data.

        Returns:
            True if valid, raises ValueError if invalid
        """
        if not self.version:
            raise ValueError("Missing version")

        if self.viewport_width <= 0 or self.viewport_height <= 0:
            raise ValueError("Invalid viewport dimensions")

        if not self.points:
            raise ValueError("Need at least one calibration point")

        for i, point in enumerate(self.points):
            try:
                point.validate()
            except ValueError as e:
                raise ValueError(f"Invalid calibration point {i}: {e}")

        required = ("offset_x", "offset_y", "scale_x", "scale_y")
        missing = [key for key in required if key not in self.offsets]
        if missing:
            raise ValueError(f"Missing offsets: {', '.join(missing)}")
        if not _finite(*(self.offsets[key] for key in required)):
            raise ValueError("Offsets must be finite numbers")

        try:
            datetime.fromisoformat(self.timestamp)
        except ValueError:
            raise ValueError("Invalid timestamp format")

        logger.debug(f"Calibration data validated: {len(self.points)} points")
        return True

    def is_compatible_with_viewport(self, width: float, height: float) -> bool:
        """
        Check if calibration was made for the given viewport size.

        Args:
            width: Current viewport width
            height: Current viewport height

        Returns:
            True if compatible (same size)
        """
        return self.viewport_width == width and self.viewport_height == height

    @property
    def sample_count(self) -> int:
        return sum(p.sample_count for p in self.points)
