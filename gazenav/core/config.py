"""
Configuration management for GazeNav.

All tunables with sensible defaults, one dataclass per component.
Each section validates itself; components receive their section at
construction and re-read it at the start of every tick, so replacing a
section takes effect on the next evaluated frame.
"""

from dataclasses import dataclass, field, fields, replace
from typing import Tuple
import math
import os
from pathlib import Path


class ConfigError(ValueError):
    """Invalid configuration value."""

    pass


def _require(condition: bool, message: str):
    if not condition:
        raise ConfigError(message)


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass(frozen=True)
class BlinkConfig:
    """Blink detection thresholds."""

    # Rolling baseline capacity (samples)
    window_size: int = 30

    # Darkening below mean - stdev * enter_factor starts a blink
    enter_factor: float = 1.5

    # Recovery above mean - stdev * exit_factor ends a blink
    exit_factor: float = 0.5

    # Frame-to-frame change must exceed max(min_drop, stdev * drop_factor)
    drop_factor: float = 1.0
    min_drop: float = 10.0

    # Accepted blink duration window (exclusive bounds)
    min_blink_ms: float = 50.0  # shorter = flicker
    max_blink_ms: float = 800.0  # longer = deliberate eye closure

    def validate(self):
        _require(_is_int(self.window_size), "window_size must be an integer")
        _require(self.window_size >= 2, "window_size must be at least 2")
        _require(self.enter_factor >= 0, "enter_factor must be non-negative")
        _require(self.exit_factor >= 0, "exit_factor must be non-negative")
        _require(self.drop_factor >= 0, "drop_factor must be non-negative")
        _require(self.min_drop >= 0, "min_drop must be non-negative")
        _require(self.min_blink_ms >= 0, "min_blink_ms must be non-negative")
        _require(
            self.max_blink_ms > self.min_blink_ms,
            "max_blink_ms must be greater than min_blink_ms",
        )


@dataclass(frozen=True)
class CalibrationConfig:
    """Calibration routine configuration."""

    # Target positions (normalized 0-1 screen coordinates), visited in order
    target_positions: Tuple[Tuple[float, float], ...] = (
        (0.1, 0.1),  # Top left
        (0.9, 0.1),  # Top right
        (0.5, 0.5),  # Center
        (0.1, 0.9),  # Bottom left
        (0.9, 0.9),  # Bottom right
    )

    # Polls per target
    samples_per_target: int = 20

    # Time for the eyes to settle on a new target (not sampled)
    settle_delay_ms: float = 800.0

    # Upper bound on each poll
    sample_timeout_ms: float = 100.0

    def validate(self):
        _require(len(self.target_positions) >= 1, "need at least one calibration target")
        for position in self.target_positions:
            _require(
                isinstance(position, (tuple, list))
                and len(position) == 2
                and all(_is_number(v) for v in position),
                f"calibration target {position!r} must be an (x, y) pair",
            )
            x, y = position
            _require(
                0.0 <= x <= 1.0 and 0.0 <= y <= 1.0,
                f"calibration target ({x}, {y}) outside normalized range",
            )
        _require(_is_int(self.samples_per_target), "samples_per_target must be an integer")
        _require(self.samples_per_target >= 1, "samples_per_target must be at least 1")
        _require(self.settle_delay_ms >= 0, "settle_delay_ms must be non-negative")
        _require(self.sample_timeout_ms > 0, "sample_timeout_ms must be positive")


@dataclass(frozen=True)
class GazeConfig:
    """Gaze pipeline configuration."""

    # EMA weight of the newest sample, range (0, 1]; 1 = no smoothing
    smoothing_factor: float = 0.3

    # Minimum movement (pixels) before a new position is emitted
    dead_zone_px: float = 12.0

    # Maximum accepted raw samples per second
    target_hz: float = 30.0

    # Video preview is horizontally mirrored
    mirror: bool = True

    # No raw sample for this long means the gaze source stalled
    stall_timeout_ms: float = 5000.0

    def validate(self):
        _require(
            0.0 < self.smoothing_factor <= 1.0,
            "smoothing_factor must be in (0, 1]",
        )
        _require(self.dead_zone_px >= 0, "dead_zone_px must be non-negative")
        _require(self.target_hz > 0, "target_hz must be positive")
        _require(self.stall_timeout_ms > 0, "stall_timeout_ms must be positive")


@dataclass(frozen=True)
class DwellConfig:
    """Dwell click configuration."""

    dwell_duration_ms: float = 800.0
    onset_delay_ms: float = 200.0

    # Snap to the nearest region within this distance (0 = hit-test only)
    snap_radius_px: float = 40.0

    def validate(self):
        _require(self.dwell_duration_ms > 0, "dwell_duration_ms must be positive")
        _require(self.onset_delay_ms >= 0, "onset_delay_ms must be non-negative")
        _require(self.snap_radius_px >= 0, "snap_radius_px must be non-negative")


@dataclass
class StorageConfig:
    """Data storage configuration."""

    # User data directory (where calibration data is stored)
    data_dir: Path = field(default_factory=lambda: Path.home() / ".gazenav")

    calibration_filename: str = "calibration_data.json"

    # Log filename (optional, off by default)
    log_filename: str = "gazenav.log"

    enable_file_logging: bool = False

    def __post_init__(self):
        self.data_dir = Path(self.data_dir)

    def validate(self):
        _require(bool(self.calibration_filename), "calibration_filename must not be empty")
        _require(
            Path(self.calibration_filename).name == self.calibration_filename,
            "calibration_filename must be a bare file name",
        )

    @property
    def calibration_path(self) -> Path:
        """Get full path to calibration data file."""
        return self.data_dir / self.calibration_filename

    @property
    def log_path(self) -> Path:
        """Get full path to log file."""
        return self.data_dir / self.log_filename


@dataclass
class AppConfig:
    """Main application configuration."""

    blink: BlinkConfig = field(default_factory=BlinkConfig)
    calibration: CalibrationConfig = field(default_factory=CalibrationConfig)
    gaze: GazeConfig = field(default_factory=GazeConfig)
    dwell: DwellConfig = field(default_factory=DwellConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)

    version: str = "0.1.0"

    # Log level from environment or default to WARNING
    log_level: str = field(
        default_factory=lambda: os.getenv("GAZENAV_LOG_LEVEL", "WARNING")
    )

    def __post_init__(self):
        """Validate configuration after initialization."""
        self.validate()

    def validate(self):
        """Validate every section."""
        for section in SECTIONS:
            getattr(self, section).validate()


# Sections that can be updated at runtime
SECTIONS = ("blink", "calibration", "gaze", "dwell", "storage")


def updated_section(section, **changes):
    """
    Return a validated copy of a config section with ``changes`` applied.

    Args:
        section: Current section instance
        **changes: Field values to replace

    Returns:
        New section instance

    Raises:
        ConfigError: If a field is unknown or a value is invalid
    """
    known = {f.name for f in fields(section)}
    unknown = set(changes) - known
    if unknown:
        raise ConfigError(f"Unknown setting(s): {', '.join(sorted(unknown))}")

    for name, value in changes.items():
        if isinstance(value, float) and not math.isfinite(value):
            raise ConfigError(f"{name} must be a finite number")

    new_section = replace(section, **changes)
    new_section.validate()
    return new_section


def get_default_config() -> AppConfig:
    """
    Get default application configuration.

    Returns:
        AppConfig instance with default values
    """
    return AppConfig()
