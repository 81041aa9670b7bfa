"""
Calibration persistence.

The most recent completed calibration lives in one JSON file inside the
data directory, so the next session can start with corrected gaze.

Privacy & Security:
- Local-only storage (no network)
- Only numeric offsets and per-target medians are written
- File name confined to the data directory
"""

import json
from pathlib import Path
from typing import Any, Dict, Optional

from gazenav.core.config import StorageConfig
from gazenav.storage.schema import CalibrationData
from gazenav.utils.logger import get_logger

logger = get_logger(__name__)


class CalibrationStoreError(Exception):
    """Calibration could not be read, written or removed."""

    pass


def _write_json_atomic(path: Path, payload: Dict[str, Any]):
    # Readers never see a half-written file: write aside, then rename
    staging = path.with_suffix(".tmp")
    with open(staging, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2)
    staging.replace(path)


class CalibrationStore:
    """File-backed store for a single ``CalibrationData`` record."""

    def __init__(self, config: StorageConfig):
        """
        Initialize store and create the data directory.

        Args:
            config: Storage configuration

        Raises:
            CalibrationStoreError: If the directory is unusable or the
                file name escapes it
        """
        try:
            self._root = Path(config.data_dir).resolve(strict=False)
            self._root.mkdir(parents=True, exist_ok=True)
        except (RuntimeError, OSError) as e:
            raise CalibrationStoreError(f"Unusable data directory {config.data_dir}: {e}") from e

        self._file = self._root / config.calibration_filename
        if not self._inside_root(self._file):
            raise CalibrationStoreError(
                f"Path traversal in calibration file name: {config.calibration_filename}"
            )

        logger.info(f"Calibration file: {self._file}")

    @property
    def path(self) -> Path:
        return self._file

    def exists(self) -> bool:
        return self._file.exists()

    def save(self, calibration: CalibrationData) -> bool:
        """
        Persist a calibration, replacing any previous one.

        Raises:
            CalibrationStoreError: If the data is invalid or cannot be written
        """
        try:
            calibration.validate()
            _write_json_atomic(self._file, calibration.to_dict())
        except (OSError, ValueError, TypeError) as e:
            logger.error(f"Calibration not saved: {e}")
            raise CalibrationStoreError(f"Calibration not saved: {e}") from e

        logger.info(
            f"Calibration saved ({len(calibration.points)} targets, "
            f"{calibration.sample_count} samples)"
        )
        return True

    def load(self) -> Optional[CalibrationData]:
        """
        Read the saved calibration.

        Returns:
            CalibrationData, or None if nothing was saved yet

        Raises:
            CalibrationStoreError: If the file is unreadable or invalid
        """
        if not self._file.exists():
            logger.info("No saved calibration")
            return None

        try:
            raw = self._file.read_text(encoding="utf-8")
        except OSError as e:
            raise CalibrationStoreError(f"Failed to read calibration: {e}") from e

        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as e:
            raise CalibrationStoreError(f"Corrupted calibration file: {e}") from e

        try:
            calibration = CalibrationData.from_dict(payload)
            calibration.validate()
        except (ValueError, TypeError, AttributeError) as e:
            raise CalibrationStoreError(f"Invalid calibration data: {e}") from e

        logger.info(
            f"Calibration loaded from {calibration.timestamp} "
            f"({calibration.viewport_width}x{calibration.viewport_height})"
        )
        return calibration

    def delete(self) -> bool:
        """
        Remove the saved calibration.

        Returns:
            True if a file was removed, False if there was none
        """
        try:
            self._file.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise CalibrationStoreError(f"Failed to delete calibration: {e}") from e

        logger.info("Saved calibration deleted")
        return True

    def _inside_root(self, path: Path) -> bool:
        try:
            return path.resolve(strict=False).parent == self._root
        except (RuntimeError, OSError):
            return False
