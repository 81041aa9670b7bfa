"""
Tests for calibration schema, validation and persistence.
"""

import json

import pytest
from datetime import datetime

from gazenav.core.config import StorageConfig
from gazenav.storage.calibration_store import CalibrationStore, CalibrationStoreError
from gazenav.storage.schema import CalibrationPoint, CalibrationData


IDENTITY = {"offset_x": 0.0, "offset_y": 0.0, "scale_x": 1.0, "scale_y": 1.0}


def five_points():
    return [
        CalibrationPoint(100, 80, 112.0, 75.0, 20),  # Top left
        CalibrationPoint(900, 80, 905.0, 82.0, 20),  # Top right
        CalibrationPoint(500, 400, 498.0, 410.0, 20),  # Center
        CalibrationPoint(100, 720, 95.0, 715.0, 20),  # Bottom left
        CalibrationPoint(900, 720, 890.0, 730.0, 20),  # Bottom right
    ]


class TestCalibrationPoint:
    """Tests for CalibrationPoint."""

    def test_valid_point(self):
        """Test creating a valid calibration point."""
        point = CalibrationPoint(
            screen_x=100.0,
            screen_y=200.0,
            gaze_x=104.5,
            gaze_y=196.0,
            sample_count=20,
        )

        assert point.validate() is True

    def test_negative_screen_coordinates(self):
        """Test that negative screen coordinates are invalid."""
        point = CalibrationPoint(
            screen_x=-100.0,
            screen_y=200.0,
            gaze_x=0.5,
            gaze_y=-0.3,
            sample_count=20,
        )

        with pytest.raises(ValueError, match="Screen coordinates must be non-negative"):
            point.validate()

    def test_non_finite_gaze(self):
        """Test that NaN medians are rejected."""
        point = CalibrationPoint(
            screen_x=100.0,
            screen_y=200.0,
            gaze_x=float("nan"),
            gaze_y=200.0,
            sample_count=20,
        )

        with pytest.raises(ValueError, match="finite"):
            point.validate()

    def test_zero_samples_allowed(self):
        """Test that a target without samples is a valid point."""
        point = CalibrationPoint(
            screen_x=100.0,
            screen_y=200.0,
            gaze_x=100.0,
            gaze_y=200.0,
            sample_count=0,
        )

        assert point.validate() is True

    def test_negative_spread(self):
        """Test that a negative spread is invalid."""
        point = CalibrationPoint(100.0, 200.0, 100.0, 200.0, 20, spread_x=-1.0)

        with pytest.raises(ValueError, match="Spread"):
            point.validate()

    def test_to_dict_and_back(self):
        """Test serialization roundtrip."""
        point = CalibrationPoint(
            screen_x=100.0,
            screen_y=200.0,
            gaze_x=104.5,
            gaze_y=196.0,
            sample_count=20,
            spread_x=1.5,
            spread_y=2.0,
        )

        assert CalibrationPoint.from_dict(point.to_dict()) == point


class TestCalibrationData:
    """Tests for CalibrationData."""

    def test_valid_calibration(self):
        """Test creating valid calibration data."""
        calibration = CalibrationData(
            viewport_width=1000,
            viewport_height=800,
            offsets=dict(IDENTITY),
            points=five_points(),
        )

        assert calibration.validate() is True
        assert calibration.sample_count == 100

    def test_no_points(self):
        """Test that a calibration without points is invalid."""
        calibration = CalibrationData(
            viewport_width=1000,
            viewport_height=800,
            offsets=dict(IDENTITY),
        )

        with pytest.raises(ValueError, match="Need at least one calibration point"):
            calibration.validate()

    def test_invalid_viewport_dimensions(self):
        """Test that invalid viewport dimensions are caught."""
        calibration = CalibrationData(
            viewport_width=0,
            viewport_height=800,
            offsets=dict(IDENTITY),
            points=five_points(),
        )

        with pytest.raises(ValueError, match="Invalid viewport dimensions"):
            calibration.validate()

    def test_missing_offsets(self):
        """Test that every offset component is required."""
        calibration = CalibrationData(
            viewport_width=1000,
            viewport_height=800,
            offsets={"offset_x": 0.0, "offset_y": 0.0},
            points=five_points(),
        )

        with pytest.raises(ValueError, match="Missing offsets: scale_x, scale_y"):
            calibration.validate()

    def test_invalid_point_reported_with_index(self):
        """Test that the failing point is named."""
        points = five_points()
        points[2] = CalibrationPoint(-1, 400, 498.0, 410.0, 20)
        calibration = CalibrationData(
            viewport_width=1000,
            viewport_height=800,
            offsets=dict(IDENTITY),
            points=points,
        )

        with pytest.raises(ValueError, match="Invalid calibration point 2"):
            calibration.validate()

    def test_viewport_compatibility(self):
        """Test viewport compatibility check."""
        calibration = CalibrationData(
            viewport_width=1000,
            viewport_height=800,
            offsets=dict(IDENTITY),
            points=five_points(),
        )

        # Same size: compatible
        assert calibration.is_compatible_with_viewport(1000, 800) is True

        # Different size: not compatible
        assert calibration.is_compatible_with_viewport(1920, 1080) is False

    def test_timestamp_auto_generation(self):
        """Test that timestamp is auto-generated."""
        calibration = CalibrationData(viewport_width=1000, viewport_height=800)

        assert calibration.timestamp != ""
        assert datetime.fromisoformat(calibration.timestamp) is not None

    def test_serialization_roundtrip(self):
        """Test full serialization roundtrip."""
        calibration = CalibrationData(
            viewport_width=1000,
            viewport_height=800,
            offsets={"offset_x": 12.5, "offset_y": -4.0, "scale_x": 1.1, "scale_y": 0.9},
            points=five_points(),
        )

        restored = CalibrationData.from_dict(calibration.to_dict())

        assert restored.version == calibration.version
        assert restored.timestamp == calibration.timestamp
        assert restored.viewport_width == 1000
        assert restored.offsets == calibration.offsets
        assert restored.points == calibration.points


class TestCalibrationStore:
    """Tests for CalibrationStore."""

    @pytest.fixture
    def store(self, tmp_path):
        return CalibrationStore(StorageConfig(data_dir=tmp_path))

    @pytest.fixture
    def calibration(self):
        return CalibrationData(
            viewport_width=1000,
            viewport_height=800,
            offsets={"offset_x": 12.5, "offset_y": -4.0, "scale_x": 1.1, "scale_y": 0.9},
            points=five_points(),
        )

    def test_load_without_file(self, store):
        """Test that loading with nothing saved returns None."""
        assert store.exists() is False
        assert store.load() is None

    def test_save_and_load(self, store, calibration):
        """Test that a saved calibration loads back unchanged."""
        assert store.save(calibration) is True
        assert store.exists() is True

        loaded = store.load()

        assert loaded.offsets == calibration.offsets
        assert loaded.points == calibration.points
        assert not store.path.with_suffix(".tmp").exists()

    def test_save_invalid_data(self, store):
        """Test that invalid data is never written."""
        with pytest.raises(CalibrationStoreError):
            store.save(CalibrationData(viewport_width=1000, viewport_height=800))

        assert store.exists() is False

    def test_corrupted_file(self, store):
        """Test that a corrupted file raises instead of loading."""
        store.path.write_text("{not json", encoding="utf-8")

        with pytest.raises(CalibrationStoreError, match="Corrupted"):
            store.load()

    def test_invalid_file_contents(self, store, calibration):
        """Test that a file failing validation raises."""
        data = calibration.to_dict()
        data["offsets"]["scale_x"] = None
        store.path.write_text(json.dumps(data), encoding="utf-8")

        with pytest.raises(CalibrationStoreError, match="Invalid calibration data"):
            store.load()

    def test_delete(self, store, calibration):
        """Test deleting saved data."""
        store.save(calibration)

        assert store.delete() is True
        assert store.exists() is False
        assert store.delete() is False

    def test_path_traversal_rejected(self, tmp_path):
        """Test that a file name escaping the data directory is refused."""
        config = StorageConfig(data_dir=tmp_path, calibration_filename="../outside.json")

        with pytest.raises(CalibrationStoreError, match="Path traversal"):
            CalibrationStore(config)
