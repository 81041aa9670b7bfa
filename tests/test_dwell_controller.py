"""
Tests for dwell clicking and region resolution.
"""

import pytest

from gazenav.core.config import DwellConfig
from gazenav.core.events import EventHub
from gazenav.vision.dwell import DwellController, Rect, RegionRegistry


INSIDE = (200.0, 150.0)
OUTSIDE = (900.0, 700.0)


@pytest.fixture
def registry():
    registry = RegionRegistry()
    registry.register("ok_button", Rect(100, 100, 200, 100))
    registry.register("cancel_button", Rect(400, 100, 200, 100))
    return registry


@pytest.fixture
def hub():
    return EventHub()


@pytest.fixture
def activations(hub):
    received = []
    hub.activation.subscribe(received.append)
    return received


def run(controller, point, start_ms, end_ms, step_ms=10):
    """Update once per frame from start to end (inclusive); return progress list."""
    return [
        controller.update(point[0], point[1], t)
        for t in range(start_ms, end_ms + 1, step_ms)
    ]


class TestDwellController:
    """Tests for DwellController.update."""

    @pytest.fixture
    def controller(self, registry, hub):
        return DwellController(DwellConfig(dwell_duration_ms=800, onset_delay_ms=200), registry, hub)

    def test_glance_does_nothing(self, controller, activations):
        """Test that looking for less than the onset delay shows no progress."""
        progress = run(controller, INSIDE, 0, 190)

        assert all(p.progress == 0.0 for p in progress)
        assert activations == []

    def test_activation_after_onset_and_dwell(self, controller, activations):
        """Test exactly one activation at onset + dwell."""
        progress = run(controller, INSIDE, 0, 990)
        assert activations == []
        assert progress[-1].progress == pytest.approx(790 / 800)

        final = controller.update(*INSIDE, 1000)

        assert final.progress == 1.0
        assert len(activations) == 1
        assert activations[0].target_id == "ok_button"
        assert activations[0].timestamp_ms == 1000
        assert controller.state.current_target_id is None

    def test_progress_monotonic(self, controller):
        """Test that progress only grows while the gaze stays."""
        values = [p.progress for p in run(controller, INSIDE, 0, 990)]

        assert values == sorted(values)
        assert values[20] == 0.0  # t=200, still in onset
        assert values[21] > 0.0

    def test_no_repeat_without_new_cycle(self, controller, activations):
        """Test that staying on a target does not fire again immediately."""
        run(controller, INSIDE, 0, 1990)
        assert len(activations) == 1

        # A full new cycle starts on the frame after the activation
        run(controller, INSIDE, 2000, 2010)
        assert len(activations) == 2

    def test_leaving_resets(self, controller, activations):
        """Test that looking away discards progress."""
        run(controller, INSIDE, 0, 600)
        progress = controller.update(*OUTSIDE, 610)
        assert progress.progress == 0.0
        assert progress.target_id is None

        run(controller, INSIDE, 620, 1610)
        assert activations == []

        controller.update(*INSIDE, 1620)
        assert len(activations) == 1

    def test_switching_targets_resets(self, controller, activations):
        """Test that moving to another target restarts the onset delay."""
        run(controller, INSIDE, 0, 900)
        progress = run(controller, (500.0, 150.0), 910, 1500)

        assert activations == []
        assert all(p.target_id == "cancel_button" for p in progress)
        assert progress[-1].progress == pytest.approx((1500 - 1110) / 800)

    def test_non_finite_point_keeps_state(self, controller):
        """Test that a NaN point shows no progress but keeps the target."""
        run(controller, INSIDE, 0, 500)

        progress = controller.update(float("nan"), 150.0, 510)

        assert progress.progress == 0.0
        assert controller.state.current_target_id == "ok_button"
        assert controller.update(*INSIDE, 520).progress > 0.0

    def test_runtime_config_change(self, controller, activations):
        """Test that a shorter dwell applies from the next frame."""
        run(controller, INSIDE, 0, 400)

        controller.update_config(DwellConfig(dwell_duration_ms=400, onset_delay_ms=200))

        run(controller, INSIDE, 410, 590)
        assert activations == []
        controller.update(*INSIDE, 600)
        assert len(activations) == 1

    def test_progress_published(self, controller, hub):
        """Test that every frame publishes progress."""
        received = []
        hub.dwell_progress.subscribe(received.append)

        run(controller, INSIDE, 0, 300)

        assert len(received) == 31

    def test_missing_resolver_reported_once(self, hub, registry):
        """Test that a missing resolver is reported once and nothing runs."""
        unavailable, restored, progress = [], [], []
        hub.capability_unavailable.subscribe(unavailable.append)
        hub.capability_restored.subscribe(restored.append)
        hub.dwell_progress.subscribe(progress.append)
        controller = DwellController(DwellConfig(), None, hub)

        for t in range(0, 2000, 10):
            assert controller.update(*INSIDE, t).progress == 0.0

        assert len(unavailable) == 1
        assert unavailable[0].capability == "target_resolver"
        assert progress == []

        controller.set_resolver(registry)
        assert len(restored) == 1

    def test_snap_radius_from_config(self, registry, hub):
        """Test that the configured snap radius reaches the registry."""
        controller = DwellController(DwellConfig(snap_radius_px=0), registry, hub)
        near = (320.0, 150.0)  # 20 px right of ok_button

        assert controller.update(*near, 0).target_id is None

        controller.update_config(DwellConfig(snap_radius_px=40))

        assert controller.update(*near, 10).target_id == "ok_button"

    def test_works_without_hub(self, registry):
        """Test that the controller runs with no event hub."""
        controller = DwellController(DwellConfig(dwell_duration_ms=100, onset_delay_ms=0), registry)

        run(controller, INSIDE, 0, 100)

        assert controller.activations == 1


class TestRegionRegistry:
    """Tests for RegionRegistry."""

    def test_hit(self, registry):
        """Test resolving points inside and outside regions."""
        assert registry.resolve(*INSIDE) == "ok_button"
        assert registry(500, 150) == "cancel_button"
        assert registry(*OUTSIDE) is None

    def test_smallest_region_wins(self):
        """Test that nested regions resolve to the inner one."""
        registry = RegionRegistry()
        registry.register("panel", Rect(0, 0, 500, 500))
        registry.register("button", Rect(100, 100, 50, 50))

        assert registry(120, 120) == "button"
        assert registry(300, 300) == "panel"

    def test_snap_radius(self):
        """Test snapping to the nearest region within the radius."""
        registry = RegionRegistry(snap_radius_px=40)
        registry.register("button", Rect(100, 100, 100, 50))

        assert registry(230, 120) == "button"  # 30 px right of the edge
        assert registry(260, 120) is None  # 60 px away

    def test_register_and_unregister(self, registry):
        """Test registry bookkeeping."""
        assert len(registry) == 2
        assert "ok_button" in registry

        assert registry.unregister("ok_button") is True
        assert registry.unregister("ok_button") is False
        assert registry(*INSIDE) is None
