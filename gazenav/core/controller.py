"""
Central controller orchestrating the GazeNav pipeline.

Manages state transitions and coordinates all components:

    luminance samples -> BlinkDetector -> blink events
    raw gaze samples  -> SampleMailbox -> CalibrationEngine -> offsets
    raw gaze samples  -> GazePipeline(offsets) -> gaze points
    per-frame tick    -> DwellController(latest gaze point) -> activations

Everything runs on one thread. Sample arrival and the per-frame tick are
plain method calls; only ``calibrate`` suspends.
"""

import asyncio
from dataclasses import asdict
from typing import Optional

from gazenav.core.config import SECTIONS, AppConfig, ConfigError, updated_section
from gazenav.core.events import CapabilityMonitor, ConfigChanged, EventHub
from gazenav.core.samples import LuminanceSample, RawGazeSample, SampleMailbox, Viewport
from gazenav.core.state import ErrorInfo, StateMachine, TrackerState
from gazenav.storage.calibration_store import CalibrationStore, CalibrationStoreError
from gazenav.storage.schema import CalibrationData
from gazenav.utils.logger import get_logger
from gazenav.utils.timing import FPSCounter, monotonic_ms
from gazenav.vision.blink import BlinkDetector, BlinkEvent
from gazenav.vision.calibrator import CalibrationEngine, CalibrationOffsets, CalibrationResult
from gazenav.vision.dwell import DwellController, DwellProgress, TargetResolver
from gazenav.vision.smoothing import GazePipeline, GazePoint

logger = get_logger(__name__)


class Controller:
    """
    Central controller for GazeNav.

    Owns the event hub, the tracker state machine and the four
    processing components. Components are created in ``initialize``.
    """

    def __init__(
        self,
        config: AppConfig,
        viewport: Viewport,
        resolver: Optional[TargetResolver] = None,
        hub: Optional[EventHub] = None,
        persist_calibration: bool = True,
    ):
        """
        Initialize controller.

        Args:
            config: Application configuration
            viewport: Viewport size in pixels
            resolver: Target resolver for dwell clicking
            hub: Event hub (a new one is created if omitted)
            persist_calibration: Save/restore calibrations on disk
        """
        self._config = config
        self._viewport = viewport
        self._resolver = resolver
        self._hub = hub or EventHub()
        self._persist = persist_calibration

        self._state_machine = StateMachine(initial_state=TrackerState.IDLE)
        self._monitor = CapabilityMonitor(self._hub)
        self._mailbox = SampleMailbox()

        # Components (created in initialize)
        self._blink_detector: Optional[BlinkDetector] = None
        self._calibration: Optional[CalibrationEngine] = None
        self._pipeline: Optional[GazePipeline] = None
        self._dwell: Optional[DwellController] = None
        self._store: Optional[CalibrationStore] = None

        self._fps_counter = FPSCounter()

        # Stall watchdog
        self._last_gaze_ms: Optional[float] = None
        self._watch_since_ms: Optional[float] = None

        logger.info(
            f"Controller created for {viewport.width:.0f}x{viewport.height:.0f}"
        )

    def initialize(self) -> bool:
        """
        Create all components and restore a saved calibration.

        Returns:
            True if successful
        """
        try:
            self._config.validate()

            self._blink_detector = BlinkDetector(self._config.blink, self._hub)
            self._calibration = CalibrationEngine(
                self._config.calibration, self._mailbox, self._hub, self._monitor
            )
            self._pipeline = GazePipeline(
                self._config.gaze,
                self._viewport,
                offsets_provider=lambda: self._calibration.offsets,
                hub=self._hub,
            )
            self._dwell = DwellController(
                self._config.dwell, self._resolver, self._hub, self._monitor
            )

            if self._persist:
                self._store = CalibrationStore(self._config.storage)
                self._restore_calibration()

        except (ConfigError, CalibrationStoreError) as e:
            self._state_machine.set_error(
                ErrorInfo(
                    error_type="InitializationError",
                    message=f"Initialization failed: {e}",
                    recoverable=False,
                )
            )
            return False

        logger.info("All components initialized successfully")
        return True

    # Sample input -----------------------------------------------------

    def on_luminance(self, sample: LuminanceSample) -> Optional[BlinkEvent]:
        """Feed one luminance sample (any state except ERROR)."""
        if self._blink_detector is None or self.state == TrackerState.ERROR:
            return None
        return self._blink_detector.process(sample)

    def on_raw_gaze(self, sample: RawGazeSample) -> Optional[GazePoint]:
        """
        Feed one raw gaze prediction.

        The sample always reaches the calibration mailbox; it only drives
        the cursor while TRACKING.
        """
        if self._pipeline is None:
            return None

        if sample is not None and sample.is_finite():
            self._last_gaze_ms = sample.timestamp_ms
            self._monitor.restore("gaze_stream")

        if sample is not None:
            self._mailbox.put(sample)
        if self.state != TrackerState.TRACKING:
            return None

        return self._pipeline.process(sample)

    def tick(self, now_ms: Optional[float] = None) -> Optional[DwellProgress]:
        """
        Per-frame update: stall watchdog and dwell evaluation.

        Args:
            now_ms: Frame time (default: monotonic clock)

        Returns:
            DwellProgress while tracking with a known gaze position
        """
        if self._dwell is None:
            return None

        now = monotonic_ms() if now_ms is None else now_ms
        self._fps_counter.tick(now)

        state = self.state
        if state not in (TrackerState.TRACKING, TrackerState.CALIBRATING):
            return None

        self._check_stall(now)

        if state != TrackerState.TRACKING:
            return None

        position = self._pipeline.current_position
        if position is None:
            return None

        return self._dwell.update(position.x, position.y, now)

    def _check_stall(self, now: float):
        reference = self._last_gaze_ms if self._last_gaze_ms is not None else self._watch_since_ms
        if reference is None:
            self._watch_since_ms = now
            return

        if now - reference > self._config.gaze.stall_timeout_ms:
            self._monitor.report(
                "gaze_stream",
                f"no gaze samples for {self._config.gaze.stall_timeout_ms:.0f}ms",
            )

    # Calibration ------------------------------------------------------

    async def calibrate(self) -> Optional[CalibrationResult]:
        """
        Run the calibration routine.

        Returns to the state it was called from afterwards. Cancelling the
        task leaves the previous offsets active.

        Returns:
            CalibrationResult, or None if calibration could not start
            or failed
        """
        if self._calibration is None:
            logger.warning("Cannot calibrate before initialize()")
            return None

        return_state = self.state
        if return_state == TrackerState.CALIBRATING:
            logger.warning("Calibration already running")
            return None

        if not self._state_machine.transition_to(TrackerState.CALIBRATING):
            return None

        self._mailbox.clear()
        self._dwell.reset()

        try:
            result = await self._calibration.run(self._viewport)
        except asyncio.CancelledError:
            logger.info("Calibration cancelled, previous offsets kept")
            raise
        except Exception as e:
            logger.error(f"Calibration failed, previous offsets kept: {e}")
            result = None
        finally:
            self._state_machine.transition_to(return_state)

        if result is not None:
            self._pipeline.reset()
            self._save_calibration(result)

        return result

    def wipe_calibration(self) -> CalibrationOffsets:
        """
        Reset offsets to identity and delete any saved calibration.

        Returns:
            The offsets active before the wipe
        """
        if self._calibration is None:
            logger.warning("Cannot wipe calibration before initialize()")
            return CalibrationOffsets.identity()

        previous = self._calibration.offsets
        self._calibration.wipe()
        self._pipeline.reset()

        if self._store is not None:
            try:
                self._store.delete()
            except CalibrationStoreError as e:
                logger.error(f"Failed to delete saved calibration: {e}")

        return previous

    def _save_calibration(self, result: CalibrationResult):
        if self._store is None:
            return

        data = CalibrationData(
            viewport_width=self._viewport.width,
            viewport_height=self._viewport.height,
            offsets=result.offsets.to_dict(),
            points=list(result.points),
        )
        try:
            self._store.save(data)
        except CalibrationStoreError as e:
            # Offsets stay active for this session
            logger.error(f"Calibration not persisted: {e}")

    def _restore_calibration(self) -> bool:
        try:
            data = self._store.load()
        except CalibrationStoreError as e:
            logger.error(f"Failed to load calibration: {e}")
            return False

        if data is None:
            return False

        if not data.is_compatible_with_viewport(self._viewport.width, self._viewport.height):
            logger.warning(
                f"Calibration viewport mismatch: calibrated for "
                f"{data.viewport_width}x{data.viewport_height}, "
                f"current {self._viewport.width}x{self._viewport.height}"
            )
            return False

        self._calibration.restore(CalibrationOffsets.from_dict(data.offsets))
        return True

    # Configuration ----------------------------------------------------

    def apply_config(self, section: str, **changes) -> bool:
        """
        Change settings of one configuration section.

        Invalid values are rejected as a whole and the previous section
        stays active.

        Args:
            section: "blink", "calibration", "gaze", "dwell" or "storage"
            **changes: Field values to replace

        Returns:
            True if applied
        """
        if section not in SECTIONS:
            logger.warning(f"Unknown config section: {section}")
            return False

        component = {
            "blink": self._blink_detector,
            "calibration": self._calibration,
            "gaze": self._pipeline,
            "dwell": self._dwell,
        }.get(section)

        try:
            new_section = updated_section(getattr(self._config, section), **changes)
            if component is not None:
                component.update_config(new_section)
            if section == "storage" and self._store is not None:
                self._store = CalibrationStore(new_section)
        except (ValueError, TypeError, CalibrationStoreError) as e:
            logger.warning(f"Rejected {section} config change {changes}: {e}")
            return False

        setattr(self._config, section, new_section)

        logger.info(f"Config {section} updated: {changes}")
        self._hub.config_changed.publish(ConfigChanged(section, dict(changes)))
        return True

    def set_target_resolver(self, resolver: Optional[TargetResolver]):
        """Attach the dwell target resolver."""
        self._resolver = resolver
        if self._dwell is not None:
            self._dwell.set_resolver(resolver)

    def set_viewport(self, viewport: Viewport):
        """Viewport resized."""
        self._viewport = viewport
        if self._pipeline is not None:
            self._pipeline.update_viewport(viewport)
            self._pipeline.reset()

    # Tracking control -------------------------------------------------

    def start_tracking(self) -> bool:
        """Start emitting gaze points and dwell activations."""
        if self._pipeline is None:
            logger.warning("Cannot start tracking before initialize()")
            return False

        if not self._state_machine.transition_to(TrackerState.TRACKING):
            return False

        self._pipeline.reset()
        self._dwell.reset()
        self._fps_counter.reset()
        self._last_gaze_ms = None
        self._watch_since_ms = None
        logger.info("Tracking started")
        return True

    def pause_tracking(self) -> bool:
        if self.state != TrackerState.TRACKING:
            return False
        self._dwell.reset()
        self._state_machine.transition_to(TrackerState.PAUSED)
        logger.info("Tracking paused")
        return True

    def resume_tracking(self) -> bool:
        if self.state != TrackerState.PAUSED:
            return False
        self._pipeline.reset()
        self._state_machine.transition_to(TrackerState.TRACKING)
        logger.info("Tracking resumed")
        return True

    def stop_tracking(self) -> bool:
        if self.state not in (TrackerState.TRACKING, TrackerState.PAUSED):
            return False
        self._dwell.reset()
        self._state_machine.transition_to(TrackerState.IDLE)
        logger.info("Tracking stopped")
        return True

    def reset_error(self):
        """Leave ERROR and return to IDLE."""
        self._state_machine.reset()

    def shutdown(self):
        """Stop processing and clear transient state."""
        logger.info("Shutting down controller")
        if self._dwell is not None:
            self._dwell.reset()
        if self._blink_detector is not None:
            self._blink_detector.reset()
        self._mailbox.clear()
        self._state_machine.reset()

    # Properties -------------------------------------------------------

    @property
    def state(self) -> TrackerState:
        return self._state_machine.current_state

    @property
    def error(self) -> Optional[ErrorInfo]:
        return self._state_machine.error

    @property
    def hub(self) -> EventHub:
        return self._hub

    @property
    def config(self) -> AppConfig:
        return self._config

    @property
    def offsets(self) -> CalibrationOffsets:
        if self._calibration is None:
            return CalibrationOffsets.identity()
        return self._calibration.offsets

    @property
    def mailbox(self) -> SampleMailbox:
        return self._mailbox

    @property
    def monitor(self) -> CapabilityMonitor:
        return self._monitor

    @property
    def fps(self) -> float:
        return self._fps_counter.fps

    @property
    def statistics(self) -> dict:
        """Counters from every component."""
        stats = {"state": self.state.name, "fps": self.fps}
        if self._blink_detector is not None:
            stats["blink"] = self._blink_detector.statistics
        if self._pipeline is not None:
            stats["gaze"] = self._pipeline.statistics
        if self._dwell is not None:
            stats["activations"] = self._dwell.activations
        if self._calibration is not None:
            stats["offsets"] = asdict(self._calibration.offsets)
        return stats
