"""
Optional Qt diagnostics overlay.

Full-screen, click-through widget that draws what the pipeline is doing:
the calibration target while calibrating, the smoothed gaze dot, the
dwell progress ring and a diagnostics status line. It only listens to
the event hub and never feeds anything back.
"""

from typing import List, Optional

from PyQt6.QtCore import Qt, QRectF
from PyQt6.QtGui import QColor, QPainter, QPen
from PyQt6.QtWidgets import QWidget

from gazenav.core.bridge import Diagnostics
from gazenav.core.events import EventHub, Subscription
from gazenav.vision.calibrator import CalibrationProgress, TargetShown
from gazenav.vision.dwell import DwellProgress
from gazenav.vision.smoothing import GazePoint


class DiagnosticsOverlay(QWidget):
    """Transparent overlay drawing gaze, dwell and calibration feedback."""

    def __init__(self, hub: EventHub, parent=None):
        """
        Initialize overlay.

        Args:
            hub: Event hub of the pipeline to visualize
            parent: Parent widget
        """
        super().__init__(parent)

        self.setAttribute(Qt.WidgetAttribute.WA_TranslucentBackground)
        self.setAttribute(Qt.WidgetAttribute.WA_TransparentForMouseEvents)

        self._hub = hub
        self._diagnostics = Diagnostics(hub)
        self._subscriptions: List[Subscription] = []

        self._target: Optional[TargetShown] = None
        self._calibration_text = ""
        self._gaze: Optional[GazePoint] = None
        self._progress: Optional[DwellProgress] = None

        self._dot_radius = 4
        self._ring_radius = 18
        self._target_size = 20

    def attach(self):
        """Start following the pipeline's events."""
        if self._subscriptions:
            return
        self._diagnostics.enable()
        self._subscriptions = [
            self._hub.calibration_target.subscribe(self._on_target),
            self._hub.calibration_progress.subscribe(self._on_calibration_progress),
            self._hub.gaze.subscribe(self._on_gaze),
            self._hub.dwell_progress.subscribe(self._on_dwell_progress),
        ]

    def detach(self):
        """Stop following events."""
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []
        self._diagnostics.disable()

    @property
    def diagnostics(self) -> Diagnostics:
        return self._diagnostics

    @property
    def target_visible(self) -> bool:
        return self._target is not None and self._target.visible

    def _on_target(self, event: TargetShown):
        self._target = event
        if not event.visible:
            self._calibration_text = ""
        self.update()

    def _on_calibration_progress(self, event: CalibrationProgress):
        self._calibration_text = (
            f"Target {event.target_index + 1}/{event.target_count} "
            f"- sample {event.sample_index}/{event.total}"
        )
        self.update()

    def _on_gaze(self, point: GazePoint):
        self._gaze = point
        self.update()

    def _on_dwell_progress(self, progress: DwellProgress):
        self._progress = progress
        self.update()

    def paintEvent(self, event):
        """Paint the overlay."""
        painter = QPainter(self)
        painter.setRenderHint(QPainter.RenderHint.Antialiasing)

        if self.target_visible:
            x, y, size = int(self._target.x), int(self._target.y), self._target_size
            painter.setPen(QPen(QColor(255, 255, 255), 3))
            painter.setBrush(QColor(255, 255, 255))
            painter.drawEllipse(x - size, y - size, size * 2, size * 2)

            painter.setPen(QPen(QColor(255, 0, 0), 2))
            painter.setBrush(QColor(255, 0, 0))
            painter.drawEllipse(x - size // 2, y - size // 2, size, size)

        if self._gaze is not None:
            gx, gy = self._gaze.x, self._gaze.y
            painter.setPen(Qt.PenStyle.NoPen)
            painter.setBrush(QColor(0, 255, 255, 80))
            r = self._dot_radius
            painter.drawEllipse(QRectF(gx - r, gy - r, r * 2, r * 2))

            if self._progress is not None and self._progress.progress > 0:
                r = self._ring_radius
                painter.setPen(QPen(QColor(0, 200, 255), 3))
                painter.setBrush(Qt.BrushStyle.NoBrush)
                # Qt angles are in 1/16 degree, counter-clockwise from 3 o'clock
                span = -int(self._progress.progress * 360 * 16)
                painter.drawArc(QRectF(gx - r, gy - r, r * 2, r * 2), 90 * 16, span)

        painter.setPen(QColor(0, 255, 255))
        font = painter.font()
        font.setPointSize(10)
        painter.setFont(font)
        painter.drawText(
            self.rect().adjusted(0, 0, -10, -10),
            Qt.AlignmentFlag.AlignRight | Qt.AlignmentFlag.AlignBottom,
            self._diagnostics.status_text(),
        )

        if self._calibration_text:
            font.setPointSize(16)
            painter.setFont(font)
            painter.setPen(QColor(255, 255, 255))
            painter.drawText(
                0, 50, self.width(), 100,
                Qt.AlignmentFlag.AlignCenter,
                self._calibration_text,
            )

        painter.end()
