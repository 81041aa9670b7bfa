"""
GazeNav - Hands-free pointer control from gaze and blink signals.

Turns a stream of raw gaze predictions and per-frame video luminance
into blink events, a calibrated and smoothed cursor position, and
dwell-triggered click activations.

Core components:
- BlinkDetector: adaptive luminance baseline, blink state machine
- CalibrationEngine: five-point routine fitting an affine correction
- GazePipeline: correction, rate limiting, smoothing, dead zone
- DwellController: onset delay, dwell timer, one-shot activation

Architecture:
- Single-threaded, driven by a per-frame tick
- Explicit configuration passed to each component
- Typed publish/subscribe for every output event
- Each component degrades on its own, nothing aborts the pipeline

Privacy:
- All processing happens locally
- No video recording
- Only numeric calibration parameters are stored
"""

__version__ = "0.1.0"
__author__ = "GazeNav Team"
__license__ = "MIT"
