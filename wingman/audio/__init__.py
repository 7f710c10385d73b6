"""Audio capture, calibration and voice activity detection."""

from .capture import MicrophoneStream, CaptureUnit, CaptureError
from .calibrator import ThresholdCalibrator, compute_rms, volume_bars
from .vad import VadSegmenter, VadDecision
from .audio_pub import EventPublisher

__all__ = [
    'MicrophoneStream',
    'CaptureUnit',
    'CaptureError',
    'ThresholdCalibrator',
    'compute_rms',
    'volume_bars',
    'VadSegmenter',
    'VadDecision',
    'EventPublisher',
]
