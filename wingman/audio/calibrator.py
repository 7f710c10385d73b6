"""Adaptive noise-floor calibration from the opening window of a session."""

import math
import logging
from typing import Optional

import numpy as np

logger = logging.getLogger(__name__)

CALIBRATION_MS = 800
MIN_THRESHOLD_RMS = 0.002
NOISE_MULTIPLIER = 2.0
SMOOTHING = 0.9
# Noise assumed before any calibration sample has been seen
DEFAULT_NOISE_RMS = 0.001

METER_MIN_DB = -90.0
METER_MAX_DB = -20.0
METER_BARS = 10


def compute_rms(samples: np.ndarray) -> float:
    """Root-mean-square of float samples; 0.0 for an empty frame."""
    if samples is None or len(samples) == 0:
        return 0.0
    samples = np.asarray(samples, dtype=np.float64)
    return float(np.sqrt(np.mean(samples * samples)))


def volume_bars(rms: float) -> int:
    """Map an RMS level to 0..10 meter bars on a -90..-20 dB scale."""
    db = 20 * math.log10(rms + 1e-8)
    t = (db - METER_MIN_DB) / (METER_MAX_DB - METER_MIN_DB)
    t = min(1.0, max(0.0, t))
    return max(0, min(METER_BARS, round(t * METER_BARS)))


class ThresholdCalibrator:
    """Tracks the ambient noise floor and derives the speech threshold.

    Every RMS sample seen within ``calibration_ms`` of the session start is
    folded into the noise floor with exponential smoothing. After the window
    closes the floor is frozen for the rest of the session. Speech during the
    window biases the floor upward; that is not corrected.
    """

    def __init__(
        self,
        calibration_ms: float = CALIBRATION_MS,
        min_threshold: float = MIN_THRESHOLD_RMS,
        noise_multiplier: float = NOISE_MULTIPLIER,
    ):
        self.calibration_ms = calibration_ms
        self.min_threshold = min_threshold
        self.noise_multiplier = noise_multiplier

        self.start_ms: Optional[float] = None
        self.noise_floor: Optional[float] = None
        self.frozen = False

    def begin(self, start_ms: float) -> None:
        """Open a new calibration window starting at ``start_ms``."""
        self.start_ms = start_ms
        self.noise_floor = None
        self.frozen = False

    def update(self, rms: float, now_ms: float) -> None:
        """Fold an RMS sample into the noise floor if still calibrating."""
        if self.frozen:
            return
        if self.start_ms is None:
            self.start_ms = now_ms

        if now_ms - self.start_ms >= self.calibration_ms:
            self.frozen = True
            logger.info(f"Calibration complete: noise floor={self.effective_noise:.5f}, "
                        f"threshold={self.threshold:.5f}")
            return

        if self.noise_floor is None:
            self.noise_floor = rms
        else:
            self.noise_floor = self.noise_floor * SMOOTHING + rms * (1 - SMOOTHING)

    @property
    def effective_noise(self) -> float:
        return DEFAULT_NOISE_RMS if self.noise_floor is None else self.noise_floor

    @property
    def threshold(self) -> float:
        """Current speech decision threshold."""
        return max(self.min_threshold, self.effective_noise * self.noise_multiplier)

    def reset(self) -> None:
        self.start_ms = None
        self.noise_floor = None
        self.frozen = False
