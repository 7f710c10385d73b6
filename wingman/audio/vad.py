"""Energy-based voice activity segmentation."""

import logging
from enum import Enum

from ..models.session import SpeechState

logger = logging.getLogger(__name__)

SILENCE_DURATION_MS = 1500


class VadDecision(Enum):
    """What a single tick produced."""
    NONE = "none"
    SPEECH_START = "speech_start"
    SPEECH_END = "speech_end"


class VadSegmenter:
    """Two-state (silent / speaking) segmenter driven by per-tick RMS.

    Only a continuous run of ``silence_duration_ms`` below threshold ends an
    utterance; any tick above threshold disarms the silence timer. The
    segmenter never touches audio bytes, only RMS scalars and timestamps.
    """

    def __init__(self, silence_duration_ms: float = SILENCE_DURATION_MS):
        self.silence_duration_ms = silence_duration_ms
        self.state = SpeechState()

    @property
    def is_speaking(self) -> bool:
        return self.state.is_speaking

    def process(self, rms: float, threshold: float, now_ms: float) -> VadDecision:
        """Advance the state machine by one tick."""
        state = self.state

        if rms > threshold:
            state.silence_start_ms = None
            if not state.is_speaking:
                state.is_speaking = True
                logger.debug(f"Speech start (rms={rms:.5f} > {threshold:.5f})")
                return VadDecision.SPEECH_START
            return VadDecision.NONE

        if not state.is_speaking:
            return VadDecision.NONE

        if state.silence_start_ms is None:
            state.silence_start_ms = now_ms
            return VadDecision.NONE

        if now_ms - state.silence_start_ms >= self.silence_duration_ms:
            logger.debug(f"Speech end after {now_ms - state.silence_start_ms:.0f}ms of silence")
            state.reset()
            return VadDecision.SPEECH_END

        return VadDecision.NONE

    def clear_silence(self) -> None:
        """Disarm the silence timer, e.g. when a stop is triggered externally."""
        self.state.silence_start_ms = None

    def reset(self) -> None:
        self.state.reset()
