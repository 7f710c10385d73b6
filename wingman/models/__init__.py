"""Data models for the Wingman application."""

from .audio import AudioStats, AudioFrame, Segment
from .session import CaptureState, SpeechState, SessionState
from .pipeline import PipelineResult
from .ui import ScreenStatus
from .events import (
    SegmentEvent,
    VolumeEvent,
    PipelineResultEvent,
    PipelineErrorEvent,
    SessionEvent,
)

__all__ = [
    "AudioStats",
    "AudioFrame",
    "Segment",
    "CaptureState",
    "SpeechState",
    "SessionState",
    "PipelineResult",
    "ScreenStatus",
    "SegmentEvent",
    "VolumeEvent",
    "PipelineResultEvent",
    "PipelineErrorEvent",
    "SessionEvent",
]
