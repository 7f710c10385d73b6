"""Services layer: recording session and segment dispatch."""

from .recording_service import RecordingSession
from .segment_dispatcher import SegmentDispatcher

__all__ = [
    "RecordingSession",
    "SegmentDispatcher",
]
