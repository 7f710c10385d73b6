"""Event models published on the consumer event stream."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Any, Dict

from .audio import Segment
from .pipeline import PipelineResult

# Pub/sub topic names
TOPIC_SEGMENT_FINALIZED = "segment.finalized"
TOPIC_PIPELINE_RESULT = "pipeline.result"
TOPIC_PIPELINE_ERROR = "pipeline.error"
TOPIC_VOLUME = "audio.volume"
TOPIC_SESSION_STARTED = "session.started"
TOPIC_SESSION_STOPPED = "session.stopped"
TOPIC_SESSION_ERROR = "session.error"


@dataclass
class SegmentEvent:
    """A capture unit was finalized and its segment dispatched."""
    segment_id: str
    session_id: str
    size_bytes: int
    duration_ms: int
    timestamp: datetime = field(default_factory=datetime.now)

    @classmethod
    def from_segment(cls, segment: Segment) -> "SegmentEvent":
        return cls(
            segment_id=segment.segment_id,
            session_id=segment.session_id,
            size_bytes=segment.size_bytes,
            duration_ms=segment.duration_ms,
        )


@dataclass
class VolumeEvent:
    """Input level for the meter, 0..10."""
    level: int
    rms: float
    is_speaking: bool = False


@dataclass
class PipelineResultEvent:
    """A segment produced a response."""
    result: PipelineResult


@dataclass
class PipelineErrorEvent:
    """A segment's pipeline run failed."""
    segment_id: str
    session_id: str
    stage: str  # "transcription", "inference", "internal"
    message: str
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class SessionEvent:
    """Session lifecycle event."""
    session_id: str
    event_type: str  # "started", "stopped", "error"
    timestamp: datetime = field(default_factory=datetime.now)
    metadata: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
