"""Pipeline result models."""

import time
from dataclasses import dataclass, field


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class PipelineResult:
    """Outcome of running one segment through normalize, transcribe and infer."""
    response_text: str
    timestamp_ms: int = field(default_factory=now_ms)
    segment_id: str = ""
    session_id: str = ""
    transcript: str = ""
    processing_time: float = 0.0
