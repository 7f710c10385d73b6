"""Audio-related data models."""

from dataclasses import dataclass, field
from typing import Optional

import numpy as np


@dataclass
class AudioStats:
    """Audio recording statistics."""
    is_recording: bool
    duration_seconds: float
    sample_rate: int
    chunk_size: int
    total_chunks: int


@dataclass
class AudioFrame:
    """A single analysis block read from the microphone.

    Produced and consumed within one tick; never persisted.
    """
    data: bytes
    timestamp_ms: float  # Monotonic time when this frame was read
    frame_number: int
    samples: Optional[np.ndarray] = field(default=None, repr=False)

    def __post_init__(self):
        """Derive float samples in [-1, 1] from 16-bit PCM if not provided."""
        if self.samples is None:
            pcm = np.frombuffer(self.data, dtype=np.int16)
            self.samples = pcm.astype(np.float32) / 32768.0


@dataclass(frozen=True)
class Segment:
    """One finalized utterance, owned by whoever it was handed to."""
    segment_id: str
    session_id: str
    audio_data: bytes
    encoding: str  # "wav", "webm", ... used as the scratch file extension
    sample_rate: int
    channels: int
    duration_ms: int
    created_at: float  # Unix timestamp

    @property
    def size_bytes(self) -> int:
        return len(self.audio_data)
