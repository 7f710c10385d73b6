"""Session-related data models."""

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from ..audio.capture import CaptureUnit


class CaptureState(Enum):
    """Lifecycle of a single capture unit."""
    IDLE = "idle"
    RECORDING = "recording"
    FINALIZING = "finalizing"
    STOPPED = "stopped"


@dataclass
class SpeechState:
    """Per-tick VAD state.

    ``silence_start_ms`` is only ever set while ``is_speaking`` is true.
    """
    is_speaking: bool = False
    silence_start_ms: Optional[float] = None

    def reset(self) -> None:
        self.is_speaking = False
        self.silence_start_ms = None


@dataclass
class SessionState:
    """All mutable state of the capture subsystem for one recording session."""
    session_id: str = ""
    active: bool = False
    current_unit: Optional["CaptureUnit"] = None
    stop_in_flight: bool = False
    started_at_ms: Optional[float] = None
    segments_finalized: int = 0

    @classmethod
    def create(cls, started_at_ms: float) -> "SessionState":
        return cls(
            session_id=uuid.uuid4().hex[:12],
            active=True,
            started_at_ms=started_at_ms,
        )

    def reset(self) -> None:
        """Return every field to its initial value."""
        self.session_id = ""
        self.active = False
        self.current_unit = None
        self.stop_in_flight = False
        self.started_at_ms = None
        self.segments_finalized = 0
