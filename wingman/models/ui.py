"""UI-related data models."""

from dataclasses import dataclass, field
from typing import Optional, List


@dataclass
class ScreenStatus:
    """What the terminal screen currently shows."""
    session_id: Optional[str] = None
    is_recording: bool = False
    volume_level: int = 0
    is_speaking: bool = False
    segments_sent: int = 0
    last_transcript: str = ""
    messages: List[str] = field(default_factory=list)

    def add_message(self, message: str, keep: int = 5) -> None:
        self.messages.append(message)
        del self.messages[:-keep]
