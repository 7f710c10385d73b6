"""Progressive reveal of finished responses, one small step per tick."""

import random
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterator, List, Optional

logger = logging.getLogger(__name__)

MIN_STEP = 1
MAX_STEP = 3
WORD_LOOKAHEAD = 10


def next_cut(text: str, position: int, step: int, lookahead: int = WORD_LOOKAHEAD) -> int:
    """Where the next revealed prefix ends.

    Advances ``step`` characters from ``position``. If that lands inside a
    word and whitespace follows within ``lookahead`` characters, the cut is
    moved forward to that whitespace; otherwise it stays where planned.
    """
    cut = min(len(text), position + step)
    if cut >= len(text) or cut == 0:
        return cut
    if text[cut - 1].isspace() or text[cut].isspace():
        return cut

    for offset in range(1, lookahead + 1):
        index = cut + offset
        if index >= len(text):
            break
        if text[index].isspace():
            return index
    return cut


class ProgressiveReveal:
    """Lazy, finite, restartable sequence of growing prefixes of ``text``.

    Each iteration starts over from the beginning with the same step
    sequence; the last prefix yielded is always the full text.
    """

    def __init__(
        self,
        text: str,
        min_step: int = MIN_STEP,
        max_step: int = MAX_STEP,
        lookahead: int = WORD_LOOKAHEAD,
        seed: Optional[int] = None,
    ):
        if min_step < 1 or max_step < min_step:
            raise ValueError(f"Invalid step range {min_step}..{max_step}")
        self.text = text
        self.min_step = min_step
        self.max_step = max_step
        self.lookahead = lookahead
        self.seed = seed if seed is not None else random.randrange(2 ** 32)

    def __iter__(self) -> Iterator[str]:
        rng = random.Random(self.seed)
        position = 0
        while position < len(self.text):
            step = rng.randint(self.min_step, self.max_step)
            position = next_cut(self.text, position, step, self.lookahead)
            yield self.text[:position]


@dataclass
class TranscriptEntry:
    """A response that finished revealing."""
    text: str
    timestamp: datetime = field(default_factory=datetime.now)


class Transcript:
    """Permanent, thread-safe list of completed responses."""

    def __init__(self):
        self._entries: List[TranscriptEntry] = []
        self._lock = threading.Lock()

    def append(self, text: str) -> TranscriptEntry:
        entry = TranscriptEntry(text=text)
        with self._lock:
            self._entries.append(entry)
        return entry

    def entries(self) -> List[TranscriptEntry]:
        with self._lock:
            return list(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class RevealController:
    """Drives at most one reveal at a time.

    Starting a reveal supersedes the one in progress, which is dropped
    without reaching the transcript.
    """

    def __init__(
        self,
        transcript: Transcript,
        on_complete: Optional[Callable[[TranscriptEntry], None]] = None,
        min_step: int = MIN_STEP,
        max_step: int = MAX_STEP,
        lookahead: int = WORD_LOOKAHEAD,
    ):
        self.transcript = transcript
        self.on_complete = on_complete
        self.min_step = min_step
        self.max_step = max_step
        self.lookahead = lookahead

        self._lock = threading.Lock()
        self._iterator: Optional[Iterator[str]] = None
        self._text = ""
        self._current = ""

    @property
    def in_progress(self) -> bool:
        with self._lock:
            return self._iterator is not None

    @property
    def current_text(self) -> str:
        with self._lock:
            return self._current

    def start(self, text: str, seed: Optional[int] = None) -> None:
        reveal = ProgressiveReveal(text, self.min_step, self.max_step, self.lookahead, seed)
        with self._lock:
            if self._iterator is not None:
                logger.debug("Superseding reveal in progress")
            self._iterator = iter(reveal)
            self._text = text
            self._current = ""

    def cancel(self) -> None:
        with self._lock:
            self._iterator = None
            self._text = ""
            self._current = ""

    def advance(self) -> Optional[str]:
        """One tick. Returns the visible prefix, or None when nothing is revealing."""
        completed = None
        with self._lock:
            if self._iterator is None:
                return None
            try:
                self._current = next(self._iterator)
                return self._current
            except StopIteration:
                completed = self._text
                self._iterator = None
                self._text = ""
                self._current = ""

        entry = self.transcript.append(completed)
        if self.on_complete:
            self.on_complete(entry)
        return completed
