"""Terminal user interface."""

from .reveal import ProgressiveReveal, RevealController, Transcript, TranscriptEntry, next_cut

__all__ = [
    "ProgressiveReveal",
    "RevealController",
    "Transcript",
    "TranscriptEntry",
    "next_cut",
]
