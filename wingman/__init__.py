"""Wingman: voice-activity segmented capture feeding a local speech pipeline."""

__version__ = "0.1.0"
