"""Scratch storage for pipeline intermediates."""

from .file_manager import FileManager

__all__ = ["FileManager"]
