"""Abstract collaborators and error types for the audio pipeline."""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

logger = logging.getLogger(__name__)


class PipelineError(Exception):
    """A pipeline stage failed and the segment produced no response."""

    stage = "internal"


class TranscriptionError(PipelineError):
    """The transcription engine failed on a segment."""

    stage = "transcription"


class InferenceError(PipelineError):
    """The inference server was unreachable or returned an unusable payload."""

    stage = "inference"


class ConversionError(Exception):
    """A single converter invocation failed. Never leaves the converter."""


@dataclass
class CommandResult:
    """Captured outcome of one external process run."""
    returncode: int
    stdout: str
    stderr: str


async def run_command(args: Sequence[str]) -> CommandResult:
    """Run an external program from an argument vector (no shell) and wait for it.

    Raises FileNotFoundError/PermissionError if the program cannot be started.
    """
    logger.debug(f"Running: {' '.join(str(a) for a in args)}")
    process = await asyncio.create_subprocess_exec(
        *[str(a) for a in args],
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, stderr = await process.communicate()
    return CommandResult(
        returncode=process.returncode,
        stdout=stdout.decode('utf-8', errors='replace'),
        stderr=stderr.decode('utf-8', errors='replace'),
    )


class AbstractNormalizer(ABC):
    """Brings a segment file into the transcription engine's input format."""

    @abstractmethod
    async def normalize(self, source: Path) -> Path:
        """Return the best available file for transcription. Must not raise."""
        pass


class AbstractTranscriber(ABC):
    """Turns an audio file into text."""

    @abstractmethod
    async def transcribe(self, audio_path: Path) -> str:
        """Transcribe the file; raises TranscriptionError on failure."""
        pass


class AbstractInferenceClient(ABC):
    """Turns a prompt into a response."""

    @abstractmethod
    async def generate(self, prompt: str) -> str:
        """Generate a response; raises InferenceError on failure."""
        pass
