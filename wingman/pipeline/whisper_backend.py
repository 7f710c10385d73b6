"""whisper.cpp command-line transcription backend."""

import time
import logging
from pathlib import Path
from typing import List, Optional

from .base import AbstractTranscriber, TranscriptionError, run_command

logger = logging.getLogger(__name__)

# Substrings marking whisper.cpp diagnostic output on stdout
LOG_MARKERS = ("whisper_", "main:")


def parse_transcript(stdout: str) -> str:
    """Extract transcript text from whisper-cli stdout.

    Empty lines, bracketed lines (timestamps, [BLANK_AUDIO] and the like)
    and lines carrying log markers are dropped.
    """
    parts = []
    for line in stdout.splitlines():
        if not line or line.startswith('['):
            continue
        if any(marker in line for marker in LOG_MARKERS):
            continue
        parts.append(line)
    return ' '.join(parts).strip()


def sidecar_candidates(audio_path: Path) -> List[Path]:
    """Transcript files whisper.cpp may leave next to the audio."""
    return [
        audio_path.with_suffix('.txt'),
        audio_path.with_name(audio_path.name + '.txt'),
    ]


class WhisperCppTranscriber(AbstractTranscriber):
    """Runs whisper-cli against a normalized audio file."""

    def __init__(
        self,
        model_path: str,
        binary_path: str = "whisper-cli",
        threads: int = 8,
        language: str = "en",
    ):
        """Initialize transcriber.
        
        Args:
            model_path: Path to the ggml model file
            binary_path: whisper-cli executable
            threads: Decoder thread count
            language: Spoken language code
        """
        self.model_path = model_path
        self.binary_path = binary_path
        self.threads = threads
        self.language = language
        logger.info(f"WhisperCppTranscriber initialized: {binary_path} with model {model_path}")

    def build_command(self, audio_path: Path) -> List[str]:
        return [
            self.binary_path,
            "-m", str(self.model_path),
            "-f", str(audio_path),
            "-t", str(self.threads),
            "--no-timestamps",
            "-l", self.language,
        ]

    def _read_sidecar(self, audio_path: Path) -> Optional[str]:
        for candidate in sidecar_candidates(audio_path):
            if not candidate.exists():
                continue
            try:
                content = candidate.read_text(encoding='utf-8').strip()
            except OSError as e:
                logger.warning(f"Could not read transcript file {candidate}: {e}")
                continue
            if content:
                logger.debug(f"Using transcript file {candidate}")
                return content
        return None

    async def transcribe(self, audio_path: Path) -> str:
        audio_path = Path(audio_path)
        if not audio_path.exists():
            raise TranscriptionError(f"Audio file not found: {audio_path}")

        start_time = time.time()
        try:
            result = await run_command(self.build_command(audio_path))
        except OSError as e:
            raise TranscriptionError(f"Could not run {self.binary_path}: {e}") from e

        if result.returncode != 0:
            raise TranscriptionError(
                f"{self.binary_path} exited with {result.returncode}: {result.stderr.strip()[-300:]}"
            )

        transcription = parse_transcript(result.stdout)
        sidecar = self._read_sidecar(audio_path)
        if sidecar is not None:
            transcription = sidecar

        logger.info(f"Transcription complete in {(time.time() - start_time) * 1000:.0f}ms: '{transcription}'")
        return transcription
