"""ffmpeg-based format normalization with two levels of fallback."""

import wave
import logging
from pathlib import Path
from typing import List

from .base import AbstractNormalizer, CommandResult, ConversionError, run_command

logger = logging.getLogger(__name__)

TARGET_SAMPLE_RATE = 16000
TARGET_CHANNELS = 1
TARGET_SAMPLE_WIDTH = 2  # 16-bit linear PCM

# Volume boost and speech band-pass, tuned for intelligibility
SPEECH_FILTER = "volume=3.0,highpass=f=200,lowpass=f=3000"
GAIN_FILTER = "volume=3.0"


def is_target_format(path: Path) -> bool:
    """True if the file is already mono 16 kHz 16-bit PCM WAV."""
    try:
        with wave.open(str(path), 'rb') as wf:
            return (wf.getnchannels() == TARGET_CHANNELS
                    and wf.getframerate() == TARGET_SAMPLE_RATE
                    and wf.getsampwidth() == TARGET_SAMPLE_WIDTH)
    except (wave.Error, EOFError, OSError):
        return False


class FfmpegConverter(AbstractNormalizer):
    """Normalizes segment audio for the transcription engine.

    Primary: full conversion with band-pass and gain (or gain only if the
    input is already in the target format). Fallback: plain resample and
    down-mix. Last resort: the original file unchanged.
    """

    def __init__(self, binary_path: str = "ffmpeg"):
        self.binary_path = binary_path
        self.stats = {
            "primary_ok": 0,
            "simple_ok": 0,
            "passthrough": 0,
        }

    def primary_command(self, source: Path, output: Path, already_target: bool) -> List[str]:
        if already_target:
            return [self.binary_path, "-i", str(source), "-af", GAIN_FILTER, str(output), "-y"]
        return [
            self.binary_path, "-i", str(source),
            "-af", SPEECH_FILTER,
            "-ar", str(TARGET_SAMPLE_RATE), "-ac", str(TARGET_CHANNELS),
            "-c:a", "pcm_s16le",
            str(output), "-y",
        ]

    def simple_command(self, source: Path, output: Path) -> List[str]:
        return [
            self.binary_path, "-i", str(source),
            "-ar", str(TARGET_SAMPLE_RATE), "-ac", str(TARGET_CHANNELS),
            str(output), "-y",
        ]

    async def _convert(self, args: List[str], output: Path) -> Path:
        try:
            result: CommandResult = await run_command(args)
        except OSError as e:
            raise ConversionError(f"could not run {self.binary_path}: {e}") from e
        if result.returncode != 0:
            raise ConversionError(f"exit code {result.returncode}: {result.stderr.strip()[-300:]}")
        if not output.exists() or output.stat().st_size == 0:
            raise ConversionError(f"no output produced at {output}")
        return output

    async def normalize(self, source: Path) -> Path:
        source = Path(source)
        already_target = is_target_format(source)
        boosted = source.with_name(f"{source.stem}_boosted.wav")
        simple = source.with_name(f"{source.stem}_simple.wav")

        try:
            path = await self._convert(self.primary_command(source, boosted, already_target), boosted)
            self.stats["primary_ok"] += 1
            logger.info(f"{'Boosted' if already_target else 'Converted'} audio: {path} "
                        f"({path.stat().st_size} bytes)")
            return path
        except ConversionError as e:
            logger.error(f"ffmpeg conversion failed: {e}")

        logger.info("Trying simple conversion without filters...")
        try:
            path = await self._convert(self.simple_command(source, simple), simple)
            self.stats["simple_ok"] += 1
            logger.info(f"Simple WAV conversion succeeded: {path}")
            return path
        except ConversionError as e:
            logger.error(f"All conversions failed, using original: {e}")

        self.stats["passthrough"] += 1
        return source
