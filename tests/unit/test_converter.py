"""Unit tests for ffmpeg normalization and its fallback chain."""

import asyncio
import pytest
from pathlib import Path
from unittest.mock import patch

from wingman.pipeline.base import CommandResult
from wingman.pipeline.converter import FfmpegConverter, is_target_format
from conftest import wav_bytes


class FakeFfmpeg:
    """Stands in for run_command; writes output for attempts listed in ``succeed``."""

    def __init__(self, succeed=(), raise_os_error=False):
        self.succeed = set(succeed)
        self.raise_os_error = raise_os_error
        self.calls = []

    async def __call__(self, args):
        self.calls.append(list(args))
        if self.raise_os_error:
            raise FileNotFoundError("ffmpeg")
        attempt = len(self.calls)
        if attempt in self.succeed:
            Path(args[-2]).write_bytes(b"RIFF" + b"\x00" * 100)
            return CommandResult(0, "", "")
        return CommandResult(1, "", "Invalid data found when processing input")


@pytest.fixture
def source(temp_data_dir):
    path = Path(temp_data_dir) / "audio_s1-u1.wav"
    path.write_bytes(wav_bytes(b"\x01\x00" * 1600, sample_rate=44100, channels=2))
    return path


def normalize(converter, path, fake):
    with patch("wingman.pipeline.converter.run_command", new=fake):
        return asyncio.run(converter.normalize(path))


@pytest.mark.unit
class TestTargetFormat:

    def test_detects_target_wav(self, sample_wav_file):
        assert is_target_format(sample_wav_file) is True

    def test_other_rate_is_not_target(self, source):
        assert is_target_format(source) is False

    def test_non_wav_is_not_target(self, temp_data_dir):
        path = Path(temp_data_dir) / "clip.webm"
        path.write_bytes(b"\x1aE\xdf\xa3" + b"\x00" * 64)
        assert is_target_format(path) is False


@pytest.mark.unit
class TestFfmpegConverter:

    def test_primary_conversion(self, source):
        converter = FfmpegConverter()
        fake = FakeFfmpeg(succeed={1})
        result = normalize(converter, source, fake)

        assert result == source.with_name("audio_s1-u1_boosted.wav")
        assert len(fake.calls) == 1
        args = fake.calls[0]
        assert args[0] == "ffmpeg"
        assert "highpass=f=200" in args[args.index("-af") + 1]
        assert args[args.index("-ar") + 1] == "16000"
        assert args[args.index("-ac") + 1] == "1"
        assert "pcm_s16le" in args
        assert converter.stats["primary_ok"] == 1

    def test_target_input_gets_gain_only(self, sample_wav_file):
        fake = FakeFfmpeg(succeed={1})
        normalize(FfmpegConverter(), sample_wav_file, fake)

        args = fake.calls[0]
        assert args[args.index("-af") + 1] == "volume=3.0"
        assert "-ar" not in args

    def test_falls_back_to_simple_conversion(self, source):
        converter = FfmpegConverter()
        fake = FakeFfmpeg(succeed={2})
        result = normalize(converter, source, fake)

        assert result == source.with_name("audio_s1-u1_simple.wav")
        assert len(fake.calls) == 2
        assert "-af" not in fake.calls[1]
        assert converter.stats["simple_ok"] == 1

    def test_falls_back_to_original(self, source):
        converter = FfmpegConverter()
        fake = FakeFfmpeg()
        assert normalize(converter, source, fake) == source
        assert len(fake.calls) == 2
        assert converter.stats["passthrough"] == 1

    def test_missing_binary_returns_original(self, source):
        converter = FfmpegConverter(binary_path="/nonexistent/ffmpeg")
        fake = FakeFfmpeg(raise_os_error=True)
        assert normalize(converter, source, fake) == source

    def test_zero_exit_without_output_counts_as_failure(self, source):
        async def silent_ffmpeg(args):
            return CommandResult(0, "", "")

        assert normalize(FfmpegConverter(), source, silent_ffmpeg) == source
