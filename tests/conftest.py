"""Pytest configuration and fixtures for Wingman tests."""

import io
import itertools
import pytest
import tempfile
import logging
import wave
from pathlib import Path
from typing import List, Optional
from unittest.mock import Mock, patch

import numpy as np

from wingman.audio.capture import MicrophoneStream, CaptureError
from wingman.models.audio import AudioFrame, Segment


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

BLOCK_SIZE = 512


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests without hardware or external tools")
    config.addinivalue_line("markers", "integration: several components wired together")
    config.addinivalue_line("markers", "hardware: needs a real microphone")


def make_frame(rms: float, timestamp_ms: float, frame_number: int = 0,
               block_size: int = BLOCK_SIZE) -> AudioFrame:
    """A frame of constant amplitude, whose RMS is exactly ``rms``."""
    samples = np.full(block_size, rms, dtype=np.float32)
    data = (samples * 32767).astype(np.int16).tobytes()
    return AudioFrame(data=data, timestamp_ms=timestamp_ms, frame_number=frame_number, samples=samples)


def wav_bytes(pcm: bytes, sample_rate: int = 16000, channels: int = 1) -> bytes:
    buffer = io.BytesIO()
    with wave.open(buffer, 'wb') as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(2)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm)
    return buffer.getvalue()


def make_segment(segment_id: str = "s1-u1", session_id: str = "s1", pcm: bytes = b'\x01\x00' * 8000,
                 encoding: str = "wav") -> Segment:
    return Segment(
        segment_id=segment_id,
        session_id=session_id,
        audio_data=wav_bytes(pcm) if encoding == "wav" else pcm,
        encoding=encoding,
        sample_rate=16000,
        channels=1,
        duration_ms=len(pcm) * 1000 // 32000,
        created_at=0.0,
    )


class FakeMicrophoneStream(MicrophoneStream):
    """MicrophoneStream that never touches PyAudio.

    ``frames`` (if given) are returned by ``read_frame`` in order; once they
    run out ``read_frame`` raises CaptureError.
    """

    def __init__(self, frames: Optional[List[AudioFrame]] = None, fail_open: bool = False):
        super().__init__(sample_rate=16000, chunk_size=BLOCK_SIZE, channels=1)
        self.frames = list(frames or [])
        self.fail_open = fail_open
        self.open_calls = 0
        self.close_calls = 0
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def sample_width(self) -> int:
        return 2

    def open(self) -> None:
        self.open_calls += 1
        if self.fail_open:
            raise CaptureError("Permission denied")
        self._open = True

    def read_frame(self, timestamp_ms: float) -> AudioFrame:
        if not self.frames:
            raise CaptureError("device unplugged")
        frame = self.frames.pop(0)
        return AudioFrame(data=frame.data, timestamp_ms=timestamp_ms,
                          frame_number=frame.frame_number, samples=frame.samples)

    def close(self) -> None:
        self.close_calls += 1
        self._open = False


class ManualClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def temp_data_dir():
    """Create temporary directory for test data."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield temp_dir


@pytest.fixture
def fake_stream():
    return FakeMicrophoneStream()


@pytest.fixture
def manual_clock():
    return ManualClock()


@pytest.fixture
def mock_dispatcher():
    """Dispatcher double that records every segment handed to it."""
    dispatcher = Mock()
    dispatcher.segments = []

    def _dispatch(segment):
        dispatcher.segments.append(segment)
        return True

    dispatcher.dispatch.side_effect = _dispatch
    return dispatcher


@pytest.fixture
def mock_publisher():
    publisher = Mock()
    publisher.topic.side_effect = lambda name: name
    return publisher


@pytest.fixture
def unique_topic_prefix():
    """Pub/sub topics are process-global; give each test its own namespace."""
    return f"test{next(_topic_counter)}"


_topic_counter = itertools.count()


@pytest.fixture
def sample_audio_chunk():
    """Generate a sample audio chunk for testing."""
    # 512 samples of 16-bit audio (sine wave)
    sample_rate = 16000
    duration = BLOCK_SIZE / sample_rate
    freq = 440  # A4 note
    
    t = np.linspace(0, duration, BLOCK_SIZE, False)
    wave_data = np.sin(2 * np.pi * freq * t)
    
    audio_data = (wave_data * 32767).astype(np.int16)
    return audio_data.tobytes()


@pytest.fixture
def mock_pyaudio():
    """Mock PyAudio for testing without actual audio hardware."""
    with patch('pyaudio.PyAudio') as mock_pyaudio_class:
        mock_pyaudio_instance = Mock()
        mock_stream = Mock()
        
        # Configure mock stream
        mock_stream.read.return_value = b'\x00' * (BLOCK_SIZE * 2)  # Silent audio
        mock_stream.stop_stream.return_value = None
        mock_stream.close.return_value = None
        
        # Configure mock PyAudio instance
        mock_pyaudio_instance.open.return_value = mock_stream
        mock_pyaudio_instance.terminate.return_value = None
        mock_pyaudio_instance.get_sample_size.return_value = 2
        
        # Configure mock PyAudio class
        mock_pyaudio_class.return_value = mock_pyaudio_instance
        
        yield {
            'class': mock_pyaudio_class,
            'instance': mock_pyaudio_instance,
            'stream': mock_stream
        }


@pytest.fixture
def sample_wav_file(temp_data_dir, sample_audio_chunk):
    """Create a 16 kHz mono WAV file for testing."""
    file_path = Path(temp_data_dir) / "test_audio.wav"
    
    with wave.open(str(file_path), 'wb') as wf:
        wf.setnchannels(1)  # Mono
        wf.setsampwidth(2)  # 16-bit
        wf.setframerate(16000)  # 16kHz
        
        for _ in range(20):
            wf.writeframes(sample_audio_chunk)
    
    return file_path
