"""Microphone stream ownership and rotating capture units."""

import io
import time
import uuid
import wave
import logging
from typing import Optional, List

import pyaudio

from ..models.audio import AudioFrame, AudioStats, Segment
from ..models.session import CaptureState

logger = logging.getLogger(__name__)

ANALYSIS_BLOCK_SIZE = 512


class CaptureError(Exception):
    """The microphone could not be opened or stopped delivering audio."""


class MicrophoneStream:
    """Owns the PyAudio input stream shared by every capture unit of a session."""
    
    def __init__(
        self,
        sample_rate: int = 16000,
        chunk_size: int = ANALYSIS_BLOCK_SIZE,
        channels: int = 1,
        format: int = pyaudio.paInt16,
        device_index: Optional[int] = None,
    ):
        """Initialize microphone stream with specified parameters.
        
        Args:
            sample_rate: Audio sample rate (16kHz matches the transcription engine)
            chunk_size: Samples per analysis block (one block per tick)
            channels: Number of audio channels (1 for mono)
            format: Audio format (16-bit signed int)
            device_index: PyAudio input device, None for the system default
        """
        self.sample_rate = sample_rate
        self.chunk_size = chunk_size
        self.channels = channels
        self.format = format
        self.device_index = device_index
        
        self.pyaudio_instance: Optional[pyaudio.PyAudio] = None
        self.stream = None
        self.total_chunks = 0
        self.start_time: Optional[float] = None

    @property
    def is_open(self) -> bool:
        return self.stream is not None

    @property
    def sample_width(self) -> int:
        return pyaudio.get_sample_size(self.format)
        
    def open(self) -> None:
        """Open the input stream; raises CaptureError if the device is unusable."""
        if self.is_open:
            return
        try:
            self.pyaudio_instance = pyaudio.PyAudio()
            self.stream = self.pyaudio_instance.open(
                format=self.format,
                channels=self.channels,
                rate=self.sample_rate,
                input=True,
                input_device_index=self.device_index,
                frames_per_buffer=self.chunk_size,
                stream_callback=None
            )
        except (OSError, IOError) as e:
            self.close()
            raise CaptureError(f"Could not open microphone: {e}") from e

        self.total_chunks = 0
        self.start_time = time.time()
        logger.info(f"Audio stream opened: {self.sample_rate}Hz, "
                    f"{self.chunk_size} samples/chunk, {self.channels} channel(s)")
    
    def read_frame(self, timestamp_ms: float) -> AudioFrame:
        """Block until the next analysis block is available."""
        if not self.is_open:
            raise CaptureError("Microphone stream is not open")
        try:
            data = self.stream.read(self.chunk_size, exception_on_overflow=False)
        except (OSError, IOError) as e:
            raise CaptureError(f"Microphone stream failed: {e}") from e

        self.total_chunks += 1
        return AudioFrame(data=data, timestamp_ms=timestamp_ms, frame_number=self.total_chunks)
    
    def close(self) -> None:
        """Release the stream and the PyAudio instance. Safe to call repeatedly."""
        if self.stream is not None:
            try:
                self.stream.stop_stream()
                self.stream.close()
            except (OSError, IOError) as e:
                logger.warning(f"Error closing audio stream: {e}")
            self.stream = None
            logger.info(f"Audio stream closed. Total chunks: {self.total_chunks}")
        if self.pyaudio_instance is not None:
            self.pyaudio_instance.terminate()
            self.pyaudio_instance = None

    def get_recording_stats(self) -> AudioStats:
        """Get current recording statistics."""
        duration = 0.0
        if self.start_time and self.is_open:
            duration = time.time() - self.start_time
        
        return AudioStats(
            is_recording=self.is_open,
            duration_seconds=duration,
            sample_rate=self.sample_rate,
            chunk_size=self.chunk_size,
            total_chunks=self.total_chunks,
        )


class CaptureUnit:
    """One recorder bound to the shared microphone stream.

    Frames keep accumulating while the unit is finalizing so nothing read
    between a stop request and finalize completion is lost.
    """

    def __init__(self, stream: MicrophoneStream, session_id: str = ""):
        self.stream = stream
        self.session_id = session_id
        self.unit_id = uuid.uuid4().hex[:8]
        self.state = CaptureState.IDLE
        self.frames: List[bytes] = []
        self.started_at: Optional[float] = None

    @property
    def is_recording(self) -> bool:
        return self.state == CaptureState.RECORDING

    @property
    def is_finalizing(self) -> bool:
        return self.state == CaptureState.FINALIZING

    @property
    def byte_count(self) -> int:
        return sum(len(chunk) for chunk in self.frames)

    def start(self) -> None:
        if self.state != CaptureState.IDLE:
            raise RuntimeError(f"Capture unit {self.unit_id} already {self.state.value}")
        if not self.stream.is_open:
            raise CaptureError("Cannot start capture unit on a closed stream")
        self.state = CaptureState.RECORDING
        self.started_at = time.time()
        logger.debug(f"Capture unit {self.unit_id} started")

    def append(self, data: bytes) -> None:
        if self.state in (CaptureState.RECORDING, CaptureState.FINALIZING) and data:
            self.frames.append(data)

    def request_stop(self) -> bool:
        """Move to finalizing. Returns False if the unit was not recording."""
        if not self.is_recording:
            return False
        self.state = CaptureState.FINALIZING
        logger.debug(f"Capture unit {self.unit_id} finalizing ({self.byte_count} bytes)")
        return True

    def finalize(self) -> Optional[Segment]:
        """Stop the unit and package its audio; None if nothing was captured."""
        if self.state != CaptureState.FINALIZING:
            raise RuntimeError(f"Capture unit {self.unit_id} is {self.state.value}, not finalizing")
        self.state = CaptureState.STOPPED

        if not self.frames:
            logger.debug(f"Capture unit {self.unit_id} stopped with no audio")
            return None

        pcm = b"".join(self.frames)
        self.frames = []
        bytes_per_second = self.stream.sample_rate * self.stream.channels * self.stream.sample_width
        return Segment(
            segment_id=f"{self.session_id}-{self.unit_id}",
            session_id=self.session_id,
            audio_data=self._encode_wav(pcm),
            encoding="wav",
            sample_rate=self.stream.sample_rate,
            channels=self.stream.channels,
            duration_ms=int(len(pcm) * 1000 / bytes_per_second),
            created_at=time.time(),
        )

    def _encode_wav(self, pcm: bytes) -> bytes:
        buffer = io.BytesIO()
        with wave.open(buffer, 'wb') as wf:
            wf.setnchannels(self.stream.channels)
            wf.setsampwidth(self.stream.sample_width)
            wf.setframerate(self.stream.sample_rate)
            wf.writeframes(pcm)
        return buffer.getvalue()
