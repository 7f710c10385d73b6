"""Backend pipeline: ffmpeg normalization, whisper.cpp transcription, Ollama inference."""

from .base import (
    PipelineError,
    TranscriptionError,
    InferenceError,
    AbstractNormalizer,
    AbstractTranscriber,
    AbstractInferenceClient,
)
from .converter import FfmpegConverter
from .whisper_backend import WhisperCppTranscriber
from .ollama_client import OllamaClient, escape_transcript, build_prompt
from .audio_pipeline import AudioPipeline

__all__ = [
    "PipelineError",
    "TranscriptionError",
    "InferenceError",
    "AbstractNormalizer",
    "AbstractTranscriber",
    "AbstractInferenceClient",
    "FfmpegConverter",
    "WhisperCppTranscriber",
    "OllamaClient",
    "escape_transcript",
    "build_prompt",
    "AudioPipeline",
]
