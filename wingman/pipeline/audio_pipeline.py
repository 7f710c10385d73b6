"""Normalize, transcribe and infer for one finalized segment."""

import time
import logging

from ..config import WingmanConfig
from ..models.audio import Segment
from ..models.pipeline import PipelineResult
from ..storage.file_manager import FileManager
from .base import AbstractNormalizer, AbstractTranscriber, AbstractInferenceClient
from .converter import FfmpegConverter
from .whisper_backend import WhisperCppTranscriber
from .ollama_client import OllamaClient, build_prompt, SYSTEM_PROMPT

logger = logging.getLogger(__name__)


class AudioPipeline:
    """Runs a segment through every backend stage.

    Normalization never aborts a run; a transcription or inference failure
    propagates as a PipelineError and no partial response is returned. The
    segment's scratch directory is removed whatever the outcome.
    """

    def __init__(
        self,
        file_manager: FileManager,
        normalizer: AbstractNormalizer,
        transcriber: AbstractTranscriber,
        inference: AbstractInferenceClient,
        system_prompt: str = SYSTEM_PROMPT,
    ):
        self.file_manager = file_manager
        self.normalizer = normalizer
        self.transcriber = transcriber
        self.inference = inference
        self.system_prompt = system_prompt

    @classmethod
    def from_config(cls, config: WingmanConfig) -> "AudioPipeline":
        whisper_paths = config.get_whisper_paths()
        return cls(
            file_manager=FileManager(config.get_temp_directory()),
            normalizer=FfmpegConverter(binary_path=config.get('ffmpeg.binary_path', 'ffmpeg')),
            transcriber=WhisperCppTranscriber(
                model_path=whisper_paths["model_path"],
                binary_path=whisper_paths["binary_path"],
                threads=config.get('whisper.threads', 8),
                language=config.get('whisper.language', 'en'),
            ),
            inference=OllamaClient(
                model=config.get('ollama.model', 'qwen2.5:0.5b'),
                host=config.get('ollama.host', 'http://localhost:11434'),
                options=config.get('ollama.options', {}),
            ),
            system_prompt=config.get('ollama.system_prompt', SYSTEM_PROMPT),
        )

    async def process(self, segment: Segment) -> PipelineResult:
        """Turn one segment into a response.

        Raises:
            PipelineError: If transcription or inference fails
        """
        start_time = time.time()
        logger.info(f"Processing segment {segment.segment_id} "
                    f"({segment.size_bytes} bytes, {segment.duration_ms}ms)")

        scratch_path = self.file_manager.create_scratch_directory(segment.segment_id)
        try:
            source = self.file_manager.save_segment(segment, scratch_path)

            audio_path = await self.normalizer.normalize(source)
            logger.info(f"Will use this file for transcription: {audio_path}")

            transcript = await self.transcriber.transcribe(audio_path)
            logger.info(f"[LIVE TRANSCRIPTION]: {transcript}")

            response_text = await self.inference.generate(build_prompt(transcript, self.system_prompt))
        finally:
            self.file_manager.remove_scratch_directory(scratch_path)

        processing_time = time.time() - start_time
        logger.info(f"Segment {segment.segment_id} processed in {processing_time * 1000:.0f}ms")
        return PipelineResult(
            response_text=response_text,
            segment_id=segment.segment_id,
            session_id=segment.session_id,
            transcript=transcript,
            processing_time=processing_time,
        )
