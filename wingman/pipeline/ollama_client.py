"""Local Ollama inference client."""

import json
import logging
from typing import Any, Dict, Optional

import aiohttp

from .base import AbstractInferenceClient, InferenceError

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are Wingman AI, a helpful, proactive assistant for any kind of problem or "
    "situation (not just coding). For any user input, analyze the situation, provide a "
    "clear problem statement, relevant context, and suggest several possible responses or "
    "actions the user could take next. Always explain your reasoning. Present your "
    "suggestions as a list of options or next steps."
)

DEFAULT_OPTIONS = {
    "temperature": 0.3,
    "num_predict": 100,
    "num_ctx": 512,
    "num_thread": 8,
    "seed": 42,
}

# Order matters: backslashes first so later escapes are not doubled
ESCAPES = (
    ('\\', '\\\\'),
    ('"', '\\"'),
    ('\n', '\\n'),
    ('\r', '\\r'),
    ('\t', '\\t'),
)


def escape_transcript(text: str) -> str:
    """Escape control characters before embedding a transcript in a quoted prompt."""
    for raw, escaped in ESCAPES:
        text = text.replace(raw, escaped)
    return text


def build_prompt(transcript: str, system_prompt: str = SYSTEM_PROMPT) -> str:
    return (f'{system_prompt}\n\nAudio transcription: "{escape_transcript(transcript)}"'
            f'\n\n Provide a suggestion to the users question.')


class OllamaClient(AbstractInferenceClient):
    """Calls the /api/generate endpoint of a local Ollama server."""
    
    def __init__(
        self,
        model: str = "qwen2.5:0.5b",
        host: str = "http://localhost:11434",
        options: Optional[Dict[str, Any]] = None,
    ):
        """Initialize Ollama client.
        
        Args:
            model: Ollama model tag
            host: Server base URL
            options: Sampling options merged over the deterministic defaults
        """
        self.model = model
        self.host = host.rstrip('/')
        self.url = f"{self.host}/api/generate"
        self.options = {**DEFAULT_OPTIONS, **(options or {})}
        
        logger.info(f"OllamaClient initialized with model: {model} at {self.host}")

    def build_payload(self, prompt: str) -> Dict[str, Any]:
        return {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": dict(self.options),
        }
    
    async def generate(self, prompt: str) -> str:
        """Send a prompt and return the generated text.
        
        Raises:
            InferenceError: If the server is unreachable or the payload is malformed
        """
        payload = self.build_payload(prompt)
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(self.url, json=payload) as response:
                    body = await response.text()
                    if response.status != 200:
                        raise InferenceError(f"Ollama API error: {response.status} - {body[:300]}")
        except aiohttp.ClientError as e:
            raise InferenceError(f"Ollama server unreachable at {self.url}: {e}") from e

        try:
            result = json.loads(body)
        except json.JSONDecodeError as e:
            raise InferenceError(f"Malformed Ollama response: {e}") from e

        text = result.get("response") if isinstance(result, dict) else None
        if not isinstance(text, str):
            raise InferenceError("Ollama response payload has no 'response' field")
        return text.strip()
