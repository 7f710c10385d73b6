"""Unit tests for the Ollama inference client."""

import asyncio
import json
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from wingman.pipeline.base import InferenceError
from wingman.pipeline.ollama_client import (
    OllamaClient,
    build_prompt,
    escape_transcript,
    SYSTEM_PROMPT,
)


def run_against(handler, prompt="hello", **client_kwargs):
    """Serve ``handler`` at /api/generate and call the client once."""
    requests = []

    async def recording_handler(request):
        requests.append(await request.json())
        return await handler(request)

    async def scenario():
        app = web.Application()
        app.router.add_post("/api/generate", recording_handler)
        async with TestServer(app) as server:
            client = OllamaClient(host=str(server.make_url("")), **client_kwargs)
            return await client.generate(prompt)

    return asyncio.run(scenario()), requests


@pytest.mark.unit
class TestPromptBuilding:

    def test_escapes_quotes_and_newlines(self):
        assert escape_transcript('He said "hi"\n') == 'He said \\"hi\\"\\n'

    def test_backslash_escaped_first(self):
        assert escape_transcript('a\\"b') == 'a\\\\\\"b'

    def test_tabs_and_carriage_returns(self):
        assert escape_transcript("a\tb\rc") == "a\\tb\\rc"

    def test_prompt_layout(self):
        prompt = build_prompt("what time is it")
        assert prompt == (f'{SYSTEM_PROMPT}\n\nAudio transcription: "what time is it"'
                          f'\n\n Provide a suggestion to the users question.')

    def test_custom_system_prompt(self):
        assert build_prompt("x", system_prompt="Be brief.").startswith("Be brief.\n\n")


@pytest.mark.unit
class TestOllamaClient:

    def test_payload(self):
        client = OllamaClient(options={"temperature": 0.7})
        payload = client.build_payload("p")
        assert payload["model"] == "qwen2.5:0.5b"
        assert payload["stream"] is False
        assert payload["options"]["temperature"] == 0.7
        assert payload["options"]["num_predict"] == 100
        assert payload["options"]["seed"] == 42

    def test_url_from_host(self):
        assert OllamaClient(host="http://ollama:11434/").url == "http://ollama:11434/api/generate"

    def test_successful_generation(self):
        async def handler(request):
            return web.json_response({"response": "  Try Paris.  ", "done": True})

        text, requests = run_against(handler, prompt="capital of France", model="llama3")
        assert text == "Try Paris."
        assert requests[0]["model"] == "llama3"
        assert requests[0]["prompt"] == "capital of France"
        assert requests[0]["stream"] is False

    def test_non_200_raises(self):
        async def handler(request):
            return web.json_response({"error": "model not found"}, status=404)

        with pytest.raises(InferenceError, match="404"):
            run_against(handler)

    def test_missing_response_field_raises(self):
        async def handler(request):
            return web.json_response({"done": True})

        with pytest.raises(InferenceError):
            run_against(handler)

    def test_malformed_json_raises(self):
        async def handler(request):
            return web.Response(text="not json", content_type="application/json")

        with pytest.raises(InferenceError):
            run_against(handler)

    def test_non_string_response_raises(self):
        async def handler(request):
            return web.Response(text=json.dumps({"response": 42}), content_type="application/json")

        with pytest.raises(InferenceError):
            run_against(handler)

    def test_unreachable_server_raises(self):
        client = OllamaClient(host="http://127.0.0.1:1")
        with pytest.raises(InferenceError) as exc_info:
            asyncio.run(client.generate("hello"))
        assert exc_info.value.stage == "inference"
