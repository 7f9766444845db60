"""Tests for llm.providers: request payloads and stream decoding per backend."""

from __future__ import annotations

import json

import httpx
import pytest

from config import Settings
from llm import providers
from llm.client import get_llm_client
from llm.providers import (
    AnthropicProvider,
    OllamaProvider,
    OpenAIProvider,
    create_provider,
)

MESSAGES = [
    {"role": "system", "content": "Answer in JSON."},
    {"role": "user", "content": "Find the SSN in: 123-45-6789"},
]


@pytest.fixture
def mock_backend(monkeypatch):
    """Route every provider request to a handler and record the JSON bodies."""
    real_client = httpx.AsyncClient
    state: dict = {"requests": [], "response": httpx.Response(200, text="")}

    def handler(request: httpx.Request) -> httpx.Response:
        state["requests"].append((str(request.url), json.loads(request.content)))
        return state["response"]

    def client_factory(**kwargs):
        return real_client(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(providers.httpx, "AsyncClient", client_factory)
    return state


async def _collect(provider, **kwargs) -> str:
    return "".join([piece async for piece in provider.chat(MESSAGES, **kwargs)])


class TestOllama:

    @pytest.mark.asyncio
    async def test_streams_ndjson_and_requests_json_format(self, mock_backend):
        lines = [
            {"message": {"content": '{"entities": '}, "done": False},
            {"message": {"content": "[]}"}, "done": False},
            {"message": {"content": ""}, "done": True},
        ]
        mock_backend["response"] = httpx.Response(200, text="\n".join(json.dumps(l) for l in lines))

        text = await _collect(OllamaProvider(model="llama3"), json_mode=True)

        assert text == '{"entities": []}'
        url, body = mock_backend["requests"][0]
        assert url == "http://localhost:11434/api/chat"
        assert body["format"] == "json"
        assert body["stream"] is True


class TestOpenAI:

    @pytest.mark.asyncio
    async def test_streams_sse_deltas_in_json_mode(self, mock_backend):
        events = [
            {"choices": [{"delta": {"content": '{"entities"'}}]},
            {"choices": [{"delta": {"content": ": []}"}}]},
        ]
        body = "\n\n".join(f"data: {json.dumps(e)}" for e in events) + "\n\ndata: [DONE]\n\n"
        mock_backend["response"] = httpx.Response(200, text=body)

        text = await _collect(OpenAIProvider(api_key="sk-test"), json_mode=True)

        assert text == '{"entities": []}'
        url, request = mock_backend["requests"][0]
        assert url == "https://api.openai.com/v1/chat/completions"
        assert request["response_format"] == {"type": "json_object"}
        assert request["model"] == "gpt-4o-mini"

    @pytest.mark.asyncio
    async def test_plain_mode_has_no_response_format(self, mock_backend):
        mock_backend["response"] = httpx.Response(200, text="data: [DONE]\n\n")
        await _collect(OpenAIProvider(api_key="sk-test"))
        assert "response_format" not in mock_backend["requests"][0][1]

    @pytest.mark.asyncio
    async def test_http_errors_propagate(self, mock_backend):
        mock_backend["response"] = httpx.Response(401, text="unauthorized")
        with pytest.raises(httpx.HTTPStatusError):
            await _collect(OpenAIProvider(api_key="sk-bad"))


class TestAnthropic:

    @pytest.mark.asyncio
    async def test_system_prompt_is_separated(self, mock_backend):
        events = [
            {"type": "content_block_delta", "delta": {"text": '{"entities": []}'}},
            {"type": "message_stop"},
        ]
        mock_backend["response"] = httpx.Response(
            200, text="\n\n".join(f"data: {json.dumps(e)}" for e in events)
        )

        text = await _collect(AnthropicProvider(api_key="sk-ant-test"), json_mode=True)

        assert text == '{"entities": []}'
        _, request = mock_backend["requests"][0]
        assert request["system"] == "Answer in JSON."
        assert request["messages"] == [MESSAGES[1]]


class TestCreateProvider:

    def test_ollama_needs_no_key(self):
        provider = create_provider("ollama", model="mistral", timeout=12.0)
        assert isinstance(provider, OllamaProvider)
        assert provider.model_name == "mistral"
        assert provider.base_url == "http://localhost:11434"

    def test_custom_base_url(self):
        provider = create_provider(
            "openai", model="gpt-4o", api_key="sk-test", base_url="https://gateway.internal/"
        )
        assert provider.model_name == "gpt-4o"
        assert provider.base_url == "https://gateway.internal"

    @pytest.mark.parametrize("name", ["openai", "anthropic"])
    def test_hosted_providers_need_a_key(self, name: str):
        with pytest.raises(ValueError, match="API key is required"):
            create_provider(name, model="some-model")

    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Unknown provider"):
            create_provider("bard", model="bard-1")


class TestGetLLMClient:

    def test_defaults_come_from_settings(self):
        settings = Settings(default_provider="ollama", ollama_model="qwen2", llm_timeout_seconds=30)
        provider = get_llm_client(settings=settings)
        assert isinstance(provider, OllamaProvider)
        assert provider.model_name == "qwen2"
        assert provider._timeout == 30

    def test_explicit_provider_and_model(self):
        settings = Settings(openai_api_key="", anthropic_api_key="sk-ant-test")
        provider = get_llm_client("Anthropic", "claude-haiku-4-5", settings=settings)
        assert isinstance(provider, AnthropicProvider)
        assert provider.model_name == "claude-haiku-4-5"

    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Unknown provider"):
            get_llm_client("bard", settings=Settings())
