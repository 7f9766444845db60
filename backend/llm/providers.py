"""LLM provider abstraction layer.

Supports multiple backends:
  - OpenAI (gpt-4o-mini by default, or any OpenAI-compatible endpoint)
  - Anthropic (Claude Sonnet 4.5, Claude Haiku 4.5, etc.)
  - Ollama (local)

Every provider streams its answer as text pieces through ``chat()`` so the
entity identifier can report findings before the model is done.  The HTTP
backends share one streaming loop; each only says how to build its request
and how to read one line of its response.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 300.0

# (text piece, end of answer)
LineResult = tuple[str, bool]
_NOTHING: LineResult = ("", False)
_FINISHED: LineResult = ("", True)


# ---------------------------------------------------------------------------
# Base classes
# ---------------------------------------------------------------------------

class LLMProvider(ABC):
    """Abstract base class for all LLM providers."""

    provider_name: str = "base"

    def __init__(self, timeout: float = DEFAULT_TIMEOUT) -> None:
        self._timeout = timeout

    @abstractmethod
    def chat(
        self,
        messages: list[dict[str, str]],
        json_mode: bool = False,
    ) -> AsyncIterator[str]:
        """Stream a chat completion, yielding content pieces as they arrive.

        ``json_mode`` asks the backend for a bare JSON object where its API
        supports it; the prompts request JSON either way.
        """
        ...

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Return the current model identifier."""
        ...


class HTTPStreamingProvider(LLMProvider):
    """Provider reached over HTTP with a line-oriented streaming response."""

    default_base_url: str = ""
    requires_api_key: bool = True

    def __init__(
        self,
        model: str,
        *,
        api_key: str = "",
        base_url: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        super().__init__(timeout)
        if self.requires_api_key and not api_key:
            raise ValueError(f"{self.provider_name.capitalize()} API key is required")
        self._model = model
        self._api_key = api_key
        self.base_url = (base_url or self.default_base_url).rstrip("/")

    @property
    def model_name(self) -> str:
        return self._model

    @abstractmethod
    def _build_request(
        self,
        messages: list[dict[str, str]],
        json_mode: bool,
    ) -> tuple[str, dict[str, str], dict[str, Any]]:
        """Return ``(url, headers, payload)`` for a streaming completion."""

    @abstractmethod
    def _read_line(self, line: str) -> LineResult:
        """Extract the text carried by one non-empty response line."""

    async def chat(
        self,
        messages: list[dict[str, str]],
        json_mode: bool = False,
    ) -> AsyncIterator[str]:
        url, headers, payload = self._build_request(messages, json_mode)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            async with client.stream("POST", url, headers=headers, json=payload) as response:
                response.raise_for_status()
                async for line in response.aiter_lines():
                    if not line:
                        continue
                    text, finished = self._read_line(line)
                    if text:
                        yield text
                    if finished:
                        break


def _sse_data(line: str) -> str | None:
    if not line.startswith("data: "):
        return None
    return line[6:]


# ---------------------------------------------------------------------------
# Ollama (local)
# ---------------------------------------------------------------------------

class OllamaProvider(HTTPStreamingProvider):
    """Ollama running locally; no data leaves the machine."""

    provider_name = "ollama"
    default_base_url = "http://localhost:11434"
    requires_api_key = False

    def _build_request(self, messages, json_mode):
        payload: dict[str, Any] = {
            "model": self._model,
            "messages": messages,
            "stream": True,
        }
        if json_mode:
            payload["format"] = "json"
        return f"{self.base_url}/api/chat", {}, payload

    def _read_line(self, line: str) -> LineResult:
        # NDJSON: one object per line, the last one flagged "done"
        data = json.loads(line)
        return data.get("message", {}).get("content", ""), bool(data.get("done", False))


# ---------------------------------------------------------------------------
# OpenAI
# ---------------------------------------------------------------------------

class OpenAIProvider(HTTPStreamingProvider):
    """OpenAI API provider (gpt-4o-mini, gpt-4o, etc.)."""

    provider_name = "openai"
    default_base_url = "https://api.openai.com"

    def _build_request(self, messages, json_mode):
        payload: dict[str, Any] = {
            "model": self._model,
            "messages": messages,
            "stream": True,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        return f"{self.base_url}/v1/chat/completions", headers, payload

    def _read_line(self, line: str) -> LineResult:
        data_str = _sse_data(line)
        if data_str is None:
            return _NOTHING
        if data_str.strip() == "[DONE]":
            return _FINISHED
        try:
            delta = json.loads(data_str)["choices"][0].get("delta", {})
        except (json.JSONDecodeError, KeyError, IndexError):
            logger.debug("Skipping unreadable OpenAI stream line: %.80s", line)
            return _NOTHING
        return delta.get("content") or "", False


# ---------------------------------------------------------------------------
# Anthropic (Claude)
# ---------------------------------------------------------------------------

class AnthropicProvider(HTTPStreamingProvider):
    """Anthropic API provider (Claude Sonnet 4.5, Claude Haiku, etc.)."""

    provider_name = "anthropic"
    default_base_url = "https://api.anthropic.com"
    max_tokens = 8192

    @staticmethod
    def _split_system(
        messages: list[dict[str, str]],
    ) -> tuple[str, list[dict[str, str]]]:
        """Separate system prompt from messages for Anthropic's API format."""
        system = [m["content"] for m in messages if m["role"] == "system"]
        rest = [
            {"role": m["role"], "content": m["content"]}
            for m in messages
            if m["role"] != "system"
        ]
        return "\n".join(system).strip(), rest

    def _build_request(self, messages, json_mode):
        # No JSON mode on the Messages API; the system prompt asks for JSON.
        system, conversation = self._split_system(messages)
        payload: dict[str, Any] = {
            "model": self._model,
            "max_tokens": self.max_tokens,
            "messages": conversation,
            "stream": True,
        }
        if system:
            payload["system"] = system
        headers = {
            "x-api-key": self._api_key,
            "anthropic-version": "2023-06-01",
            "content-type": "application/json",
        }
        return f"{self.base_url}/v1/messages", headers, payload

    def _read_line(self, line: str) -> LineResult:
        data_str = _sse_data(line)
        if data_str is None:
            return _NOTHING
        try:
            data = json.loads(data_str)
        except json.JSONDecodeError:
            logger.debug("Skipping unreadable Anthropic stream line: %.80s", line)
            return _NOTHING

        event_type = data.get("type", "")
        if event_type == "content_block_delta":
            return data.get("delta", {}).get("text", ""), False
        if event_type == "message_stop":
            return _FINISHED
        return _NOTHING


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

PROVIDERS: dict[str, type[HTTPStreamingProvider]] = {
    OllamaProvider.provider_name: OllamaProvider,
    OpenAIProvider.provider_name: OpenAIProvider,
    AnthropicProvider.provider_name: AnthropicProvider,
}


def create_provider(
    provider: str,
    *,
    model: str,
    api_key: str = "",
    base_url: str | None = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> LLMProvider:
    """Create an LLM provider instance.

    Raises
    ------
    ValueError
        If *provider* is unknown or a hosted provider has no API key.
    """
    provider_cls = PROVIDERS.get(provider)
    if provider_cls is None:
        raise ValueError(f"Unknown provider: {provider}")
    return provider_cls(model, api_key=api_key, base_url=base_url, timeout=timeout)
