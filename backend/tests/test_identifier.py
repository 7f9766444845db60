"""Tests for llm.identifier: streaming identification through an LLM provider."""

from __future__ import annotations

import json
from typing import AsyncIterator

import httpx
import pytest

from analyzer.errors import IdentifierError
from llm.identifier import (
    LLMEntityIdentifier,
    extract_partial_entities,
    parse_entities_response,
)
from llm.prompts import SYSTEM_PROMPT, get_analysis_prompt
from llm.providers import LLMProvider
from schemas.entities import ContentShape, JsonEntity, UnstructuredEntity

SSN = {
    "entity": "Social Security Number",
    "reference": "CCPA 1798.140(ae)",
    "confidence": 9,
    "rankHex": "#FF0000",
    "category": "government_id",
    "text": "123-45-6789",
}
EMAIL = {
    "entity": "Email Address",
    "reference": "CCPA 1798.140(v)",
    "confidence": 8,
    "rankHex": "#FFA500",
    "category": "contact",
    "text": "john.smith@email.com",
}


class FakeProvider(LLMProvider):
    """Provider that replays a fixed answer in small pieces."""

    provider_name = "fake"

    def __init__(self, answer: str = "", piece_size: int = 7, error: Exception | None = None):
        super().__init__()
        self._answer = answer
        self._piece_size = piece_size
        self._error = error
        self.requests: list[dict] = []

    @property
    def model_name(self) -> str:
        return "fake-model"

    async def chat(self, messages, json_mode=False) -> AsyncIterator[str]:
        self.requests.append({"messages": messages, "json_mode": json_mode})
        if self._error is not None:
            raise self._error
        for start in range(0, len(self._answer), self._piece_size):
            yield self._answer[start:start + self._piece_size]


# -----------------------------------------------------------------------
# Partial extraction
# -----------------------------------------------------------------------


class TestExtractPartialEntities:

    def test_no_entities_key_yet(self):
        assert extract_partial_entities('{"entit') == []

    def test_ignores_incomplete_trailing_object(self):
        full = json.dumps({"entities": [SSN, EMAIL]})
        cut = full.index('"Email Address"')
        assert extract_partial_entities(full[:cut]) == [SSN]

    def test_complete_document(self):
        assert extract_partial_entities(json.dumps({"entities": [SSN, EMAIL]})) == [SSN, EMAIL]

    def test_braces_inside_strings(self):
        tricky = {**SSN, "text": "value with } and ] inside"}
        buffer = json.dumps({"entities": [tricky]})
        assert extract_partial_entities(buffer) == [tricky]

    def test_empty_array(self):
        assert extract_partial_entities('{"entities": []}') == []


# -----------------------------------------------------------------------
# Final parsing
# -----------------------------------------------------------------------


class TestParseEntitiesResponse:

    def test_parses_typed_entities(self):
        entities = parse_entities_response(json.dumps({"entities": [SSN]}), ContentShape.UNSTRUCTURED)
        assert entities == [
            UnstructuredEntity(
                label="Social Security Number",
                policy_reference="CCPA 1798.140(ae)",
                confidence=9,
                severity_hex="#FF0000",
                category="government_id",
                excerpt="123-45-6789",
            )
        ]

    def test_strips_code_fences(self):
        answer = "```json\n" + json.dumps({"entities": [{**SSN, "path": "user.ssn"}]}) + "\n```"
        entities = parse_entities_response(answer, ContentShape.JSON)
        assert isinstance(entities[0], JsonEntity)
        assert entities[0].path == "user.ssn"

    def test_empty_entities(self):
        assert parse_entities_response('{"entities": []}', ContentShape.CSV) == []

    @pytest.mark.parametrize(
        "answer, message",
        [
            ("not json at all", "Invalid JSON"),
            ('{"results": []}', "no 'entities' list"),
            ('["entities"]', "no 'entities' list"),
            (json.dumps({"entities": [{**SSN, "confidence": 42}]}), "Malformed entity"),
        ],
    )
    def test_bad_answers(self, answer: str, message: str):
        with pytest.raises(IdentifierError, match=message):
            parse_entities_response(answer, ContentShape.UNSTRUCTURED)


# -----------------------------------------------------------------------
# Prompts
# -----------------------------------------------------------------------


class TestPrompts:

    @pytest.mark.parametrize("shape", list(ContentShape))
    def test_prompt_embeds_policies_and_extract(self, shape: ContentShape):
        prompt = get_analysis_prompt(shape, policies="CCPA Privacy Policy.", extract="a,b\n1,2")
        assert "CCPA Privacy Policy." in prompt
        assert "a,b\n1,2" in prompt
        assert "confidence" in prompt

    def test_extract_with_braces_is_kept_verbatim(self):
        prompt = get_analysis_prompt(ContentShape.JSON, policies="p", extract='{"user": {"id": 1}}')
        assert '{"user": {"id": 1}}' in prompt


# -----------------------------------------------------------------------
# LLMEntityIdentifier
# -----------------------------------------------------------------------


class TestLLMEntityIdentifier:

    @pytest.mark.asyncio
    async def test_identify_streams_partials_and_returns_entities(self):
        provider = FakeProvider(json.dumps({"entities": [SSN, EMAIL]}))
        identifier = LLMEntityIdentifier(provider)
        snapshots: list[list[dict]] = []

        entities = await identifier.identify(
            "Call John at john.smith@email.com, SSN 123-45-6789",
            "CCPA Privacy Policy.",
            ContentShape.UNSTRUCTURED,
            snapshots.append,
        )

        assert [e.excerpt for e in entities] == ["123-45-6789", "john.smith@email.com"]
        assert snapshots == [[SSN], [SSN, EMAIL]]

    @pytest.mark.asyncio
    async def test_request_uses_json_mode_and_prompts(self):
        provider = FakeProvider('{"entities": []}')
        await LLMEntityIdentifier(provider).identify("chunk text", "policy text", ContentShape.CSV)

        request = provider.requests[0]
        assert request["json_mode"] is True
        system, user = request["messages"]
        assert system == {"role": "system", "content": SYSTEM_PROMPT}
        assert user["content"] == get_analysis_prompt(
            ContentShape.CSV, policies="policy text", extract="chunk text"
        )

    @pytest.mark.asyncio
    async def test_no_partials_for_empty_answer(self):
        snapshots: list = []
        entities = await LLMEntityIdentifier(FakeProvider('{"entities": []}')).identify(
            "x", "p", ContentShape.UNSTRUCTURED, snapshots.append
        )
        assert entities == []
        assert snapshots == []

    @pytest.mark.asyncio
    async def test_http_status_error_is_wrapped(self):
        request = httpx.Request("POST", "https://api.example.test/v1/chat")
        response = httpx.Response(429, request=request)
        error = httpx.HTTPStatusError("rate limited", request=request, response=response)

        with pytest.raises(IdentifierError, match="HTTP 429"):
            await LLMEntityIdentifier(FakeProvider(error=error)).identify(
                "x", "p", ContentShape.UNSTRUCTURED
            )

    @pytest.mark.asyncio
    async def test_connection_error_is_wrapped(self):
        error = httpx.ConnectError("connection refused")
        with pytest.raises(IdentifierError, match="Cannot reach fake"):
            await LLMEntityIdentifier(FakeProvider(error=error)).identify(
                "x", "p", ContentShape.UNSTRUCTURED
            )

    @pytest.mark.asyncio
    async def test_malformed_answer_is_an_identifier_error(self):
        with pytest.raises(IdentifierError):
            await LLMEntityIdentifier(FakeProvider('{"entities": [{"entity": "x"}]}')).identify(
                "x", "p", ContentShape.UNSTRUCTURED
            )
