"""Sensitive-entity identification via an LLM provider.

The model is asked for ``{"entities": [...]}``.  While the answer streams
in, every complete object already present in the ``entities`` array is
reported through ``on_partial`` so callers can show findings before the
chunk is done.  The final text is parsed into typed entities for the
chunk's content shape.
"""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Callable

import httpx

from analyzer.errors import EntityShapeError, IdentifierError
from llm.prompts import SYSTEM_PROMPT, get_analysis_prompt
from llm.providers import LLMProvider
from schemas.entities import ContentShape, SensitiveEntity, entity_from_payload

logger = logging.getLogger(__name__)

PartialCallback = Callable[[list[dict[str, Any]]], None]

_DECODER = json.JSONDecoder()
_CODE_FENCE_RE = re.compile(r"^\s*```(?:json)?\s*(.*?)\s*```\s*$", re.DOTALL)
_ENTITIES_KEY_RE = re.compile(r'"entities"\s*:\s*\[')


class EntityIdentifier(ABC):
    """Finds sensitive entities in one chunk of text."""

    @abstractmethod
    async def identify(
        self,
        chunk_text: str,
        policy_text: str,
        shape: ContentShape,
        on_partial: PartialCallback | None = None,
    ) -> list[SensitiveEntity]:
        """Return the entities found in *chunk_text*, shaped for *shape*.

        ``on_partial`` receives snapshots of the entities found so far
        while the work is in progress.
        """
        ...


def extract_partial_entities(buffer: str) -> list[dict[str, Any]]:
    """Return the complete objects of the ``entities`` array in *buffer*.

    *buffer* may be a truncated JSON document; a trailing object that is
    still being written is ignored.
    """
    match = _ENTITIES_KEY_RE.search(buffer)
    if match is None:
        return []

    items: list[dict[str, Any]] = []
    pos = match.end()
    while True:
        while pos < len(buffer) and buffer[pos] in " \t\r\n,":
            pos += 1
        if pos >= len(buffer) or buffer[pos] == "]":
            break
        try:
            item, pos = _DECODER.raw_decode(buffer, pos)
        except json.JSONDecodeError:
            break
        if isinstance(item, dict):
            items.append(item)
    return items


def parse_entities_response(text: str, shape: ContentShape) -> list[SensitiveEntity]:
    """Parse a complete model answer into entities for *shape*.

    Raises
    ------
    IdentifierError
        If the answer is not a JSON object with an ``entities`` list, or an
        entity does not fit *shape*.
    """
    fenced = _CODE_FENCE_RE.match(text)
    if fenced:
        text = fenced.group(1)

    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise IdentifierError(f"Invalid JSON response from model: {exc}") from exc

    if not isinstance(data, dict) or not isinstance(data.get("entities"), list):
        raise IdentifierError("Model response has no 'entities' list")

    try:
        return [entity_from_payload(item, shape) for item in data["entities"]]
    except EntityShapeError as exc:
        raise IdentifierError(f"Malformed entity in model response: {exc}") from exc


class LLMEntityIdentifier(EntityIdentifier):
    """Identifier backed by a streaming chat-completion provider."""

    def __init__(self, provider: LLMProvider) -> None:
        self._provider = provider

    async def identify(
        self,
        chunk_text: str,
        policy_text: str,
        shape: ContentShape,
        on_partial: PartialCallback | None = None,
    ) -> list[SensitiveEntity]:
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {
                "role": "user",
                "content": get_analysis_prompt(shape, policies=policy_text, extract=chunk_text),
            },
        ]

        pieces: list[str] = []
        reported = 0
        try:
            async for piece in self._provider.chat(messages, json_mode=True):
                pieces.append(piece)
                if on_partial is None:
                    continue
                partial = extract_partial_entities("".join(pieces))
                if len(partial) > reported:
                    reported = len(partial)
                    on_partial(partial)
        except httpx.HTTPStatusError as exc:
            raise IdentifierError(
                f"{self._provider.provider_name} returned HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise IdentifierError(
                f"Cannot reach {self._provider.provider_name}: {exc}"
            ) from exc

        entities = parse_entities_response("".join(pieces), shape)
        logger.debug(
            "%s/%s identified %d entities",
            self._provider.provider_name, self._provider.model_name, len(entities),
        )
        return entities
