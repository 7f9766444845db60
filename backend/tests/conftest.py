from __future__ import annotations

import asyncio
import os
from typing import Callable

import pytest

from llm.identifier import EntityIdentifier, PartialCallback
from schemas.entities import ContentShape, PolicyDocument, PolicyRef, ProcessingJob, SensitiveEntity

# Keep the LLM factory usable without real credentials
os.environ.setdefault("OPENAI_API_KEY", "sk-test-key-for-development-only-000000")


class ScriptedIdentifier(EntityIdentifier):
    """Identifier double that answers from a callable and records its calls.

    ``respond(chunk_text)`` returns the entities for a chunk or raises to
    simulate an identifier failure.  Each answer is reported once through
    ``on_partial`` before it is returned.
    """

    def __init__(
        self,
        respond: Callable[[str], list[SensitiveEntity]],
        delay: float = 0.0,
    ) -> None:
        self._respond = respond
        self._delay = delay
        self.calls: list[tuple[str, str, ContentShape]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def identify(
        self,
        chunk_text: str,
        policy_text: str,
        shape: ContentShape,
        on_partial: PartialCallback | None = None,
    ) -> list[SensitiveEntity]:
        self.calls.append((chunk_text, policy_text, shape))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self._delay)
            entities = self._respond(chunk_text)
            if on_partial is not None and entities:
                on_partial([entity.to_payload() for entity in entities])
            return entities
        finally:
            self.in_flight -= 1


@pytest.fixture
def scripted_identifier():
    """Factory for ``ScriptedIdentifier`` instances."""
    return ScriptedIdentifier


@pytest.fixture
def privacy_policy() -> PolicyRef:
    """A realistic policy record with two document sections."""
    return PolicyRef(
        id="policy-ccpa",
        name="CCPA",
        documents=(
            PolicyDocument(
                title="1798.140(v)",
                snippet="Personal information means information that identifies a consumer.",
            ),
            PolicyDocument(
                title="1798.140(ae)",
                snippet="Sensitive personal information includes a social security number.",
            ),
        ),
    )


@pytest.fixture
def sample_text() -> str:
    """A short unstructured document containing personal data."""
    return (
        "Customer John Smith (john.smith@email.com) called on March 15, 2025 "
        "about invoice 4471. His SSN 123-45-6789 was read out on the call."
    )


@pytest.fixture
def text_job(sample_text: str, privacy_policy: PolicyRef) -> ProcessingJob:
    return ProcessingJob(
        content=sample_text,
        shape=ContentShape.UNSTRUCTURED,
        policies=(privacy_policy,),
    )
