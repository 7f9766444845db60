from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Sequence

from analyzer.chunker import Chunker
from analyzer.deduper import Deduplicator
from analyzer.errors import AnalysisError, ChunkTaskError, EntityShapeError, InvalidJobError
from analyzer.validator import EntityValidator
from llm.identifier import EntityIdentifier
from llm.policy_formatter import format_policies
from schemas.entities import (
    AnalysisStats,
    Chunk,
    CompleteEvent,
    ContentShape,
    ErrorEvent,
    PipelineResult,
    PolicyRef,
    ProcessingJob,
    SensitiveEntity,
    StreamEvent,
    ThinkingEvent,
)

logger = logging.getLogger(__name__)

EventSink = Callable[[StreamEvent], None]
PolicyFormatter = Callable[[Sequence[PolicyRef]], str]

DEFAULT_MAX_CONCURRENCY = 5


class JobStage(str, Enum):
    VALIDATING_INPUT = "validating_input"
    CHUNKING = "chunking"
    IDENTIFYING = "identifying"
    # per chunk, after identification
    VALIDATING = "validating"
    COLLECTING = "collecting"
    DEDUPLICATING = "deduplicating"
    DONE = "done"
    ERRORED = "errored"


@dataclass
class _ChunkOutcome:
    found: int
    validated: list[SensitiveEntity]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _ignore_event(event: StreamEvent) -> None:
    return None


class AnalysisPipeline:
    """Top-level orchestrator for one sensitive-content analysis.

    Typical flow
    ------------
    1. **Validation** -- the job is checked before any work is started.
    2. **Chunking** -- content is split once according to its shape.
    3. **Identification** -- each chunk goes to the identifier on a bounded
       pool; partial findings are streamed as ``thinking`` events and each
       chunk's results are validated as soon as they arrive.
    4. **Deduplication** -- the union of validated entities is reduced once
       and reported in a single ``complete`` event.

    Any failure aborts the whole job with exactly one ``error`` event;
    there are no partial results.

    The pipeline owns a policy-text cache that lives as long as the
    instance, keyed on the set of policy ids.
    """

    def __init__(
        self,
        identifier: EntityIdentifier,
        *,
        chunker: Chunker | None = None,
        validator: EntityValidator | None = None,
        deduplicator: Deduplicator | None = None,
        policy_formatter: PolicyFormatter = format_policies,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ) -> None:
        self._identifier = identifier
        self._chunker = chunker or Chunker()
        self._validator = validator or EntityValidator()
        self._deduplicator = deduplicator or Deduplicator()
        self._format_policies = policy_formatter
        self._max_concurrency = max(1, int(max_concurrency))
        self._policy_cache: dict[tuple[str, ...], str] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def execute(
        self,
        job: ProcessingJob,
        on_event: EventSink | None = None,
    ) -> PipelineResult:
        """Run the full analysis for *job*.

        Returns
        -------
        PipelineResult
            Final entities, the chunks that were analysed and run statistics.

        Raises
        ------
        AnalysisError
            On any fatal condition, after a single ``error`` event was sent.
        """
        emit = on_event or _ignore_event
        started = time.perf_counter()
        stage = JobStage.VALIDATING_INPUT

        try:
            shape = self._validate_job(job)

            stage = self._advance(stage, JobStage.CHUNKING)
            chunks = self._chunker.create_chunks(shape, job.content)
            policy_text = self._policy_text(job.policies)
            logger.info(
                "Sensitive analysis started: %s content, %d chunks, %d policies",
                shape.value, len(chunks), len(job.policies),
            )

            stage = self._advance(stage, JobStage.IDENTIFYING)
            outcomes = await self._identify_all(chunks, policy_text, shape, emit)

            stage = self._advance(stage, JobStage.DEDUPLICATING)
            validated = [entity for outcome in outcomes for entity in outcome.validated]
            entities = (
                self._deduplicator.remove_duplicates(validated, shape) if validated else []
            )

            stats = AnalysisStats(
                chunks_generated=len(chunks),
                entities_found=sum(outcome.found for outcome in outcomes),
                entities_validated=len(validated),
                entities_deduplicated=len(entities),
                processing_time_ms=round((time.perf_counter() - started) * 1000, 3),
            )
        except Exception as exc:
            self._advance(stage, JobStage.ERRORED)
            error = exc if isinstance(exc, AnalysisError) else AnalysisError(str(exc))
            logger.error(
                "Sensitive analysis failed during %s: %s (content length %d, %d policies)",
                stage.value, exc, len(job.content) if isinstance(job.content, str) else 0,
                len(job.policies or ()),
            )
            emit(ErrorEvent(message=f"Sensitive analysis failed: {error}"))
            if error is exc:
                raise
            raise error from exc

        self._advance(stage, JobStage.DONE)
        logger.info(
            "Sensitive analysis complete: %d chunks, %d found, %d validated, %d final (%.0f ms)",
            stats.chunks_generated,
            stats.entities_found,
            stats.entities_validated,
            stats.entities_deduplicated,
            stats.processing_time_ms,
        )
        emit(CompleteEvent(entities=entities, stats=stats))
        return PipelineResult(entities=entities, chunks=chunks, stats=stats)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    @staticmethod
    def _advance(current: JobStage, new: JobStage, chunk_index: int | None = None) -> JobStage:
        if chunk_index is None:
            logger.debug("Analysis stage %s -> %s", current.value, new.value)
        else:
            logger.debug("Chunk %d stage %s -> %s", chunk_index + 1, current.value, new.value)
        return new

    @staticmethod
    def _validate_job(job: ProcessingJob) -> ContentShape:
        if not isinstance(job.content, str) or not job.content:
            raise InvalidJobError("Content is required for analysis")

        try:
            shape = ContentShape(job.shape)
        except ValueError:
            raise InvalidJobError(f"Unsupported analysis type: {job.shape}") from None

        if not job.policies:
            raise InvalidJobError("At least one policy is required")
        for policy in job.policies:
            if not (policy.id or "").strip() or not (policy.name or "").strip():
                raise InvalidJobError("Every policy needs a non-empty id and name")

        return shape

    def _policy_text(self, policies: Sequence[PolicyRef]) -> str:
        key = tuple(sorted({policy.id for policy in policies}))
        cached = self._policy_cache.get(key)
        if cached is None:
            cached = self._format_policies(policies)
            self._policy_cache[key] = cached
        return cached

    async def _identify_all(
        self,
        chunks: list[Chunk],
        policy_text: str,
        shape: ContentShape,
        emit: EventSink,
    ) -> list[_ChunkOutcome]:
        """Process every chunk on a bounded pool, in completion order.

        The first failing chunk cancels the others and fails the job.
        """
        slots = asyncio.Semaphore(self._max_concurrency)
        tasks = [
            asyncio.ensure_future(
                self._process_chunk(index, chunk, policy_text, shape, emit, slots)
            )
            for index, chunk in enumerate(chunks)
        ]

        outcomes: list[_ChunkOutcome] = []
        try:
            for finished in asyncio.as_completed(tasks):
                outcomes.append(await finished)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
        return outcomes

    async def _process_chunk(
        self,
        index: int,
        chunk: Chunk,
        policy_text: str,
        shape: ContentShape,
        emit: EventSink,
        slots: asyncio.Semaphore,
    ) -> _ChunkOutcome:
        def forward_partial(entities: list[dict]) -> None:
            emit(ThinkingEvent(chunk_id=chunk.id, entities=entities, timestamp=_now_ms()))

        async with slots:
            try:
                entities = await self._identifier.identify(
                    chunk.text, policy_text, shape, forward_partial
                )
                for entity in entities:
                    if getattr(entity, "shape", None) is not shape:
                        raise EntityShapeError(
                            f"{type(entity).__name__} returned for {shape.value} content"
                        )
                stage = self._advance(JobStage.IDENTIFYING, JobStage.VALIDATING, index)
                validated = self._validator.validate_entities(entities)
                self._advance(stage, JobStage.COLLECTING, index)
            except Exception as exc:
                logger.error("Error processing chunk %d: %s", index + 1, exc)
                raise ChunkTaskError(index, exc) from exc

        return _ChunkOutcome(found=len(entities), validated=validated)
