from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator

from analyzer.chunker import Chunker, ChunkingOptions
from analyzer.deduper import DeduplicationConfig, Deduplicator
from analyzer.errors import AnalysisError
from analyzer.pipeline import AnalysisPipeline
from analyzer.validator import EntityValidator, ValidationConfig
from config import Settings, get_settings
from llm.client import get_llm_client
from llm.identifier import EntityIdentifier, LLMEntityIdentifier
from schemas.entities import ProcessingJob, StreamEvent

logger = logging.getLogger(__name__)


def build_pipeline(
    identifier: EntityIdentifier | None = None,
    settings: Settings | None = None,
) -> AnalysisPipeline:
    """Assemble an ``AnalysisPipeline`` configured from *settings*.

    Without an explicit *identifier* the default LLM provider is used.
    """
    settings = settings or get_settings()
    if identifier is None:
        identifier = LLMEntityIdentifier(get_llm_client(settings=settings))

    return AnalysisPipeline(
        identifier,
        chunker=Chunker(
            ChunkingOptions(
                chunk_size=settings.chunk_size,
                overlap=settings.chunk_overlap,
                column_chunk_size=settings.column_chunk_size,
            )
        ),
        validator=EntityValidator(
            ValidationConfig(
                minimum_confidence=settings.minimum_confidence,
                strict_mode=settings.strict_mode,
            )
        ),
        deduplicator=Deduplicator(
            DeduplicationConfig(case_sensitive=settings.dedup_case_sensitive)
        ),
        max_concurrency=settings.max_concurrent_chunks,
    )


async def stream_analysis(
    pipeline: AnalysisPipeline,
    job: ProcessingJob,
) -> AsyncIterator[StreamEvent]:
    """Run *job* in the background and yield its events as they happen.

    The stream ends after the terminal ``complete`` or ``error`` event.
    Closing the iterator early cancels the running analysis; results of
    identifier calls still in flight are discarded.
    """
    queue: asyncio.Queue[StreamEvent | None] = asyncio.Queue()

    async def run() -> None:
        try:
            await pipeline.execute(job, queue.put_nowait)
        except AnalysisError as exc:
            # Already reported to the stream as an error event.
            logger.debug("Analysis stream ended with error: %s", exc)
        finally:
            queue.put_nowait(None)

    task = asyncio.create_task(run())
    try:
        while True:
            event = await queue.get()
            if event is None:
                break
            yield event
    finally:
        if not task.done():
            logger.info("Analysis stream closed early, cancelling job")
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
