"""Sensitive analysis endpoint.

POST /api/analyze: stream the analysis of one piece of content as SSE.
"""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, HTTPException
from sse_starlette.sse import EventSourceResponse

from analyzer.pipeline import AnalysisPipeline
from api.dependencies import get_analysis_pipeline
from schemas.api import AnalyzeRequest
from schemas.entities import ContentShape
from services.analysis_service import stream_analysis

logger = logging.getLogger(__name__)
router = APIRouter()

VALID_ANALYSIS_TYPES = {shape.value for shape in ContentShape}


@router.post("/analyze")
async def analyze(
    body: AnalyzeRequest,
    pipeline: AnalysisPipeline = Depends(get_analysis_pipeline),
):
    """Analyze content for sensitive entities and stream the progress.

    The SSE stream emits ``data`` frames carrying:
    - {"type": "thinking", "chunkId": ..., "entities": [...], "timestamp": ...}
    - {"type": "complete", "entities": [...], "stats": {...}}
    - {"type": "error", "message": "..."}

    Exactly one ``complete`` or ``error`` frame ends the stream.
    """
    if not body.content or not body.content.strip():
        raise HTTPException(status_code=400, detail="Content is required for analysis")

    if not body.policies or not all(policy.is_valid() for policy in body.policies):
        raise HTTPException(status_code=400, detail="At least one valid policy must be selected")

    if body.analysis_type not in VALID_ANALYSIS_TYPES:
        raise HTTPException(status_code=400, detail="Valid analysis type is required")

    job = body.to_job()

    async def event_generator():
        try:
            async for event in stream_analysis(pipeline, job):
                yield {"data": json.dumps(event.to_payload())}
        except Exception:
            logger.exception("Error in analysis SSE stream")
            # Never expose raw exception details to the client.
            yield {
                "data": json.dumps({
                    "type": "error",
                    "message": "An error occurred during analysis. Check server logs for details.",
                }),
            }

    return EventSourceResponse(event_generator())
