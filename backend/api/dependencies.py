from fastapi import HTTPException

from analyzer.pipeline import AnalysisPipeline
from services.analysis_service import build_pipeline


def get_analysis_pipeline() -> AnalysisPipeline:
    # One pipeline per request: its policy cache must not outlive the job.
    try:
        return build_pipeline()
    except ValueError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
