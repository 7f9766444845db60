from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from schemas.entities import ContentShape, PolicyDocument, PolicyRef, ProcessingJob


# --- Policy Schemas ---

class PolicyDocumentIn(BaseModel):
    title: str = ""
    snippet: str = ""


class PolicyIn(BaseModel):
    id: Any = None
    name: Any = None
    documents: list[PolicyDocumentIn] | None = None

    def is_valid(self) -> bool:
        return (
            isinstance(self.id, str) and bool(self.id.strip())
            and isinstance(self.name, str) and bool(self.name.strip())
        )

    def to_policy_ref(self) -> PolicyRef:
        return PolicyRef(
            id=self.id,
            name=self.name,
            documents=tuple(
                PolicyDocument(title=doc.title, snippet=doc.snippet)
                for doc in self.documents or []
            ),
        )


# --- Analysis Schemas ---

class AnalyzeRequest(BaseModel):
    """Body of ``POST /api/analyze``.

    Fields are loose so the route can answer malformed
    requests with a 400 and a readable message instead of a 422.
    """

    content: str | None = None
    analysis_type: str | None = Field(None, alias="analysisType")
    policies: list[PolicyIn] | None = None

    model_config = {"populate_by_name": True}

    def to_job(self) -> ProcessingJob:
        return ProcessingJob(
            content=self.content or "",
            shape=ContentShape(self.analysis_type),
            policies=tuple(policy.to_policy_ref() for policy in self.policies or []),
        )


class HealthResponse(BaseModel):
    status: str
    timestamp: str
