from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Union

from analyzer.errors import EntityShapeError

_HEX_COLOR_RE = re.compile(r"^#?[0-9A-Fa-f]{6}$")


class ContentShape(str, Enum):
    """Structural kind of the analysed content."""

    UNSTRUCTURED = "UNSTRUCTURED"
    SPREADSHEET = "SPREADSHEET"
    JSON = "JSON"
    CSV = "CSV"


@dataclass(frozen=True)
class Chunk:
    """A bounded slice of job content.

    ``offset`` is a character offset for unstructured text, the starting
    column index for CSV/spreadsheet content, and an approximate ordinal
    position for JSON fragments.
    """

    id: str
    text: str
    offset: int
    shape: ContentShape

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "offset": self.offset,
            "analysisType": self.shape.value,
        }


# ---------------------------------------------------------------------------
# Sensitive entities
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SensitiveEntity:
    """Fields shared by every finding, whatever the content shape."""

    shape: ClassVar[ContentShape]

    label: str
    policy_reference: str
    confidence: float
    severity_hex: str
    category: str

    def to_payload(self) -> dict[str, Any]:
        return {
            "entity": self.label,
            "reference": self.policy_reference,
            "confidence": self.confidence,
            "rankHex": self.severity_hex,
            "category": self.category,
        }


@dataclass(frozen=True)
class UnstructuredEntity(SensitiveEntity):
    shape: ClassVar[ContentShape] = ContentShape.UNSTRUCTURED

    excerpt: str

    def to_payload(self) -> dict[str, Any]:
        return {**super().to_payload(), "text": self.excerpt}


@dataclass(frozen=True)
class SpreadsheetEntity(SensitiveEntity):
    shape: ClassVar[ContentShape] = ContentShape.SPREADSHEET

    cell_ranges: tuple[str, ...]
    sheet_name: str

    def to_payload(self) -> dict[str, Any]:
        return {
            **super().to_payload(),
            "ranges": list(self.cell_ranges),
            "sheetName": self.sheet_name,
        }


@dataclass(frozen=True)
class JsonEntity(SensitiveEntity):
    shape: ClassVar[ContentShape] = ContentShape.JSON

    path: str

    def to_payload(self) -> dict[str, Any]:
        return {**super().to_payload(), "path": self.path}


@dataclass(frozen=True)
class CsvEntity(SensitiveEntity):
    shape: ClassVar[ContentShape] = ContentShape.CSV

    path: str

    def to_payload(self) -> dict[str, Any]:
        return {**super().to_payload(), "path": self.path}


AnyEntity = Union[UnstructuredEntity, SpreadsheetEntity, JsonEntity, CsvEntity]

ENTITY_TYPES: dict[ContentShape, type[SensitiveEntity]] = {
    ContentShape.UNSTRUCTURED: UnstructuredEntity,
    ContentShape.SPREADSHEET: SpreadsheetEntity,
    ContentShape.JSON: JsonEntity,
    ContentShape.CSV: CsvEntity,
}


def _require_str(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise EntityShapeError(f"Entity field '{key}' must be a string")
    return value


def entity_from_payload(data: dict[str, Any], shape: ContentShape) -> SensitiveEntity:
    """Build the entity variant for *shape* from a wire-format dict.

    Raises
    ------
    EntityShapeError
        If a required field is missing or has the wrong type, the confidence
        is outside 0-10, or ``rankHex`` is not a 6-digit hex colour.
    """
    if not isinstance(data, dict):
        raise EntityShapeError("Entity payload must be an object")

    confidence = data.get("confidence")
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        raise EntityShapeError("Entity field 'confidence' must be a number")
    if not 0 <= confidence <= 10:
        raise EntityShapeError(f"Entity confidence {confidence} is outside 0-10")

    severity_hex = _require_str(data, "rankHex")
    if not _HEX_COLOR_RE.match(severity_hex):
        raise EntityShapeError(f"Invalid rankHex colour: {severity_hex!r}")

    base = dict(
        label=_require_str(data, "entity"),
        policy_reference=_require_str(data, "reference"),
        confidence=confidence,
        severity_hex=severity_hex,
        category=_require_str(data, "category"),
    )

    if shape is ContentShape.UNSTRUCTURED:
        return UnstructuredEntity(**base, excerpt=_require_str(data, "text"))

    if shape is ContentShape.SPREADSHEET:
        ranges = data.get("ranges")
        if not isinstance(ranges, list) or not all(isinstance(r, str) for r in ranges):
            raise EntityShapeError("Entity field 'ranges' must be a list of strings")
        return SpreadsheetEntity(
            **base,
            cell_ranges=tuple(ranges),
            sheet_name=_require_str(data, "sheetName"),
        )

    if shape is ContentShape.JSON:
        return JsonEntity(**base, path=_require_str(data, "path"))

    if shape is ContentShape.CSV:
        return CsvEntity(**base, path=_require_str(data, "path"))

    raise EntityShapeError(f"Unsupported analysis type: {shape}")


# ---------------------------------------------------------------------------
# Jobs and results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PolicyDocument:
    title: str
    snippet: str


@dataclass(frozen=True)
class PolicyRef:
    """A privacy policy selected for the analysis."""

    id: str
    name: str
    documents: tuple[PolicyDocument, ...] = ()


@dataclass(frozen=True)
class ProcessingJob:
    content: str
    shape: ContentShape
    policies: tuple[PolicyRef, ...]


@dataclass(frozen=True)
class AnalysisStats:
    chunks_generated: int
    entities_found: int
    entities_validated: int
    entities_deduplicated: int
    processing_time_ms: float

    def to_payload(self) -> dict[str, Any]:
        return {
            "chunksGenerated": self.chunks_generated,
            "entitiesFound": self.entities_found,
            "entitiesValidated": self.entities_validated,
            "entitiesDeduplicated": self.entities_deduplicated,
            "processingTimeMs": self.processing_time_ms,
        }


@dataclass(frozen=True)
class PipelineResult:
    entities: list[SensitiveEntity]
    chunks: list[Chunk]
    stats: AnalysisStats


# ---------------------------------------------------------------------------
# Stream events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ThinkingEvent:
    """Partial findings for one chunk, forwarded while the identifier works."""

    chunk_id: str
    entities: list[dict[str, Any]]
    timestamp: int
    type: ClassVar[str] = "thinking"

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "chunkId": self.chunk_id,
            "entities": self.entities,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class CompleteEvent:
    entities: list[SensitiveEntity]
    stats: AnalysisStats
    type: ClassVar[str] = "complete"

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "entities": [e.to_payload() for e in self.entities],
            "stats": self.stats.to_payload(),
        }


@dataclass(frozen=True)
class ErrorEvent:
    message: str
    type: ClassVar[str] = "error"

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.type, "message": self.message}


StreamEvent = Union[ThinkingEvent, CompleteEvent, ErrorEvent]
