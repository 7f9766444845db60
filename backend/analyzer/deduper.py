"""Entity deduplicator.

Overlapping chunks routinely report the same finding more than once.  Each
entity is reduced to a shape-specific identity key and, per key, only the
entity with the highest confidence survives:

  - UNSTRUCTURED: the matched excerpt (case-folded unless case sensitive)
  - SPREADSHEET:  ``sheet:range1,range2`` with ranges sorted
  - JSON / CSV:   the structural path, verbatim

Ties keep the first entity seen, and the output follows first-seen key order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Iterable

from schemas.entities import (
    ContentShape,
    CsvEntity,
    JsonEntity,
    SensitiveEntity,
    SpreadsheetEntity,
    UnstructuredEntity,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeduplicationConfig:
    case_sensitive: bool = False


def _dedupe_by_key(
    entities: Iterable[SensitiveEntity],
    key_of: Callable[[Any], str],
) -> list[SensitiveEntity]:
    best: dict[str, SensitiveEntity] = {}
    for entity in entities:
        key = key_of(entity)
        kept = best.get(key)
        if kept is None or kept.confidence < entity.confidence:
            best[key] = entity
    return list(best.values())


class Deduplicator:
    """Collapse duplicate findings reported by independent chunks."""

    def __init__(self, config: DeduplicationConfig | None = None) -> None:
        self._config = config or DeduplicationConfig()

    @property
    def config(self) -> DeduplicationConfig:
        return self._config

    def with_config(self, **changes: Any) -> Deduplicator:
        """Return a new deduplicator with *changes* applied to the current config."""
        return Deduplicator(replace(self._config, **changes))

    def identity_key(self, entity: SensitiveEntity) -> str:
        if isinstance(entity, UnstructuredEntity):
            return entity.excerpt if self._config.case_sensitive else entity.excerpt.lower()
        if isinstance(entity, SpreadsheetEntity):
            return f"{entity.sheet_name}:{','.join(sorted(entity.cell_ranges))}"
        if isinstance(entity, (JsonEntity, CsvEntity)):
            return entity.path
        raise TypeError(f"Unknown entity type: {type(entity).__name__}")

    def remove_duplicates(
        self,
        entities: list[SensitiveEntity],
        shape: ContentShape | str,
    ) -> list[SensitiveEntity]:
        """Return *entities* with duplicates removed for the given *shape*.

        Entities of another shape are left out; an unknown *shape* returns
        the input unchanged.
        """
        try:
            shape = ContentShape(shape)
        except ValueError:
            logger.warning("Unknown analysis type %r, skipping deduplication", shape)
            return list(entities)

        matching = [e for e in entities if getattr(e, "shape", None) is shape]
        if len(matching) != len(entities):
            logger.warning(
                "Expected %d %s entities, but only %d matched the type",
                len(entities), shape.value, len(matching),
            )
        return _dedupe_by_key(matching, self.identity_key)

    @staticmethod
    def get_stats(
        original: list[SensitiveEntity],
        deduplicated: list[SensitiveEntity],
    ) -> dict[str, float]:
        removed = len(original) - len(deduplicated)
        return {
            "original": len(original),
            "deduplicated": len(deduplicated),
            "removed": removed,
            "removal_rate": removed / len(original) if original else 0,
        }
