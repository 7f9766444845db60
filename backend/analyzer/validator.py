from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Iterable

from schemas.entities import SensitiveEntity


# Confidence floor applied in strict mode, whatever the configured minimum.
STRICT_MODE_FLOOR = 8


@dataclass(frozen=True)
class ValidationConfig:
    minimum_confidence: float = 7
    strict_mode: bool = False


class EntityValidator:
    """Confidence gate applied to identified entities before deduplication."""

    def __init__(self, config: ValidationConfig | None = None) -> None:
        self._config = config or ValidationConfig()

    @property
    def config(self) -> ValidationConfig:
        return self._config

    def with_config(self, **changes: Any) -> EntityValidator:
        """Return a new validator with *changes* applied to the current config."""
        return EntityValidator(replace(self._config, **changes))

    def is_valid(self, entity: SensitiveEntity) -> bool:
        if entity.confidence < self._config.minimum_confidence:
            return False

        if self._config.strict_mode:
            if not entity.label or not entity.label.strip():
                return False
            if entity.confidence < STRICT_MODE_FLOOR:
                return False

        return True

    def validate_entities(self, entities: Iterable[SensitiveEntity]) -> list[SensitiveEntity]:
        """Keep the entities that pass :meth:`is_valid`, preserving order."""
        return [entity for entity in entities if self.is_valid(entity)]

    def get_validation_stats(self, entities: list[SensitiveEntity]) -> dict[str, float]:
        total = len(entities)
        valid = sum(1 for entity in entities if self.is_valid(entity))
        return {
            "total": total,
            "valid": valid,
            "invalid": total - valid,
            "validation_rate": valid / total if total > 0 else 0,
        }
