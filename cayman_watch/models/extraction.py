"""Extraction candidate types."""

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ConfidenceTier(str, Enum):
    """Confidence tier attached to an extracted field."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return {"high": 3, "medium": 2, "low": 1}[self.value]


class ExtractionMethod(str, Enum):
    """How a value or record was produced."""

    PATTERN = "pattern"
    ORACLE = "oracle"
    HEURISTIC = "heuristic"


@dataclass(frozen=True)
class ExtractionCandidate:
    """One candidate value for one field, with the span it came from."""

    field_name: str
    value: Any
    confidence: ConfidenceTier
    method: ExtractionMethod
    matched_span: str
    position: int = 0
