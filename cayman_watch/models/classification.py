"""Classification request and result types."""

from enum import Enum
from typing import Any, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from cayman_watch.models.extraction import ExtractionMethod


class Signal(str, Enum):
    """Risk signals an article can carry."""

    FINANCIAL_DECLINE = "financial_decline"
    FRAUD = "fraud"
    MISSTATED_FINANCIALS = "misstated_financials"
    SHAREHOLDER_DISPUTE = "shareholder_dispute"
    DIRECTOR_DUTIES = "director_duties"
    REGULATORY_INVESTIGATION = "regulatory_investigation"


class ClassificationItem(BaseModel):
    """One article submitted to the classification cascade."""

    item_id: str
    title: str
    excerpt: str = ""


class ClassificationResult(BaseModel):
    """Classification of one item, positionally paired with its input."""

    item_id: str
    is_cayman_related: bool
    confidence: float = Field(ge=0.0, le=1.0)
    signals: List[Signal] = Field(default_factory=list)
    entities: List[str] = Field(default_factory=list)
    reasoning: str = ""
    method: ExtractionMethod = ExtractionMethod.ORACLE
    degraded: bool = False
    requires_review: bool = False


class OracleEntity(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    type: Optional[str] = None


class OracleClassification(BaseModel):
    """One element of a classification oracle response, as returned on the wire.

    Unknown keys are dropped and unknown signal names ignored; a payload that
    lacks the relevance fields fails validation.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: Optional[str] = None
    is_cayman_related: bool = Field(validation_alias=AliasChoices("cayman_relevant", "is_cayman_related"))
    confidence: float = Field(validation_alias=AliasChoices("cayman_confidence", "confidence"))
    reasoning: str = Field(default="", validation_alias=AliasChoices("cayman_reasoning", "reasoning"))
    entities: List[OracleEntity] = Field(
        default_factory=list, validation_alias=AliasChoices("cayman_entities", "entities")
    )
    signals: List[Signal] = Field(
        default_factory=list, validation_alias=AliasChoices("signals_detected", "signals")
    )

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Optional[str]:
        return None if value is None else str(value)

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: Any) -> float:
        if not isinstance(value, (int, float, str)) or isinstance(value, bool):
            raise ValueError("confidence must be a number")
        return min(1.0, max(0.0, float(value)))

    @field_validator("entities", mode="before")
    @classmethod
    def _coerce_entities(cls, value: Any) -> List[Any]:
        if not value:
            return []
        if not isinstance(value, list):
            raise ValueError("entities must be a list")
        return [{"name": item} if isinstance(item, str) else item for item in value]

    @field_validator("signals", mode="before")
    @classmethod
    def _known_signals(cls, value: Any) -> List[str]:
        if not value:
            return []
        if isinstance(value, dict):
            value = [name for name, present in value.items() if present]
        if not isinstance(value, (list, tuple)):
            raise ValueError("signals must be a list")
        known = {signal.value for signal in Signal}
        found = [item for item in value if isinstance(item, str) and item in known]
        return list(dict.fromkeys(found))
