"""Immutable per-run pipeline configuration.

A ``PipelineConfig`` is built once per run (from environment settings or by
the embedding application) and passed explicitly into the pipeline entry
points. Nothing in the pipeline reads global mutable configuration.
"""

import re
from typing import Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from cayman_watch.core.config import Settings
from cayman_watch.core.exceptions import ConfigurationError
from cayman_watch.models.records import RecordKind


class SectionTarget(BaseModel):
    """A named section and the regex patterns that match its heading."""

    model_config = ConfigDict(frozen=True)

    key: str
    name: str
    patterns: Tuple[str, ...]


class RequiredField(BaseModel):
    """A field the quality scorer expects, and its penalty when weak or absent."""

    model_config = ConfigDict(frozen=True)

    name: str
    weight: float = Field(gt=0)


def _heading(*words: str) -> str:
    return r"\s+".join(re.escape(word) for word in words)


DEFAULT_TARGET_SECTIONS: Tuple[SectionTarget, ...] = (
    SectionTarget(
        key="liquidation",
        name=(
            "Liquidation Notices, Notices of Winding Up, Appointment of "
            "Voluntary Liquidators and Notices to Creditors"
        ),
        patterns=(
            _heading("Liquidation", "Notices,", "Notices", "of", "Winding", "Up"),
            _heading("Liquidation", "Notices"),
        ),
    ),
    SectionTarget(
        key="final_meeting",
        name="Notices of Final Meeting of Shareholders",
        patterns=(
            _heading("Notices", "of", "Final", "Meeting", "of", "Shareholders"),
            _heading("Final", "Meeting", "Notices"),
        ),
    ),
    SectionTarget(
        key="partnership",
        name="Partnership Notices",
        patterns=(_heading("Partnership", "Notices"),),
    ),
    SectionTarget(
        key="bankruptcy",
        name="Bankruptcy Notices",
        patterns=(_heading("Bankruptcy", "Notices"),),
    ),
    SectionTarget(
        key="receivership",
        name="Receivership Notices",
        patterns=(_heading("Receivership", "Notices"),),
    ),
    SectionTarget(
        key="dividend",
        name="Dividend Notices",
        patterns=(_heading("Dividend", "Notices"),),
    ),
    SectionTarget(
        key="grand_court",
        name="Grand Court Notices",
        patterns=(_heading("Grand", "Court", "Notices"),),
    ),
)

DEFAULT_STOP_SECTIONS: Tuple[SectionTarget, ...] = tuple(
    SectionTarget(key=name.lower().replace(" ", "_"), name=name, patterns=(_heading(*name.split()),))
    for name in (
        "Dormant Accounts Notices",
        "Notice of Special Strike",
        "Reduction of Capital",
        "Certificate of Merger Notices",
        "Transfer of Companies",
        "Struck-off List",
        "Demand Notices",
        "Regulatory Agency Notices",
        "General Commercial Notices",
    )
)

DEFAULT_REQUIRED_FIELDS: Dict[RecordKind, Tuple[RequiredField, ...]] = {
    RecordKind.GAZETTE_NOTICE: (
        RequiredField(name="entity_name", weight=10),
        RequiredField(name="liquidators", weight=10),
        RequiredField(name="liquidation_date", weight=5),
        RequiredField(name="liquidation_type", weight=3),
        RequiredField(name="registration_no", weight=2),
    ),
    RecordKind.CASE_FILING: (
        RequiredField(name="parties", weight=15),
        RequiredField(name="liquidators", weight=10),
        RequiredField(name="registered_office_provider", weight=10),
        RequiredField(name="key_individuals", weight=5),
        RequiredField(name="timeline", weight=5),
        RequiredField(name="financial_summary", weight=5),
        RequiredField(name="law_firm", weight=5),
    ),
    RecordKind.ARTICLE: (
        RequiredField(name="title", weight=10),
        RequiredField(name="classification", weight=20),
        RequiredField(name="entities", weight=5),
    ),
}

DEFAULT_THRESHOLD_OVERRIDES: Dict[RecordKind, float] = {
    RecordKind.CASE_FILING: 60.0,
    RecordKind.ARTICLE: 70.0,
}

DEFAULT_PRIORITY_OVERRIDES: Dict[RecordKind, float] = {
    RecordKind.CASE_FILING: 40.0,
    RecordKind.ARTICLE: 50.0,
}


class PipelineConfig(BaseModel):
    """Every option the pipeline recognizes, frozen for the length of a run."""

    model_config = ConfigDict(frozen=True)

    max_tokens_per_batch: int = Field(default=180000, gt=0)
    exploration_rate: float = Field(default=0.10, ge=0.0, le=1.0)
    quality_threshold: float = Field(default=90.0, ge=0.0, le=100.0)
    quality_threshold_overrides: Dict[RecordKind, float] = Field(
        default_factory=lambda: dict(DEFAULT_THRESHOLD_OVERRIDES)
    )
    review_priority_threshold: float = Field(default=85.0, ge=0.0, le=100.0)
    review_priority_overrides: Dict[RecordKind, float] = Field(
        default_factory=lambda: dict(DEFAULT_PRIORITY_OVERRIDES)
    )
    review_confidence_threshold: float = Field(default=0.70, ge=0.0, le=1.0)
    max_retries: int = Field(default=3, ge=1)
    backoff_base_ms: int = Field(default=2000, ge=0)
    inter_batch_delay_ms: int = Field(default=1000, ge=0)
    oracle_timeout_seconds: float = Field(default=120.0, gt=0)
    max_concurrent_documents: int = Field(default=4, ge=1)
    article_batch_size: int = Field(default=20, ge=1)

    target_sections: Tuple[SectionTarget, ...] = DEFAULT_TARGET_SECTIONS
    stop_sections: Tuple[SectionTarget, ...] = DEFAULT_STOP_SECTIONS
    required_fields: Dict[RecordKind, Tuple[RequiredField, ...]] = Field(
        default_factory=lambda: dict(DEFAULT_REQUIRED_FIELDS)
    )

    region_start_pattern: Optional[str] = r"COMMERCIAL"
    region_end_pattern: Optional[str] = r"GOVERNMENT"
    contents_proximity_chars: int = Field(default=500, ge=0)
    name_match_threshold: float = Field(default=90.0, ge=0.0, le=100.0)
    persist_skipped_articles: bool = False

    @classmethod
    def from_settings(cls, settings: Settings, **overrides) -> "PipelineConfig":
        """Build a run configuration from environment settings.

        Args:
            settings: Loaded application settings
            **overrides: Values that take precedence over the environment

        Returns:
            PipelineConfig: Frozen configuration for one run
        """
        values = {
            "max_tokens_per_batch": settings.pipeline.max_tokens_per_batch,
            "exploration_rate": settings.pipeline.exploration_rate,
            "quality_threshold": settings.pipeline.quality_threshold,
            "review_priority_threshold": settings.pipeline.review_priority_threshold,
            "review_confidence_threshold": settings.pipeline.review_confidence_threshold,
            "max_retries": settings.pipeline.max_retries,
            "backoff_base_ms": settings.pipeline.backoff_base_ms,
            "inter_batch_delay_ms": settings.pipeline.inter_batch_delay_ms,
            "oracle_timeout_seconds": settings.oracle.timeout_seconds,
            "max_concurrent_documents": settings.pipeline.max_concurrent_documents,
            "article_batch_size": settings.pipeline.article_batch_size,
            "name_match_threshold": settings.pipeline.name_match_threshold,
        }
        values.update(overrides)
        return cls(**values)

    def threshold_for(self, kind: RecordKind) -> float:
        return self.quality_threshold_overrides.get(kind, self.quality_threshold)

    def priority_threshold_for(self, kind: RecordKind) -> float:
        return self.review_priority_overrides.get(kind, self.review_priority_threshold)

    def required_fields_for(self, kind: RecordKind) -> Tuple[RequiredField, ...]:
        return self.required_fields.get(kind, ())

    def validate_required(self) -> None:
        """Check that vocabularies and thresholds needed for a run are present.

        Raises:
            ConfigurationError: If the target vocabulary, a heading pattern or
                a record kind's required-field list is missing or invalid
        """
        if not self.target_sections:
            raise ConfigurationError("Target-section vocabulary is empty")

        for target in self.target_sections + self.stop_sections:
            if not target.patterns:
                raise ConfigurationError(f"Section '{target.name}' has no heading patterns")
            for pattern in target.patterns:
                try:
                    re.compile(pattern)
                except re.error as e:
                    raise ConfigurationError(
                        f"Invalid heading pattern for '{target.name}': {pattern}", e
                    )

        for kind in RecordKind:
            if not self.required_fields.get(kind):
                raise ConfigurationError(f"No required fields configured for {kind.value}")

        for kind, threshold in self.quality_threshold_overrides.items():
            if not 0.0 <= threshold <= 100.0:
                raise ConfigurationError(f"Quality threshold for {kind.value} out of range: {threshold}")
