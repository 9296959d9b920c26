"""Persisted record variants, one per document kind.

Each variant declares its natural key in ``NATURAL_KEY_FIELDS``. The order of
that tuple is part of the fingerprint identity space and must not change.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, ClassVar, Dict, List, Literal, Optional, Tuple, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from cayman_watch.models.classification import Signal
from cayman_watch.models.extraction import ConfidenceTier, ExtractionMethod


class RecordKind(str, Enum):
    GAZETTE_NOTICE = "gazette_notice"
    CASE_FILING = "case_filing"
    ARTICLE = "article"


class RecordStatus(str, Enum):
    EXTRACTED = "extracted"
    CLASSIFIED = "classified"
    DEGRADED = "degraded"
    SKIPPED = "skipped"


class LiquidationType(str, Enum):
    VOLUNTARY = "Voluntary"
    COURT_ORDERED = "Court-Ordered"
    BANKRUPTCY = "Bankruptcy"
    RECEIVERSHIP = "Receivership"
    DIVIDEND_DISTRIBUTION = "Dividend Distribution"
    UNKNOWN = "Unknown"


class Provenance(BaseModel):
    """Where a record came from and what it cost."""

    method: ExtractionMethod
    oracle_input_tokens: int = 0
    oracle_output_tokens: int = 0
    run_id: Optional[UUID] = None
    document_id: Optional[UUID] = None


class RecordBase(BaseModel):
    """Fields shared by every record variant."""

    model_config = ConfigDict(extra="ignore")

    NATURAL_KEY_FIELDS: ClassVar[Tuple[str, ...]] = ()
    # Whether dedup also compares titles of this kind
    NEAR_DUPLICATE_TITLES: ClassVar[bool] = False

    status: RecordStatus = RecordStatus.EXTRACTED
    provenance: Provenance = Field(
        default_factory=lambda: Provenance(method=ExtractionMethod.PATTERN)
    )
    field_confidence: Dict[str, ConfidenceTier] = Field(default_factory=dict)
    signals: List[Signal] = Field(default_factory=list)
    review_notes: List[str] = Field(default_factory=list)

    def natural_key(self) -> Tuple[object, ...]:
        return tuple(getattr(self, name) for name in self.NATURAL_KEY_FIELDS)

    def display_title(self) -> Optional[str]:
        """Stored title of the record, if the kind has one."""
        return None


class GazetteNotice(RecordBase):
    """One liquidation, bankruptcy, receivership or dividend notice."""

    NATURAL_KEY_FIELDS: ClassVar[Tuple[str, ...]] = (
        "entity_name",
        "liquidation_date",
        "liquidation_type",
    )

    kind: Literal[RecordKind.GAZETTE_NOTICE] = RecordKind.GAZETTE_NOTICE
    entity_name: str
    entity_type: str = "Company"
    registration_no: Optional[str] = None
    liquidation_type: LiquidationType = LiquidationType.UNKNOWN
    liquidators: List[str] = Field(default_factory=list)
    contact_emails: List[str] = Field(default_factory=list)
    court_cause_no: Optional[str] = None
    liquidation_date: Optional[str] = None
    final_meeting_date: Optional[str] = None
    section_name: Optional[str] = None
    notes: str = ""


class DebtAmount(BaseModel):
    amount: Decimal
    context: str = ""


class CaseFiling(RecordBase):
    """A court registry filing and the fields extracted from its text."""

    NATURAL_KEY_FIELDS: ClassVar[Tuple[str, ...]] = (
        "cause_number",
        "filing_date",
        "title",
        "subject",
    )

    kind: Literal[RecordKind.CASE_FILING] = RecordKind.CASE_FILING
    cause_number: str
    filing_date: Optional[str] = None
    title: str = ""
    subject: str = ""
    petitioner: Optional[str] = None
    respondent: Optional[str] = None
    registered_office_provider: Optional[str] = None
    law_firm: Optional[str] = None
    liquidators: List[str] = Field(default_factory=list)
    directors: List[str] = Field(default_factory=list)
    creditor_name: Optional[str] = None
    hearing_dates: List[str] = Field(default_factory=list)
    winding_up_order_dates: List[str] = Field(default_factory=list)
    debt_amounts: List[DebtAmount] = Field(default_factory=list)

    def display_title(self) -> Optional[str]:
        return self.title or None


class Article(RecordBase):
    """A news article and its classification."""

    NATURAL_KEY_FIELDS: ClassVar[Tuple[str, ...]] = ("url", "title")
    NEAR_DUPLICATE_TITLES: ClassVar[bool] = True

    kind: Literal[RecordKind.ARTICLE] = RecordKind.ARTICLE
    url: str
    title: str
    excerpt: str = ""
    source: Optional[str] = None
    published_at: Optional[datetime] = None
    is_cayman_related: bool = False
    confidence: float = 0.0
    entities: List[str] = Field(default_factory=list)
    reasoning: str = ""
    prefilter_reason: Optional[str] = None

    def display_title(self) -> Optional[str]:
        return self.title or None


Record = Annotated[Union[GazetteNotice, CaseFiling, Article], Field(discriminator="kind")]

RECORD_ADAPTER: TypeAdapter = TypeAdapter(Record)
