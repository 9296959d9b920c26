"""Input document and section types."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


class DocumentKind(str, Enum):
    """Declared kind of an ingested document."""

    GAZETTE = "gazette"
    CASE_FILING = "case_filing"
    ARTICLE = "article"


class Document(BaseModel):
    """A raw document as handed to the pipeline by its ingestion trigger."""

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    kind: DocumentKind
    text: str
    title: Optional[str] = None
    source_url: Optional[str] = None
    published_at: Optional[datetime] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


@dataclass(frozen=True)
class Section:
    """A named span of a document found by the section segmenter.

    Offsets are relative to the text that was segmented.
    """

    name: str
    start: int
    end: int
    text: str
    estimated_tokens: int
