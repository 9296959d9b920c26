"""Quality and review routing types."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel


class ReviewPriority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"


class QualityAssessment(BaseModel):
    """Outcome of scoring one record."""

    score: float
    requires_review: bool
    priority: Optional[ReviewPriority] = None
    reason: Optional[str] = None
