"""Ingestion run summary types."""

from enum import Enum
from typing import List
from uuid import UUID

from pydantic import BaseModel, Field


class RunStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class IngestionRunSummary(BaseModel):
    """Counts and outcome of one pipeline invocation."""

    run_id: UUID
    status: RunStatus
    fetched: int = 0
    new: int = 0
    duplicate: int = 0
    failed: int = 0
    review_queued: int = 0
    errors: List[str] = Field(default_factory=list)
    record_ids: List[UUID] = Field(default_factory=list)
