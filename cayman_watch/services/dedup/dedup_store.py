"""Run-scoped duplicate checks against storage and the current run."""

from dataclasses import dataclass
from typing import Dict, List, Optional, Set

from cayman_watch.models.records import RecordBase
from cayman_watch.repositories.pipeline_storage import PipelineStorage
from cayman_watch.services.dedup.fingerprint import (
    NEAR_DUPLICATE_THRESHOLD,
    fingerprint,
    is_near_duplicate,
)
from cayman_watch.utils.logging import get_logger
from cayman_watch.utils.text import normalize_title

LOGGER = get_logger(__name__)

DUPLICATE_FINGERPRINT = "fingerprint"
DUPLICATE_TITLE = "near_duplicate_title"


@dataclass(frozen=True)
class DedupDecision:
    fingerprint: str
    is_duplicate: bool
    reason: Optional[str] = None
    matched_title: Optional[str] = None


class DedupStore:
    """Fingerprint and near-duplicate title checks for one pipeline run.

    Checks consult both storage and what this run has already registered.
    They only skip work early; the unique constraint on ``records.fingerprint``
    still decides when two runs race.
    """

    def __init__(
        self,
        storage: PipelineStorage,
        title_threshold: float = NEAR_DUPLICATE_THRESHOLD,
        recent_title_limit: int = 500,
    ):
        self.storage = storage
        self.title_threshold = title_threshold
        self.recent_title_limit = recent_title_limit
        self._seen_fingerprints: Set[str] = set()
        self._titles: Dict[str, List[str]] = {}

    async def is_duplicate(self, record_fingerprint: str) -> bool:
        if record_fingerprint in self._seen_fingerprints:
            return True
        return await self.storage.fingerprint_exists(record_fingerprint)

    def register(self, record_fingerprint: str, kind: Optional[str] = None, title: Optional[str] = None) -> None:
        """Remember a fingerprint (and title) persisted or seen during this run."""
        self._seen_fingerprints.add(record_fingerprint)
        if kind and title and kind in self._titles:
            normalized = normalize_title(title)
            if normalized:
                self._titles[kind].append(normalized)

    async def find_near_duplicate_title(self, kind: str, title: str) -> Optional[str]:
        """A stored or already-seen title of ``kind`` close enough to ``title``."""
        if not normalize_title(title):
            return None

        if kind not in self._titles:
            rows = await self.storage.recent_titles(kind, self.recent_title_limit)
            self._titles[kind] = [normalized for _, normalized in rows if normalized]

        for existing in self._titles[kind]:
            if is_near_duplicate(title, existing, self.title_threshold):
                return existing
        return None

    async def check(self, record: RecordBase) -> DedupDecision:
        """Run both duplicate paths for a record.

        The title path only runs for kinds that set ``NEAR_DUPLICATE_TITLES``.

        Returns:
            DedupDecision: The record's fingerprint and whether either path hit
        """
        record_fingerprint = fingerprint(record)

        if await self.is_duplicate(record_fingerprint):
            LOGGER.debug(f"Duplicate fingerprint {record_fingerprint[:12]}")
            return DedupDecision(record_fingerprint, True, DUPLICATE_FINGERPRINT)

        title = record.display_title() if record.NEAR_DUPLICATE_TITLES else None
        if title:
            matched = await self.find_near_duplicate_title(record.kind.value, title)
            if matched is not None:
                LOGGER.info(
                    f"Near-duplicate title suppressed: {title[:80]}",
                    extra={"matched_title": matched[:80]},
                )
                return DedupDecision(record_fingerprint, True, DUPLICATE_TITLE, matched)

        return DedupDecision(record_fingerprint, False)
