"""Greedy packing of sections into oracle-sized batches."""

from dataclasses import dataclass, field
from typing import List, Sequence

from cayman_watch.models.documents import Section
from cayman_watch.utils.logging import get_logger

LOGGER = get_logger(__name__)


@dataclass
class SectionBatch:
    """Consecutive sections sent to the oracle in one call."""

    batch_index: int
    sections: List[Section] = field(default_factory=list)

    @property
    def estimated_tokens(self) -> int:
        return sum(section.estimated_tokens for section in self.sections)

    @property
    def text(self) -> str:
        return "\n\n".join(section.text for section in self.sections)


class BatchPlanner:
    """Pack sections into batches whose estimated cost fits a budget.

    Packing is greedy in document order. A section larger than the budget is
    placed alone in its own batch; splitting or truncating it is the caller's
    concern.
    """

    def plan(self, sections: Sequence[Section], max_tokens_per_batch: int) -> List[SectionBatch]:
        """Create batches from sections.

        Args:
            sections: Sections in document order
            max_tokens_per_batch: Input token budget per batch

        Returns:
            List[SectionBatch]: Non-empty batches in document order
        """
        if max_tokens_per_batch <= 0:
            raise ValueError("max_tokens_per_batch must be positive")

        batches: List[SectionBatch] = []
        current: List[Section] = []
        current_tokens = 0

        def flush() -> None:
            nonlocal current, current_tokens
            if current:
                batches.append(SectionBatch(batch_index=len(batches), sections=current))
            current = []
            current_tokens = 0

        for section in sections:
            if section.estimated_tokens > max_tokens_per_batch:
                flush()
                LOGGER.warning(
                    f"Section '{section.name}' (~{section.estimated_tokens} tokens) "
                    f"exceeds batch budget {max_tokens_per_batch}, isolating it"
                )
                batches.append(SectionBatch(batch_index=len(batches), sections=[section]))
                continue

            if current and current_tokens + section.estimated_tokens > max_tokens_per_batch:
                flush()

            current.append(section)
            current_tokens += section.estimated_tokens

        flush()

        LOGGER.info(
            f"Planned {len(batches)} batches from {len(sections)} sections",
            extra={"max_tokens_per_batch": max_tokens_per_batch},
        )
        return batches
