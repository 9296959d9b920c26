"""Keyword-gated regex extraction with confidence tiering and consolidation."""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from cayman_watch.models.extraction import ConfidenceTier, ExtractionCandidate, ExtractionMethod
from cayman_watch.services.extraction.patterns import CASE_FILING_PATTERNS, FieldPattern
from cayman_watch.utils.logging import get_logger

LOGGER = get_logger(__name__)


@dataclass
class ConsolidatedField:
    """Best evidence for one field after consolidation."""

    field_name: str
    value: Any
    confidence: ConfidenceTier
    candidates: List[ExtractionCandidate] = field(default_factory=list)


class PatternExtractor:
    """Apply a field pattern table to free text.

    Example:
        >>> extractor = PatternExtractor()
        >>> candidates = extractor.extract(text, ["liquidators", "filing_date"])
        >>> fields = extractor.consolidate(candidates)
    """

    def __init__(self, patterns: Optional[Mapping[str, FieldPattern]] = None):
        self.patterns = dict(patterns if patterns is not None else CASE_FILING_PATTERNS)

    def extract(
        self, text: str, target_fields: Optional[Sequence[str]] = None
    ) -> List[ExtractionCandidate]:
        """Extract candidates for the requested fields.

        Fields whose keywords are all absent from the text are skipped before
        any regex runs. A validator failure keeps the candidate but forces its
        tier to low.

        Args:
            text: Text to search
            target_fields: Field names to extract (defaults to the whole table)

        Returns:
            List[ExtractionCandidate]: Candidates in field, then document, order
        """
        if not text:
            return []

        text_lower = text.lower()
        fields = list(target_fields) if target_fields is not None else list(self.patterns)
        candidates: List[ExtractionCandidate] = []

        for field_name in fields:
            pattern = self.patterns.get(field_name)
            if pattern is None:
                LOGGER.debug(f"No pattern configured for field '{field_name}'")
                continue

            if not any(keyword in text_lower for keyword in pattern.keywords):
                continue

            field_candidates: List[ExtractionCandidate] = []
            for regex in pattern.patterns:
                for match in regex.finditer(text):
                    raw_value = (match.group(1) or "").strip()
                    if not raw_value:
                        continue
                    field_candidates.extend(
                        self._build_candidates(field_name, pattern, match.group(0), raw_value, match.start(1))
                    )

            field_candidates.sort(key=lambda c: c.position)
            candidates.extend(field_candidates)

        return candidates

    def determine_confidence(
        self, pattern: FieldPattern, matched_span: str, raw_value: str
    ) -> ConfidenceTier:
        """Tier a match by how many field keywords its span contains."""
        if pattern.validator is not None and not pattern.validator(raw_value):
            return ConfidenceTier.LOW

        span_lower = matched_span.lower()
        keyword_count = sum(1 for keyword in pattern.keywords if keyword in span_lower)

        if keyword_count >= 2:
            return ConfidenceTier.HIGH
        if keyword_count == 1:
            return ConfidenceTier.MEDIUM
        return ConfidenceTier.LOW

    def consolidate(self, candidates: Iterable[ExtractionCandidate]) -> Dict[str, ConsolidatedField]:
        """Reduce candidates to one value (or value list) per field.

        Multi-valued fields keep every high-confidence value when one exists,
        otherwise every value at the best tier found. Single-valued fields take
        the first best-tier value in document order.

        Args:
            candidates: Candidates from ``extract``

        Returns:
            Dict[str, ConsolidatedField]: Consolidated fields by name
        """
        grouped: Dict[str, List[ExtractionCandidate]] = {}
        for candidate in candidates:
            grouped.setdefault(candidate.field_name, []).append(candidate)

        consolidated: Dict[str, ConsolidatedField] = {}
        for field_name, matches in grouped.items():
            best_rank = max(c.confidence.rank for c in matches)
            best = sorted(
                (c for c in matches if c.confidence.rank == best_rank),
                key=lambda c: c.position,
            )
            pattern = self.patterns.get(field_name)

            if pattern is not None and pattern.multi_valued:
                value = self._unique_values(best)
            else:
                value = best[0].value

            consolidated[field_name] = ConsolidatedField(
                field_name=field_name,
                value=value,
                confidence=best[0].confidence,
                candidates=best,
            )

        return consolidated

    def _build_candidates(
        self,
        field_name: str,
        pattern: FieldPattern,
        matched_span: str,
        raw_value: str,
        position: int,
    ) -> List[ExtractionCandidate]:
        confidence = self.determine_confidence(pattern, matched_span, raw_value)

        value: Any = raw_value
        if pattern.transformer is not None:
            try:
                value = pattern.transformer(raw_value)
            except (ValueError, ArithmeticError):
                # Only reachable for values that already failed validation
                value = raw_value

        values = value if isinstance(value, list) else [value]
        return [
            ExtractionCandidate(
                field_name=field_name,
                value=item,
                confidence=confidence,
                method=ExtractionMethod.PATTERN,
                matched_span=matched_span,
                position=position,
            )
            for item in values
        ]

    @staticmethod
    def _unique_values(candidates: Sequence[ExtractionCandidate]) -> List[Any]:
        seen = set()
        values = []
        for candidate in candidates:
            key = str(candidate.value).strip().lower()
            if key in seen:
                continue
            seen.add(key)
            values.append(candidate.value)
        return values
