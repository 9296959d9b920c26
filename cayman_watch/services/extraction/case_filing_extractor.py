"""Build ``CaseFiling`` records from registry filing text."""

import re
from typing import Any, Dict, List, Optional

from cayman_watch.core.exceptions import ValidationError
from cayman_watch.models.documents import Document
from cayman_watch.models.extraction import ConfidenceTier, ExtractionMethod
from cayman_watch.models.records import CaseFiling, DebtAmount, Provenance
from cayman_watch.services.extraction.pattern_extractor import ConsolidatedField, PatternExtractor
from cayman_watch.services.extraction.patterns import CASE_FILING_PATTERNS, to_iso_date
from cayman_watch.utils.logging import get_logger
from cayman_watch.utils.text import collapse_whitespace

LOGGER = get_logger(__name__)

CAUSE_NUMBER_RE = re.compile(r"\b((?:FSD|FCD|CICA|CAUSE)\s*(?:No\.?\s*)?\d+\s+of\s+\d{4}(?:\s*\([A-Z]{2,4}\))?)", re.IGNORECASE)

METADATA_KEY_FIELDS = ("cause_number", "filing_date", "subject")


class CaseFilingExtractor:
    """Pattern-extract a registry filing into one record.

    Natural-key fields come from the registry listing (document metadata)
    where present, since listing values are exact; text extraction fills the
    rest.
    """

    def __init__(self, extractor: Optional[PatternExtractor] = None):
        self.extractor = extractor or PatternExtractor(CASE_FILING_PATTERNS)

    def extract(self, document: Document) -> CaseFiling:
        """Extract a case filing.

        Args:
            document: Filing document; ``metadata`` may carry cause_number,
                filing_date and subject from the registry listing

        Returns:
            CaseFiling: Record with per-field confidence tiers

        Raises:
            ValidationError: If no cause number can be determined
        """
        fields = self.extractor.consolidate(self.extractor.extract(document.text))
        metadata = document.metadata or {}

        cause_number = metadata.get("cause_number") or self._find_cause_number(
            f"{document.title or ''}\n{document.text}"
        )
        if not cause_number:
            raise ValidationError(f"No cause number for filing document {document.id}")

        field_confidence: Dict[str, ConfidenceTier] = {
            name: consolidated.confidence for name, consolidated in fields.items()
        }

        filing_date = metadata.get("filing_date")
        if filing_date:
            filing_date = to_iso_date(str(filing_date))
            field_confidence["filing_date"] = ConfidenceTier.HIGH
        else:
            filing_date = _first(fields, "filing_date")

        record = CaseFiling(
            cause_number=collapse_whitespace(str(cause_number)),
            filing_date=filing_date,
            title=document.title or "",
            subject=str(metadata.get("subject") or ""),
            petitioner=_single(fields, "petitioner"),
            respondent=_single(fields, "respondent"),
            registered_office_provider=_single(fields, "registered_office_provider"),
            law_firm=_single(fields, "law_firm"),
            liquidators=_many(fields, "liquidators"),
            directors=_many(fields, "directors"),
            creditor_name=_single(fields, "creditor_name"),
            hearing_dates=_many(fields, "hearing_date"),
            winding_up_order_dates=_many(fields, "winding_up_order_date"),
            debt_amounts=_debts(fields.get("debt_amount")),
            provenance=Provenance(method=ExtractionMethod.PATTERN, document_id=document.id),
            field_confidence=field_confidence,
        )

        LOGGER.info(
            f"Extracted case filing {record.cause_number}",
            extra={"fields": sorted(fields), "document_id": str(document.id)},
        )
        return record

    @staticmethod
    def _find_cause_number(text: str) -> Optional[str]:
        match = CAUSE_NUMBER_RE.search(text)
        return match.group(1) if match else None


def _single(fields: Dict[str, ConsolidatedField], name: str) -> Optional[str]:
    consolidated = fields.get(name)
    if consolidated is None:
        return None
    return collapse_whitespace(str(consolidated.value))


def _many(fields: Dict[str, ConsolidatedField], name: str) -> List[Any]:
    consolidated = fields.get(name)
    if consolidated is None:
        return []
    value = consolidated.value
    return list(value) if isinstance(value, list) else [value]


def _first(fields: Dict[str, ConsolidatedField], name: str) -> Optional[str]:
    values = _many(fields, name)
    return values[0] if values else None


def _debts(consolidated: Optional[ConsolidatedField]) -> List[DebtAmount]:
    if consolidated is None:
        return []
    debts = []
    seen = set()
    for candidate in consolidated.candidates:
        # Several patterns often catch the same amount
        key = str(candidate.value)
        if key in seen:
            continue
        seen.add(key)
        try:
            debts.append(DebtAmount(amount=candidate.value, context=candidate.matched_span))
        except ValueError:
            # Low-tier raw strings that never parsed as a decimal
            LOGGER.debug(f"Skipping unparseable debt amount {candidate.value!r}")
    return debts
