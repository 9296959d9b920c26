"""Unit tests for CaseFilingExtractor."""

from decimal import Decimal

import pytest

from cayman_watch.core.exceptions import ValidationError
from cayman_watch.models.documents import Document, DocumentKind
from cayman_watch.models.extraction import ConfidenceTier, ExtractionMethod
from cayman_watch.services.extraction.case_filing_extractor import CaseFilingExtractor

FILING_TEXT = """Petitioner: Beta Bank Limited of George Town
Respondent: Alpha Holdings Limited
Official Liquidator: John Smith
The petition was filed on 5 March 2024.
Hearing date: 12 April 2024
A debt of USD 1,250,000.00 owed to the petitioner remains unpaid.
Attorneys: Maples and Calder (Cayman) LLP
"""


@pytest.fixture
def extractor():
    return CaseFilingExtractor()


class TestCaseFilingExtractor:
    """Tests for building case filing records."""

    def test_listing_metadata_provides_key_fields(self, extractor):
        document = Document(
            kind=DocumentKind.CASE_FILING,
            text=FILING_TEXT,
            title="In the matter of Alpha Holdings Limited",
            metadata={
                "cause_number": "FSD 123 of 2024 (IKJ)",
                "filing_date": "05/03/2024",
                "subject": "Winding up petition",
            },
        )

        filing = extractor.extract(document)

        assert filing.cause_number == "FSD 123 of 2024 (IKJ)"
        assert filing.filing_date == "2024-03-05"
        assert filing.subject == "Winding up petition"
        assert filing.title == "In the matter of Alpha Holdings Limited"
        assert filing.field_confidence["filing_date"] == ConfidenceTier.HIGH
        assert filing.provenance.method == ExtractionMethod.PATTERN
        assert filing.provenance.document_id == document.id

    def test_text_fields_extracted(self, extractor):
        document = Document(
            kind=DocumentKind.CASE_FILING,
            text=FILING_TEXT,
            metadata={"cause_number": "FSD 123 of 2024 (IKJ)"},
        )

        filing = extractor.extract(document)

        assert filing.petitioner == "Beta Bank Limited of George Town"
        assert filing.respondent == "Alpha Holdings Limited"
        assert filing.liquidators == ["John Smith"]
        assert filing.filing_date == "2024-03-05"
        assert filing.hearing_dates == ["2024-04-12"]
        assert filing.law_firm == "Maples and Calder (Cayman) LLP"
        assert [debt.amount for debt in filing.debt_amounts] == [Decimal("1250000.00")]
        assert filing.field_confidence["liquidators"] == ConfidenceTier.HIGH
        assert filing.field_confidence["petitioner"] == ConfidenceTier.MEDIUM

    def test_cause_number_found_in_text(self, extractor):
        document = Document(
            kind=DocumentKind.CASE_FILING,
            text="Cause No: FSD 45 of 2023 (RPJ)\n" + FILING_TEXT,
        )

        filing = extractor.extract(document)

        assert filing.cause_number == "FSD 45 of 2023 (RPJ)"

    def test_missing_cause_number_rejected(self, extractor):
        document = Document(kind=DocumentKind.CASE_FILING, text=FILING_TEXT)

        with pytest.raises(ValidationError):
            extractor.extract(document)

    def test_natural_key_order(self, extractor):
        document = Document(
            kind=DocumentKind.CASE_FILING,
            text=FILING_TEXT,
            title="Alpha petition",
            metadata={"cause_number": "FSD 123 of 2024", "subject": "Petition"},
        )

        filing = extractor.extract(document)

        assert filing.natural_key() == ("FSD 123 of 2024", "2024-03-05", "Alpha petition", "Petition")
