"""Declarative field pattern tables.

Each entry maps a field name to its trigger keywords, ordered regular
expressions (capture group 1 is the value), and an optional validator and
transformer. Tables are plain data so each pattern can be tested on its own.
"""

import re
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional, Tuple

MONTHS = (
    r"(?:January|February|March|April|May|June|July|August|September|October|November|December)"
)
DATE = rf"\d{{1,2}}(?:st|nd|rd|th)?\s+(?:day\s+of\s+)?{MONTHS},?\s+\d{{4}}"
NUMERIC_DATE = r"\d{1,2}/\d{1,2}/\d{4}"
PERSON = r"[A-Z][a-z]+(?:[ \t]+[A-Z]\.)?(?:[ \t]+[A-Z][a-z'\-]+){1,3}"

_FLAGS = re.IGNORECASE


@dataclass(frozen=True)
class FieldPattern:
    """Extraction rule for one field.

    Attributes:
        keywords: Lowercase trigger keywords; text without any is skipped
        patterns: Ordered regexes, value in group 1
        context_window: Characters of surrounding text kept for audit
        multi_valued: Whether consolidation keeps every best-tier value
        validator: Rejects plausible but wrong values (forces low confidence)
        transformer: Converts the raw value (may return a list of values)
    """

    keywords: Tuple[str, ...]
    patterns: Tuple[re.Pattern, ...]
    context_window: int = 150
    multi_valued: bool = False
    validator: Optional[Callable[[str], bool]] = None
    transformer: Optional[Callable[[str], Any]] = None


def to_iso_date(value: str) -> str:
    """Convert "5th day of March, 2024" or "05/03/2024" to "2024-03-05".

    Values that do not parse are returned stripped but otherwise unchanged.
    """
    cleaned = re.sub(r"(\d)(st|nd|rd|th)\b", r"\1", value.strip(), flags=re.IGNORECASE)
    cleaned = re.sub(r"\s+day\s+of\s+", " ", cleaned, flags=re.IGNORECASE)
    cleaned = re.sub(r"\s+", " ", cleaned.replace(",", " ")).strip()
    for fmt in ("%d %B %Y", "%d/%m/%Y"):
        try:
            return datetime.strptime(cleaned, fmt).date().isoformat()
        except ValueError:
            continue
    return value.strip()


def to_decimal(value: str) -> Decimal:
    return Decimal(value.replace(",", ""))


def is_decimal(value: str) -> bool:
    try:
        to_decimal(value)
        return True
    except InvalidOperation:
        return False


def split_names(value: str) -> List[str]:
    """Split "John Smith and Jane Doe" style lists into names."""
    parts = re.split(r"\s*(?:,|\band\b|&)\s*", value.strip())
    return [part.strip() for part in parts if part.strip()]


_TITLE_CASE_NAME_RE = re.compile(r"^[A-Z][a-z]+(?:\s+[A-Z]\.)?(?:\s+[A-Z][a-z'\-]+){1,3}$")


def is_person_name(value: str) -> bool:
    """Title-case personal name of two to four words."""
    name = value.strip()
    return 5 < len(name) < 100 and bool(_TITLE_CASE_NAME_RE.match(name))


def is_person_name_list(value: str) -> bool:
    names = split_names(value)
    return bool(names) and all(is_person_name(name) for name in names)


_NAME_LIST = rf"{PERSON}(?:[ \t]*(?:,|\band\b|&)[ \t]*{PERSON})*"


CASE_FILING_PATTERNS: Dict[str, FieldPattern] = {
    "registered_office_provider": FieldPattern(
        keywords=("registered office", "registered agent", "registered address"),
        patterns=(
            re.compile(
                r"registered\s+(?:office|agent)[\s:]+([A-Z][^\n]{20,150}?(?:Ltd|Limited|Inc|LLC|Services|Trust))",
                _FLAGS,
            ),
            re.compile(
                r"(?:c/o|care of)\s+([A-Z][^\n]{20,150}?(?:Ltd|Limited|Inc|LLC|Services|Trust))",
                _FLAGS,
            ),
        ),
        context_window=200,
        validator=lambda v: len(v) > 10 and bool(re.search(r"Ltd|Limited|Inc|Services|Trust", v)),
    ),
    "petitioner": FieldPattern(
        keywords=("petitioner", "plaintiff", "applicant"),
        patterns=(
            re.compile(r"(?:Petitioner|Plaintiff|Applicant)[\s:]+([A-Z][^\n]{10,150})", _FLAGS),
            re.compile(r"In\s+the\s+(?:matter|case)\s+of[\s:]+([A-Z][^\n]{10,150})", _FLAGS),
        ),
    ),
    "respondent": FieldPattern(
        keywords=("respondent", "defendant", "company"),
        patterns=(
            re.compile(r"(?:Respondent|Defendant)[\s:]+([A-Z][^\n]{10,150})", _FLAGS),
            re.compile(r"(?:In\s+re|RE)[\s:]+([A-Z][^\n]{10,150}?(?:LIMITED|LTD|INC|CORP))", _FLAGS),
        ),
    ),
    "liquidators": FieldPattern(
        keywords=("liquidator", "official liquidator", "provisional liquidator", "appointed"),
        patterns=(
            re.compile(rf"(?:Official\s+)?(?:Provisional\s+)?Liquidators?[\s:]+({PERSON})", re.MULTILINE),
            re.compile(
                rf"(?:appointed|appoint)\s+({PERSON})\s+(?:as|to\s+be|of)\s+(?:the\s+)?"
                rf"(?:Joint\s+)?(?:Official\s+)?(?:Provisional\s+)?Liquidator",
                re.MULTILINE,
            ),
        ),
        context_window=250,
        multi_valued=True,
        validator=is_person_name,
    ),
    "law_firm": FieldPattern(
        keywords=("attorney", "counsel", "solicitor", "represented by", "instructed by"),
        patterns=(
            re.compile(r"(?:Attorneys?|Counsel|Solicitors?)[\s:]+([A-Z][^\n]{10,100})", _FLAGS),
            re.compile(r"(?:Represented|Instructed)\s+by[\s:]+([A-Z][^\n]{10,100})", _FLAGS),
            re.compile(r"(?:Messrs\.?|M/s\.?)\s+([A-Z][^\n]{10,80})", _FLAGS),
        ),
        context_window=200,
        validator=lambda v: 10 < len(v) < 150,
    ),
    "filing_date": FieldPattern(
        keywords=("filed", "filed on", "date of filing", "petition filed"),
        patterns=(
            re.compile(rf"filed\s+(?:on\s+)?(?:the\s+)?({DATE})", _FLAGS),
            re.compile(rf"(?:filed|filing)\s+date[\s:]+({NUMERIC_DATE})", _FLAGS),
        ),
        context_window=100,
        multi_valued=True,
        transformer=to_iso_date,
    ),
    "hearing_date": FieldPattern(
        keywords=("hearing", "hearing date", "return date", "adjourned to"),
        patterns=(
            re.compile(rf"hearing\s+(?:date|on|scheduled)[\s:]+(?:for\s+)?(?:the\s+)?({DATE})", _FLAGS),
            re.compile(rf"(?:return|adjourned)\s+(?:date|to)[\s:]+(?:the\s+)?({DATE})", _FLAGS),
        ),
        context_window=100,
        multi_valued=True,
        transformer=to_iso_date,
    ),
    "winding_up_order_date": FieldPattern(
        keywords=("order", "winding up order", "order made", "ordered"),
        patterns=(
            re.compile(rf"(?:winding\s+up\s+)?order\s+(?:made|dated)[\s:]+(?:on\s+)?(?:the\s+)?({DATE})", _FLAGS),
            re.compile(rf"ordered\s+(?:on|that)[\s:]+(?:the\s+)?({DATE})", _FLAGS),
        ),
        multi_valued=True,
        transformer=to_iso_date,
    ),
    "debt_amount": FieldPattern(
        keywords=("debt", "owed", "owing", "sum of", "indebtedness", "liability"),
        patterns=(
            re.compile(r"(?:sum|debt|amount|liability)\s+of\s+(?:USD?|US\$|\$)\s*([\d,]+(?:\.\d{2})?)", _FLAGS),
            re.compile(r"(?:USD?|US\$|\$)\s*([\d,]+(?:\.\d{2})?)\s+(?:owed|owing|due)", _FLAGS),
            re.compile(r"(?:owed|owing|due)[\s:]+(?:USD?|US\$|\$)\s*([\d,]+(?:\.\d{2})?)", _FLAGS),
        ),
        multi_valued=True,
        validator=is_decimal,
        transformer=to_decimal,
    ),
    "creditor_name": FieldPattern(
        keywords=("creditor", "claimant", "owed to"),
        patterns=(
            re.compile(r"creditor[\s:]+([A-Z][^\n]{10,100}?(?:Ltd|Limited|Inc|Corp|LLC|Bank|Fund))", _FLAGS),
            re.compile(r"(?:owed|owing)\s+to\s+([A-Z][^\n]{10,100}?(?:Ltd|Limited|Inc|Corp|LLC|Bank|Fund))", _FLAGS),
        ),
    ),
    "directors": FieldPattern(
        keywords=("director", "directors", "officer", "officers"),
        patterns=(
            re.compile(rf"[Dd]irectors?[\s:]+({_NAME_LIST})"),
            re.compile(rf"[Oo]fficers?[\s:]+({PERSON})"),
        ),
        context_window=200,
        multi_valued=True,
        validator=is_person_name_list,
        transformer=split_names,
    ),
}

# Quality-scoring fields that are satisfied by any of several extracted fields.
CASE_FILING_COMPOSITE_FIELDS: Dict[str, Tuple[str, ...]] = {
    "parties": ("petitioner", "respondent"),
    "key_individuals": ("directors",),
    "timeline": ("filing_date", "hearing_date", "winding_up_order_date"),
    "financial_summary": ("debt_amount", "creditor_name"),
}


GAZETTE_NOTICE_PATTERNS: Dict[str, FieldPattern] = {
    "registration_no": FieldPattern(
        keywords=("registration", "registration no", "reg. no", "company number"),
        patterns=(
            re.compile(r"Registration\s+(?:No\.?|Number)\s*[:#]?\s*([A-Z]{0,4}-?\d{3,8})", _FLAGS),
            re.compile(r"Reg\.\s*No\.?\s*[:#]?\s*([A-Z]{0,4}-?\d{3,8})", _FLAGS),
        ),
        context_window=80,
    ),
    "liquidation_date": FieldPattern(
        keywords=("liquidation", "date of liquidation", "commenced", "voluntary winding up", "resolution"),
        patterns=(
            re.compile(rf"Date\s+of\s+(?:Voluntary\s+)?Liquidation\s*:?\s*(?:the\s+)?({DATE}|{NUMERIC_DATE})", _FLAGS),
            re.compile(
                rf"(?:liquidation|voluntary\s+winding\s+up)\s+commenced\s+on\s+(?:the\s+)?({DATE}|{NUMERIC_DATE})",
                _FLAGS,
            ),
            re.compile(rf"resolution\s+(?:was\s+)?(?:passed|dated)\s+(?:on\s+)?(?:the\s+)?({DATE})", _FLAGS),
        ),
        context_window=120,
        transformer=to_iso_date,
    ),
    "liquidators": FieldPattern(
        keywords=("liquidator", "voluntary liquidator", "official liquidator", "joint"),
        patterns=(
            re.compile(
                rf"(?:Joint\s+)?(?:Voluntary\s+|Official\s+)?Liquidators?\s*:\s*({_NAME_LIST})"
            ),
            re.compile(
                rf"({_NAME_LIST})\s*,?\s+(?:has|have)\s+been\s+appointed\s+(?:as\s+)?(?:the\s+)?"
                rf"(?:Joint\s+)?(?:Voluntary\s+|Official\s+)?Liquidators?"
            ),
        ),
        context_window=200,
        multi_valued=True,
        validator=is_person_name_list,
        transformer=split_names,
    ),
    "contact_emails": FieldPattern(
        keywords=("email", "e-mail", "contact"),
        patterns=(
            re.compile(r"(?:E-?mail|Contact)\s*:?\s*([\w.+\-]+@[\w\-]+(?:\.[\w\-]+)+)", _FLAGS),
        ),
        context_window=80,
        multi_valued=True,
    ),
    "court_cause_no": FieldPattern(
        keywords=("cause", "cause no", "fsd", "grand court"),
        patterns=(
            re.compile(r"Cause\s+No\.?\s*:?\s*((?:FSD|FCD)\s*\d+\s+of\s+\d{4}(?:\s*\([A-Z]{2,4}\))?)", _FLAGS),
            re.compile(r"\b((?:FSD|FCD)\s*\d+\s+of\s+\d{4}(?:\s*\([A-Z]{2,4}\))?)"),
        ),
        context_window=80,
    ),
    "final_meeting_date": FieldPattern(
        keywords=("final meeting", "meeting", "shareholders", "final general meeting"),
        patterns=(
            re.compile(
                rf"Final\s+(?:General\s+)?Meeting(?:\s+of\s+(?:the\s+)?Shareholders)?\s*"
                rf"(?:Date\s*:|will\s+be\s+held\s+on|held\s+on)\s*(?:the\s+)?({DATE}|{NUMERIC_DATE})",
                _FLAGS,
            ),
        ),
        context_window=150,
        transformer=to_iso_date,
    ),
}
