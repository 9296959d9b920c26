"""Pattern-based parsing of gazette sections into liquidation notices.

A section is split into notice blocks, each headed by an entity name line.
Fields inside a block come from the gazette pattern table. Final-meeting
notices are parsed separately and cross-referenced onto the notices they
belong to.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from rapidfuzz import fuzz

from cayman_watch.models.documents import Section
from cayman_watch.models.extraction import ConfidenceTier, ExtractionMethod
from cayman_watch.models.records import GazetteNotice, LiquidationType, Provenance
from cayman_watch.services.extraction.pattern_extractor import PatternExtractor
from cayman_watch.services.extraction.patterns import GAZETTE_NOTICE_PATTERNS
from cayman_watch.utils.logging import get_logger
from cayman_watch.utils.text import collapse_whitespace, normalize_entity_name

LOGGER = get_logger(__name__)

ENTITY_SUFFIXES = (
    r"LIMITED|LTD\.?|INC\.?|CORPORATION|CORP\.?|L\.P\.|LP|LLC|SPC|FUND|TRUST|PARTNERSHIP|COMPANY"
)

ENTITY_HEADER_RE = re.compile(
    rf"^[ \t]*(?P<name>[A-Z0-9][A-Z0-9&.,'()\- ]{{1,150}}?\b(?:{ENTITY_SUFFIXES}))"
    r"[ \t]*(?P<qualifier>\([^)\n]*\))?[ \t]*$",
    re.MULTILINE,
)

PARTNERSHIP_RE = re.compile(r"\b(?:L\.P\.|LP|PARTNERSHIP)$", re.IGNORECASE)
COURT_ORDERED_RE = re.compile(
    r"winding[\s-]+up\s+order|official\s+liquidators?|by\s+order\s+of\s+the\s+grand\s+court",
    re.IGNORECASE,
)

MISS_KEYWORDS = ("liquidation", "liquidator", "winding up", "receiver", "appointed")
MISS_COMPANY_RE = re.compile(
    r"([a-z][a-z0-9\s&,.'-]+\b(?:limited|ltd|inc|corporation|corp))\b", re.IGNORECASE
)

SECTION_LIQUIDATION_TYPES: Dict[str, LiquidationType] = {
    "liquidation": LiquidationType.VOLUNTARY,
    "partnership": LiquidationType.VOLUNTARY,
    "bankruptcy": LiquidationType.BANKRUPTCY,
    "receivership": LiquidationType.RECEIVERSHIP,
    "dividend": LiquidationType.DIVIDEND_DISTRIBUTION,
    "grand_court": LiquidationType.COURT_ORDERED,
}

FINAL_MEETING_ONLY_NOTE = "Final meeting notice only; liquidation commenced in prior gazette"

NOTE_MAX_CHARS = 500


@dataclass
class NoticeBlock:
    """Text of one notice with the entity header that opened it."""

    entity_name: str
    text: str
    start: int


@dataclass
class FinalMeetingEntry:
    entity_name: str
    final_meeting_date: Optional[str]
    registration_no: Optional[str]
    text: str


@dataclass
class GazetteParseResult:
    """Notices parsed from one gazette, plus lines that look like misses."""

    notices: List[GazetteNotice] = field(default_factory=list)
    final_meetings: List[FinalMeetingEntry] = field(default_factory=list)
    possible_misses: List[str] = field(default_factory=list)
    degraded: bool = False
    errors: List[str] = field(default_factory=list)
    input_tokens: int = 0
    output_tokens: int = 0


class NoticeParser:
    """Turn gazette sections into ``GazetteNotice`` records without an oracle."""

    def __init__(
        self,
        extractor: Optional[PatternExtractor] = None,
        name_match_threshold: float = 90.0,
    ):
        self.extractor = extractor or PatternExtractor(GAZETTE_NOTICE_PATTERNS)
        self.name_match_threshold = name_match_threshold

    def parse_sections(
        self,
        sections: Sequence[Section],
        section_keys: Dict[str, str],
        region_text: str = "",
    ) -> GazetteParseResult:
        """Parse every section and apply the final-meeting cross-reference.

        Args:
            sections: Segmented sections
            section_keys: Section name to vocabulary key
            region_text: Text of the region of interest, scanned for misses

        Returns:
            GazetteParseResult: Consolidated notices
        """
        result = GazetteParseResult()

        for section in sections:
            key = section_keys.get(section.name, "")
            if key == "final_meeting":
                result.final_meetings.extend(self.parse_final_meetings(section))
            else:
                result.notices.extend(self.parse_section(section, key))

        return self.finalize(result, region_text)

    def finalize(self, result: GazetteParseResult, region_text: str = "") -> GazetteParseResult:
        """Apply the final-meeting cross-reference and scan for missed notices."""
        result.notices = self.cross_reference_final_meetings(result.notices, result.final_meetings)
        if region_text:
            result.possible_misses = self.find_possible_misses(region_text, result.notices)

        LOGGER.info(
            f"Parsed {len(result.notices)} notices, {len(result.final_meetings)} final meetings",
            extra={"possible_misses": len(result.possible_misses)},
        )
        return result

    def parse_section(self, section: Section, section_key: str) -> List[GazetteNotice]:
        """Parse the notices of one non-final-meeting section."""
        notices = []
        for block in self.split_blocks(section.text):
            notices.append(self._build_notice(block, section, section_key))
        return notices

    def parse_final_meetings(self, section: Section) -> List[FinalMeetingEntry]:
        entries = []
        for block in self.split_blocks(section.text):
            fields = self.extractor.consolidate(
                self.extractor.extract(block.text, ["final_meeting_date", "registration_no"])
            )
            entries.append(
                FinalMeetingEntry(
                    entity_name=block.entity_name,
                    final_meeting_date=_value(fields, "final_meeting_date"),
                    registration_no=_value(fields, "registration_no"),
                    text=block.text,
                )
            )
        return entries

    def split_blocks(self, text: str) -> List[NoticeBlock]:
        """Split section text at entity header lines.

        Text before the first header (the section heading itself) is ignored.
        """
        headers = list(ENTITY_HEADER_RE.finditer(text))
        blocks = []
        for idx, header in enumerate(headers):
            block_end = headers[idx + 1].start() if idx + 1 < len(headers) else len(text)
            blocks.append(
                NoticeBlock(
                    entity_name=collapse_whitespace(header.group("name")),
                    text=text[header.start():block_end].strip(),
                    start=header.start(),
                )
            )
        return blocks

    def cross_reference_final_meetings(
        self,
        notices: List[GazetteNotice],
        entries: Iterable[FinalMeetingEntry],
    ) -> List[GazetteNotice]:
        """Attach final meeting dates to matching notices.

        A final meeting matches a notice by exact normalized name, by
        registration number, or by a close name. Unmatched meetings become
        notices of unknown liquidation type.
        """
        updated = list(notices)

        for entry in entries:
            idx = self._match_notice(updated, entry)
            if idx is None:
                LOGGER.info(f"Final meeting without liquidation notice: {entry.entity_name}")
                updated.append(
                    GazetteNotice(
                        entity_name=entry.entity_name,
                        entity_type=_entity_type(entry.entity_name, ""),
                        registration_no=entry.registration_no,
                        liquidation_type=LiquidationType.UNKNOWN,
                        final_meeting_date=entry.final_meeting_date,
                        section_name="final_meeting",
                        notes=FINAL_MEETING_ONLY_NOTE,
                        provenance=Provenance(method=ExtractionMethod.PATTERN),
                        field_confidence={
                            "entity_name": ConfidenceTier.HIGH,
                            **(
                                {"registration_no": ConfidenceTier.HIGH}
                                if entry.registration_no else {}
                            ),
                        },
                    )
                )
                continue

            notice = updated[idx]
            notes = notice.notes
            if entry.final_meeting_date:
                notes = f"{notes} Final meeting: {entry.final_meeting_date}.".strip()
            updated[idx] = notice.model_copy(
                update={
                    "final_meeting_date": entry.final_meeting_date or notice.final_meeting_date,
                    "notes": notes,
                }
            )

        return updated

    def find_possible_misses(self, text: str, notices: Sequence[GazetteNotice]) -> List[str]:
        """Lines that mention liquidation near a company name nobody extracted.

        Returns:
            At most ten candidate company names
        """
        known = [normalize_entity_name(n.entity_name) for n in notices]
        misses: List[str] = []

        for line in text.split("\n"):
            line_lower = line.lower()
            if not any(keyword in line_lower for keyword in MISS_KEYWORDS):
                continue
            match = MISS_COMPANY_RE.search(line)
            if not match:
                continue
            candidate = normalize_entity_name(match.group(1))
            if len(candidate) <= 10:
                continue
            if any(name and (name in candidate or candidate in name) for name in known):
                continue
            if candidate not in misses:
                misses.append(candidate)

        return misses[:10]

    def _build_notice(self, block: NoticeBlock, section: Section, section_key: str) -> GazetteNotice:
        candidates = self.extractor.extract(block.text)
        fields = self.extractor.consolidate(candidates)

        liquidation_type = SECTION_LIQUIDATION_TYPES.get(section_key, LiquidationType.UNKNOWN)
        if section_key == "liquidation" and COURT_ORDERED_RE.search(block.text):
            liquidation_type = LiquidationType.COURT_ORDERED

        field_confidence = {name: consolidated.confidence for name, consolidated in fields.items()}
        field_confidence["entity_name"] = ConfidenceTier.HIGH
        if liquidation_type != LiquidationType.UNKNOWN:
            field_confidence["liquidation_type"] = ConfidenceTier.HIGH

        return GazetteNotice(
            entity_name=block.entity_name,
            entity_type=_entity_type(block.entity_name, section_key),
            registration_no=_value(fields, "registration_no"),
            liquidation_type=liquidation_type,
            liquidators=list(_value(fields, "liquidators") or []),
            contact_emails=list(_value(fields, "contact_emails") or []),
            court_cause_no=_value(fields, "court_cause_no"),
            liquidation_date=_value(fields, "liquidation_date"),
            final_meeting_date=_value(fields, "final_meeting_date"),
            section_name=section_key or section.name,
            notes=collapse_whitespace(block.text)[:NOTE_MAX_CHARS],
            provenance=Provenance(method=ExtractionMethod.PATTERN),
            field_confidence=field_confidence,
        )

    def _match_notice(
        self, notices: Sequence[GazetteNotice], entry: FinalMeetingEntry
    ) -> Optional[int]:
        entry_name = normalize_entity_name(entry.entity_name)

        for idx, notice in enumerate(notices):
            if normalize_entity_name(notice.entity_name) == entry_name:
                return idx

        if entry.registration_no:
            for idx, notice in enumerate(notices):
                if notice.registration_no and notice.registration_no.lower() == entry.registration_no.lower():
                    return idx

        best: Tuple[float, Optional[int]] = (0.0, None)
        for idx, notice in enumerate(notices):
            score = fuzz.ratio(normalize_entity_name(notice.entity_name), entry_name)
            if score >= self.name_match_threshold and score > best[0]:
                best = (score, idx)
        return best[1]


def _value(fields, name: str):
    consolidated = fields.get(name)
    return consolidated.value if consolidated is not None else None


def _entity_type(entity_name: str, section_key: str) -> str:
    if section_key == "partnership" or PARTNERSHIP_RE.search(entity_name.strip()):
        return "Partnership"
    return "Company"
