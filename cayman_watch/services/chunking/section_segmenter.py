"""Section segmentation for long gazette-style documents.

This module finds named section boundaries in flat document text. Headings
must start a line, table-of-contents entries are rejected, and stop headings
close the region of interest.
"""

import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from cayman_watch.core.pipeline_config import SectionTarget
from cayman_watch.models.documents import Section
from cayman_watch.services.chunking.token_counter import TokenCounter
from cayman_watch.utils.logging import get_logger

LOGGER = get_logger(__name__)


@dataclass(frozen=True)
class HeadingMatch:
    """Location of an accepted heading."""

    target: SectionTarget
    start: int
    end: int


class SectionSegmenter:
    """Split document text into the sections of a controlled vocabulary.

    Targets are searched in vocabulary order, each one only after the
    previously accepted heading, so earlier occurrences are never re-matched.
    A candidate is rejected when it looks like a contents-page entry; any one
    of the contents signals is enough.
    """

    CONTENTS_MARKER = "CONTENTS"
    # "....Pg.1387", "… 12", "Pg 4"
    PAGE_REFERENCE_RE = re.compile(r"(?:\.{3,}|…)|\bPg\.?\s*\d+", re.IGNORECASE)
    # "Grand Court Notices...None"
    TRAILING_NONE_RE = re.compile(r"\bNone\s*$")

    def __init__(
        self,
        token_counter: Optional[TokenCounter] = None,
        contents_proximity_chars: int = 500,
    ):
        """Initialize section segmenter.

        Args:
            token_counter: Token counter instance (creates new if None)
            contents_proximity_chars: How far before a heading a "CONTENTS"
                marker still marks it as an index entry
        """
        self.token_counter = token_counter or TokenCounter()
        self.contents_proximity_chars = contents_proximity_chars
        self._compiled: Dict[Tuple[str, bool], re.Pattern] = {}

    def segment(
        self,
        text: str,
        targets: Sequence[SectionTarget],
        stops: Sequence[SectionTarget] = (),
        start: int = 0,
        end: Optional[int] = None,
    ) -> List[Section]:
        """Find the target sections in ``text[start:end]``.

        Args:
            text: Full document text
            targets: Ordered target vocabulary
            stops: Headings that close the region of interest
            start: Offset where the region of interest begins
            end: Offset where it ends (defaults to end of text)

        Returns:
            List[Section]: Sections sorted by start offset; empty when no
            target heading is present
        """
        end = len(text) if end is None else end
        cursor = start
        found: List[HeadingMatch] = []

        for target in targets:
            match = self.find_heading(text, target, cursor, end)
            if match is None:
                LOGGER.info(
                    f"Section not found: {target.name}",
                    extra={"section": target.key},
                )
                continue
            found.append(match)
            cursor = match.end

        if not found:
            return []

        first_start = min(match.start for match in found)
        stop_at = self._first_stop(text, stops, first_start, end)
        if stop_at is not None:
            dropped = [m for m in found if m.start >= stop_at]
            if dropped:
                LOGGER.info(
                    f"Dropping {len(dropped)} section(s) after stop heading",
                    extra={"sections": [m.target.key for m in dropped]},
                )
            found = [m for m in found if m.start < stop_at]
            end = stop_at

        found.sort(key=lambda m: m.start)

        sections = []
        for idx, match in enumerate(found):
            section_end = found[idx + 1].start if idx + 1 < len(found) else end
            content = text[match.start:section_end]
            sections.append(
                Section(
                    name=match.target.name,
                    start=match.start,
                    end=section_end,
                    text=content,
                    estimated_tokens=self.token_counter.count_tokens(content),
                )
            )

        LOGGER.info(
            f"Segmented {len(sections)}/{len(targets)} sections",
            extra={"sections": [s.name for s in sections]},
        )
        return sections

    def find_heading(
        self,
        text: str,
        target: SectionTarget,
        pos: int = 0,
        endpos: Optional[int] = None,
    ) -> Optional[HeadingMatch]:
        """First accepted heading of ``target`` at or after ``pos``.

        Args:
            text: Full document text
            target: Section whose heading patterns are tried
            pos: Search start offset
            endpos: Search end offset

        Returns:
            The earliest line-start, non-contents match over all of the
            target's patterns, or None
        """
        endpos = len(text) if endpos is None else endpos
        best: Optional[HeadingMatch] = None

        for pattern in target.patterns:
            regex = self._heading_regex(pattern, case_sensitive=False)
            for match in regex.finditer(text, pos, endpos):
                heading_start = match.start("heading")
                heading_end = match.end("heading")
                if self.is_contents_reference(text, heading_start, heading_end, floor=pos):
                    LOGGER.debug(
                        f"Rejected contents-page reference for {target.name} at {heading_start}"
                    )
                    continue
                if best is None or heading_start < best.start:
                    best = HeadingMatch(target=target, start=heading_start, end=heading_end)
                break

        return best

    def is_contents_reference(self, text: str, start: int, end: int, floor: int = 0) -> bool:
        """Whether a heading match at ``text[start:end]`` is an index entry.

        Signals: dot leaders or a "Pg." page number after the heading on the
        same line, a trailing "None" on that line, or a heading that still
        belongs to a contents block opened shortly before it.

        Args:
            text: Full document text
            start: Heading start offset
            end: Heading end offset
            floor: Offset before which a "CONTENTS" marker is not considered
        """
        line_end = text.find("\n", end)
        if line_end == -1:
            line_end = len(text)
        if self.is_index_entry(text[end:line_end]):
            return True

        return self.in_contents_block(text, start, floor)

    def is_index_entry(self, line: str) -> bool:
        """Whether a line reads like a contents-page entry."""
        return bool(self.PAGE_REFERENCE_RE.search(line) or self.TRAILING_NONE_RE.search(line))

    def in_contents_block(self, text: str, start: int, floor: int = 0) -> bool:
        """Whether the line at ``start`` sits inside a contents block.

        A block opens at a "CONTENTS" marker no further than the proximity
        window back (and not before ``floor``) and runs over consecutive index
        entries. Blank lines are skipped; any other line closes it.
        """
        window_start = max(floor, start - self.contents_proximity_chars)
        marker = text.rfind(self.CONTENTS_MARKER, window_start, start)
        if marker == -1:
            return False

        line_start = text.rfind("\n", 0, start) + 1
        marker_line_end = text.find("\n", marker)
        if marker_line_end == -1 or marker_line_end >= line_start:
            return True

        for line in text[marker_line_end + 1:line_start].splitlines():
            if line.strip() and not self.is_index_entry(line):
                return False
        return True

    def locate_region(
        self,
        text: str,
        start_pattern: Optional[str],
        end_pattern: Optional[str],
    ) -> Optional[Tuple[int, int]]:
        """Find a master-heading bounded region such as COMMERCIAL..GOVERNMENT.

        Master headings are matched case-sensitively and must occupy a whole
        line.

        Args:
            text: Full document text
            start_pattern: Regex of the opening master heading
            end_pattern: Regex of the closing master heading

        Returns:
            (start, end) offsets, or None when the opening heading is absent
        """
        if not start_pattern:
            return None

        region_start = self._find_master_heading(text, start_pattern, 0)
        if region_start is None:
            LOGGER.warning("Bounding region heading not found, using whole document")
            return None

        region_end = len(text)
        if end_pattern:
            closing = self._find_master_heading(text, end_pattern, region_start + 1)
            if closing is not None:
                region_end = closing

        return region_start, region_end

    def fallback_section(self, text: str, start: int, end: int, name: str) -> Section:
        """A single section covering a whole region, used when no target matched."""
        content = text[start:end]
        return Section(
            name=name,
            start=start,
            end=end,
            text=content,
            estimated_tokens=self.token_counter.count_tokens(content),
        )

    def _first_stop(
        self,
        text: str,
        stops: Sequence[SectionTarget],
        pos: int,
        endpos: int,
    ) -> Optional[int]:
        positions = []
        for stop in stops:
            match = self.find_heading(text, stop, pos + 1, endpos)
            if match is not None:
                positions.append(match.start)
        return min(positions) if positions else None

    def _find_master_heading(self, text: str, pattern: str, pos: int) -> Optional[int]:
        regex = self._heading_regex(pattern + r"[ \t]*$", case_sensitive=True)
        for match in regex.finditer(text, pos):
            heading_start = match.start("heading")
            # A master heading listed in the contents is followed by more entries
            if self.in_contents_block(text, heading_start, pos) and self._next_line_is_index_entry(
                text, match.end()
            ):
                continue
            return heading_start
        return None

    def _next_line_is_index_entry(self, text: str, pos: int) -> bool:
        for line in text[pos:].splitlines()[1:]:
            if line.strip():
                return self.is_index_entry(line)
        return False

    def _heading_regex(self, pattern: str, case_sensitive: bool) -> re.Pattern:
        key = (pattern, case_sensitive)
        if key not in self._compiled:
            flags = re.MULTILINE if case_sensitive else re.MULTILINE | re.IGNORECASE
            self._compiled[key] = re.compile(rf"^[ \t]*(?P<heading>{pattern})", flags)
        return self._compiled[key]
