"""Gazette notice extraction through the extraction oracle.

Sections are packed into batches by ``BatchPlanner`` and each batch is sent
as one request with one item per section. The response must answer every
section in order; anything else is a contract violation. A batch whose
oracle path is exhausted is re-extracted with ``NoticeParser`` and its
records are marked degraded.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from cayman_watch.core.exceptions import APIClientError, OracleContractError
from cayman_watch.core.oracle_client import (
    BaseOracleClient,
    OracleItem,
    OracleRequest,
    invoke_with_retry,
)
from cayman_watch.core.pipeline_config import PipelineConfig
from cayman_watch.models.documents import Section
from cayman_watch.models.extraction import ConfidenceTier, ExtractionMethod
from cayman_watch.models.records import GazetteNotice, LiquidationType, Provenance, RecordStatus
from cayman_watch.prompts.system_prompts import GAZETTE_NOTICES_PROFILE, GAZETTE_NOTICES_PROMPT
from cayman_watch.services.chunking.batch_planner import BatchPlanner, SectionBatch
from cayman_watch.services.chunking.token_counter import TokenBudget, TokenCounter
from cayman_watch.services.extraction.notice_parser import (
    SECTION_LIQUIDATION_TYPES,
    FinalMeetingEntry,
    GazetteParseResult,
    NoticeParser,
)
from cayman_watch.services.extraction.patterns import to_iso_date
from cayman_watch.utils.json_parser import parse_json_safely
from cayman_watch.utils.logging import get_logger

LOGGER = get_logger(__name__)

_LIQUIDATION_TYPE_ALIASES = {
    "voluntary": LiquidationType.VOLUNTARY,
    "voluntary liquidation": LiquidationType.VOLUNTARY,
    "court-ordered": LiquidationType.COURT_ORDERED,
    "court ordered": LiquidationType.COURT_ORDERED,
    "official": LiquidationType.COURT_ORDERED,
    "bankruptcy": LiquidationType.BANKRUPTCY,
    "receivership": LiquidationType.RECEIVERSHIP,
    "dividend": LiquidationType.DIVIDEND_DISTRIBUTION,
    "dividend distribution": LiquidationType.DIVIDEND_DISTRIBUTION,
}

CONFIDENCE_FIELDS = (
    "entity_name",
    "registration_no",
    "liquidators",
    "liquidation_date",
    "court_cause_no",
    "final_meeting_date",
    "contact_emails",
)


class OracleNotice(BaseModel):
    """One notice as the oracle returns it, coerced to record field shapes."""

    model_config = ConfigDict(extra="ignore")

    entity_name: str = Field(min_length=1)
    entity_type: str = "Company"
    registration_no: Optional[str] = None
    liquidation_type: LiquidationType = LiquidationType.UNKNOWN
    liquidators: List[str] = Field(default_factory=list)
    contact_emails: List[str] = Field(default_factory=list)
    court_cause_no: Optional[str] = None
    liquidation_date: Optional[str] = None
    final_meeting_date: Optional[str] = None
    notes: str = ""

    @field_validator("entity_name", mode="before")
    @classmethod
    def _strip_name(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("entity_type", "notes", mode="before")
    @classmethod
    def _none_to_default(cls, value: Any, info) -> Any:
        if value is None:
            return "Company" if info.field_name == "entity_type" else ""
        return value

    @field_validator("registration_no", "court_cause_no", mode="before")
    @classmethod
    def _to_text(cls, value: Any) -> Optional[str]:
        if value is None or value == "":
            return None
        return str(value).strip()

    @field_validator("liquidation_type", mode="before")
    @classmethod
    def _coerce_type(cls, value: Any) -> LiquidationType:
        if isinstance(value, LiquidationType):
            return value
        if not isinstance(value, str):
            return LiquidationType.UNKNOWN
        for member in LiquidationType:
            if member.value.lower() == value.strip().lower():
                return member
        return _LIQUIDATION_TYPE_ALIASES.get(value.strip().lower(), LiquidationType.UNKNOWN)

    @field_validator("liquidators", "contact_emails", mode="before")
    @classmethod
    def _to_list(cls, value: Any) -> List[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [value] if value.strip() else []
        if not isinstance(value, list):
            raise ValueError("expected a list of strings")
        return [str(item).strip() for item in value if item and str(item).strip()]

    @field_validator("liquidation_date", "final_meeting_date", mode="before")
    @classmethod
    def _to_iso(cls, value: Any) -> Optional[str]:
        if value is None or value == "":
            return None
        return to_iso_date(str(value))


class OracleNoticeExtractor:
    """Extract gazette notices section by section through the oracle."""

    def __init__(
        self,
        oracle: BaseOracleClient,
        parser: Optional[NoticeParser] = None,
        planner: Optional[BatchPlanner] = None,
        token_budget: Optional[TokenBudget] = None,
        max_tokens_per_batch: int = 180000,
        max_retries: int = 3,
        backoff_base_ms: int = 2000,
        oracle_timeout_seconds: Optional[float] = 120.0,
        inter_batch_delay_ms: int = 1000,
        contract_attempts: int = 2,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.oracle = oracle
        self.parser = parser or NoticeParser()
        self.planner = planner or BatchPlanner()
        self.token_budget = token_budget or TokenBudget()
        self.token_counter = TokenCounter()
        self.max_tokens_per_batch = max_tokens_per_batch
        self.max_retries = max_retries
        self.backoff_base_ms = backoff_base_ms
        self.oracle_timeout_seconds = oracle_timeout_seconds
        self.inter_batch_delay_ms = inter_batch_delay_ms
        self.contract_attempts = contract_attempts
        self._sleep = sleep or asyncio.sleep

    @classmethod
    def from_config(
        cls, config: PipelineConfig, oracle: BaseOracleClient, **kwargs: Any
    ) -> "OracleNoticeExtractor":
        kwargs.setdefault("parser", NoticeParser(name_match_threshold=config.name_match_threshold))
        return cls(
            oracle=oracle,
            max_tokens_per_batch=config.max_tokens_per_batch,
            max_retries=config.max_retries,
            backoff_base_ms=config.backoff_base_ms,
            oracle_timeout_seconds=config.oracle_timeout_seconds,
            inter_batch_delay_ms=config.inter_batch_delay_ms,
            **kwargs,
        )

    async def extract(
        self,
        sections: Sequence[Section],
        section_keys: Dict[str, str],
        region_text: str = "",
    ) -> GazetteParseResult:
        """Extract notices from segmented sections.

        Args:
            sections: Sections in document order
            section_keys: Section name to vocabulary key
            region_text: Region of interest, scanned for possible misses

        Returns:
            GazetteParseResult: Cross-referenced notices for the document
        """
        result = GazetteParseResult()
        prompt_tokens = self.token_counter.count_tokens(GAZETTE_NOTICES_PROMPT)
        input_budget = max(1, self.token_budget.input_budget(self.max_tokens_per_batch) - prompt_tokens)
        batches = self.planner.plan(sections, input_budget)

        for batch in batches:
            if batch.batch_index > 0 and self.inter_batch_delay_ms:
                await self._sleep(self.inter_batch_delay_ms / 1000.0)
            await self._extract_batch(batch, section_keys, prompt_tokens, result)

        return self.parser.finalize(result, region_text)

    async def _extract_batch(
        self,
        batch: SectionBatch,
        section_keys: Dict[str, str],
        prompt_tokens: int,
        result: GazetteParseResult,
    ) -> None:
        request = OracleRequest(
            items=[
                OracleItem(item_id=f"section-{idx}", text=section.text)
                for idx, section in enumerate(batch.sections)
            ],
            profile=GAZETTE_NOTICES_PROFILE,
            max_output_tokens=self.token_budget.output_budget(batch.estimated_tokens + prompt_tokens),
        )
        last_error: Optional[Exception] = None

        for contract_attempt in range(1, self.contract_attempts + 1):
            try:
                response = await invoke_with_retry(
                    self.oracle,
                    request,
                    max_attempts=self.max_retries,
                    base_delay_ms=self.backoff_base_ms,
                    timeout_seconds=self.oracle_timeout_seconds,
                    sleep=self._sleep,
                )
            except APIClientError as e:
                last_error = e
                break

            result.input_tokens += response.input_tokens
            result.output_tokens += response.output_tokens

            try:
                per_section = self.parse_response(response.text, len(batch.sections))
            except OracleContractError as e:
                last_error = e
                LOGGER.warning(
                    f"Notice extraction response rejected "
                    f"(attempt {contract_attempt}/{self.contract_attempts}): {e}",
                    extra={"batch_index": batch.batch_index},
                )
                continue

            notice_count = sum(len(notices) for notices in per_section) or 1
            provenance = Provenance(
                method=ExtractionMethod.ORACLE,
                oracle_input_tokens=round(response.input_tokens / notice_count),
                oracle_output_tokens=round(response.output_tokens / notice_count),
            )
            for section, notices in zip(batch.sections, per_section):
                key = section_keys.get(section.name, "")
                self._collect(section, key, notices, provenance, result)
            return

        LOGGER.warning(
            f"Falling back to pattern extraction for batch {batch.batch_index}: {last_error}",
            extra={"sections": [s.name for s in batch.sections]},
        )
        result.degraded = True
        result.errors.append(f"Batch {batch.batch_index} degraded: {last_error}")
        for section in batch.sections:
            key = section_keys.get(section.name, "")
            if key == "final_meeting":
                result.final_meetings.extend(self.parser.parse_final_meetings(section))
                continue
            for notice in self.parser.parse_section(section, key):
                result.notices.append(notice.model_copy(update={"status": RecordStatus.DEGRADED}))

    def parse_response(self, text: str, expected: int) -> List[List[OracleNotice]]:
        """Validate an extraction response: one notice list per section, in order.

        Notices that fail validation are dropped; a malformed section entry or
        a wrong entry count rejects the whole response.

        Raises:
            OracleContractError: If the response breaks the contract
        """
        payload = parse_json_safely(text)
        if payload is None:
            raise OracleContractError("Unparseable notice extraction response")

        entries = payload.get("results") if isinstance(payload, dict) else payload
        if not isinstance(entries, list):
            raise OracleContractError("Notice extraction response holds no result list")
        if len(entries) != expected:
            raise OracleContractError(f"Expected {expected} section results, got {len(entries)}")

        per_section = []
        for position, entry in enumerate(entries):
            raw_notices = entry.get("notices") if isinstance(entry, dict) else None
            if not isinstance(raw_notices, list):
                raise OracleContractError(f"Section result {position} has no notice list")

            notices = []
            for raw in raw_notices:
                if not isinstance(raw, dict):
                    LOGGER.warning(f"Dropping non-object notice in section result {position}")
                    continue
                try:
                    notices.append(OracleNotice.model_validate(raw))
                except PydanticValidationError as e:
                    LOGGER.warning(
                        f"Dropping invalid notice in section result {position}",
                        extra={"errors": e.errors(include_url=False)[:3]},
                    )
            per_section.append(notices)

        return per_section

    def _collect(
        self,
        section: Section,
        key: str,
        notices: Sequence[OracleNotice],
        provenance: Provenance,
        result: GazetteParseResult,
    ) -> None:
        for notice in notices:
            if key == "final_meeting":
                result.final_meetings.append(
                    FinalMeetingEntry(
                        entity_name=notice.entity_name,
                        final_meeting_date=notice.final_meeting_date,
                        registration_no=notice.registration_no,
                        text=notice.notes,
                    )
                )
                continue

            data = notice.model_dump()
            if data["liquidation_type"] == LiquidationType.UNKNOWN:
                data["liquidation_type"] = SECTION_LIQUIDATION_TYPES.get(key, LiquidationType.UNKNOWN)

            field_confidence = {
                name: ConfidenceTier.HIGH for name in CONFIDENCE_FIELDS if data.get(name)
            }
            if data["liquidation_type"] != LiquidationType.UNKNOWN:
                field_confidence["liquidation_type"] = ConfidenceTier.HIGH

            result.notices.append(
                GazetteNotice(
                    **data,
                    section_name=key or section.name,
                    provenance=provenance,
                    field_confidence=field_confidence,
                )
            )
