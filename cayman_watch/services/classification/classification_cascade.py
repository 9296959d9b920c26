"""Batched article classification with retry and heuristic fallback.

One oracle request is built per batch. Transient oracle failures are retried
with backoff inside ``invoke_with_retry``; a response whose result count or
ordering does not match the batch is a contract violation and the whole
batch is sent again once. When both paths are exhausted every item in the
batch is classified by ``HeuristicClassifier`` and marked degraded.
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError

from cayman_watch.core.exceptions import APIClientError, OracleContractError
from cayman_watch.core.oracle_client import (
    BaseOracleClient,
    OracleItem,
    OracleRequest,
    invoke_with_retry,
)
from cayman_watch.core.pipeline_config import PipelineConfig
from cayman_watch.models.classification import (
    ClassificationItem,
    ClassificationResult,
    OracleClassification,
)
from cayman_watch.models.extraction import ExtractionMethod
from cayman_watch.prompts.system_prompts import ARTICLE_CLASSIFICATION_PROFILE
from cayman_watch.services.chunking.token_counter import TokenBudget, TokenCounter
from cayman_watch.services.classification.fallback_classifier import HeuristicClassifier, needs_review
from cayman_watch.utils.json_parser import parse_json_safely
from cayman_watch.utils.logging import get_logger

LOGGER = get_logger(__name__)

RESULT_LIST_KEYS = ("results", "classifications", "articles", "items")


@dataclass
class BatchClassification:
    """Results for one batch plus what the oracle charged for it."""

    results: List[ClassificationResult] = field(default_factory=list)
    input_tokens: int = 0
    output_tokens: int = 0
    degraded: bool = False
    error: Optional[str] = None


class ClassificationCascade:
    """Classify batches of items: oracle first, heuristics when it fails."""

    def __init__(
        self,
        oracle: Optional[BaseOracleClient],
        fallback: Optional[HeuristicClassifier] = None,
        max_retries: int = 3,
        backoff_base_ms: int = 2000,
        review_confidence_threshold: float = 0.70,
        oracle_timeout_seconds: Optional[float] = 120.0,
        contract_attempts: int = 2,
        token_budget: Optional[TokenBudget] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        """Initialize the cascade.

        Args:
            oracle: Classification oracle; None means heuristics only
            fallback: Heuristic classifier used on oracle failure
            max_retries: Attempts per oracle call for transient failures
            backoff_base_ms: Base delay for exponential backoff
            review_confidence_threshold: Confidence below which results need review
            oracle_timeout_seconds: Call-level timeout
            contract_attempts: Fresh batch submissions allowed on contract violations
            token_budget: Output budget arithmetic
            sleep: Sleep coroutine, replaceable in tests
        """
        self.oracle = oracle
        self.review_confidence_threshold = review_confidence_threshold
        self.fallback = fallback or HeuristicClassifier(review_confidence_threshold)
        self.max_retries = max_retries
        self.backoff_base_ms = backoff_base_ms
        self.oracle_timeout_seconds = oracle_timeout_seconds
        self.contract_attempts = contract_attempts
        self.token_budget = token_budget or TokenBudget()
        self.token_counter = TokenCounter()
        self._sleep = sleep

    @classmethod
    def from_config(
        cls, config: PipelineConfig, oracle: Optional[BaseOracleClient], **kwargs: Any
    ) -> "ClassificationCascade":
        return cls(
            oracle=oracle,
            max_retries=config.max_retries,
            backoff_base_ms=config.backoff_base_ms,
            review_confidence_threshold=config.review_confidence_threshold,
            oracle_timeout_seconds=config.oracle_timeout_seconds,
            **kwargs,
        )

    async def classify(self, items: Sequence[ClassificationItem]) -> List[ClassificationResult]:
        """Classify a batch; one result per item, in input order."""
        return (await self.classify_batch(items)).results

    async def classify_batch(self, items: Sequence[ClassificationItem]) -> BatchClassification:
        """Classify a batch and report token usage and degradation.

        Args:
            items: Items of one batch

        Returns:
            BatchClassification: Positionally paired results
        """
        if not items:
            return BatchClassification()

        if self.oracle is None:
            return self._degrade(items, "no classification oracle configured")

        request = self.build_request(items)
        last_error: Optional[Exception] = None
        input_tokens = 0
        output_tokens = 0

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

            input_tokens += response.input_tokens
            output_tokens += response.output_tokens

            try:
                results = self.parse_results(response.text, items)
            except OracleContractError as e:
                last_error = e
                LOGGER.warning(
                    f"Classification response rejected "
                    f"(attempt {contract_attempt}/{self.contract_attempts}): {e}",
                    extra={"batch_size": len(items)},
                )
                continue

            LOGGER.info(
                f"Classified {len(results)} items",
                extra={"input_tokens": input_tokens, "output_tokens": output_tokens},
            )
            return BatchClassification(
                results=results, input_tokens=input_tokens, output_tokens=output_tokens
            )

        outcome = self._degrade(items, str(last_error))
        outcome.input_tokens = input_tokens
        outcome.output_tokens = output_tokens
        return outcome

    def build_request(self, items: Sequence[ClassificationItem]) -> OracleRequest:
        oracle_items = [
            OracleItem(item_id=item.item_id, text=f"Title: {item.title}\nExcerpt: {item.excerpt}")
            for item in items
        ]
        estimated_input = sum(self.token_counter.count_tokens(item.text) for item in oracle_items)
        return OracleRequest(
            items=oracle_items,
            profile=ARTICLE_CLASSIFICATION_PROFILE,
            max_output_tokens=self.token_budget.output_budget(estimated_input),
        )

    def parse_results(
        self, text: str, items: Sequence[ClassificationItem]
    ) -> List[ClassificationResult]:
        """Validate an oracle response against the submitted batch.

        Raises:
            OracleContractError: If the payload is unparseable, the result count
                differs from the item count, an element is malformed, or an
                echoed id is out of place
        """
        payload = parse_json_safely(text)
        if payload is None:
            raise OracleContractError("Unparseable classification response")

        entries = _result_list(payload)
        if entries is None:
            raise OracleContractError("Classification response holds no result list")

        if len(entries) != len(items):
            raise OracleContractError(
                f"Expected {len(items)} classification results, got {len(entries)}"
            )

        results = []
        for position, (item, entry) in enumerate(zip(items, entries)):
            if not isinstance(entry, dict):
                raise OracleContractError(f"Result {position} is not an object")
            try:
                parsed = OracleClassification.model_validate(entry)
            except PydanticValidationError as e:
                raise OracleContractError(f"Result {position} is malformed: {e}", e) from e

            if parsed.id is not None and parsed.id != str(item.item_id):
                raise OracleContractError(
                    f"Result {position} answers item {parsed.id}, expected {item.item_id}"
                )

            results.append(
                ClassificationResult(
                    item_id=item.item_id,
                    is_cayman_related=parsed.is_cayman_related,
                    confidence=parsed.confidence,
                    signals=parsed.signals,
                    entities=[entity.name for entity in parsed.entities],
                    reasoning=parsed.reasoning,
                    method=ExtractionMethod.ORACLE,
                    requires_review=needs_review(
                        parsed.confidence, parsed.signals, self.review_confidence_threshold
                    ),
                )
            )

        return results

    def _degrade(self, items: Sequence[ClassificationItem], reason: str) -> BatchClassification:
        return BatchClassification(
            results=self.fallback.classify(items, reason=reason),
            degraded=True,
            error=reason,
        )


def _result_list(payload: Any) -> Optional[List[Any]]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in RESULT_LIST_KEYS:
            if isinstance(payload.get(key), list):
                return payload[key]
        if "cayman_relevant" in payload or "is_cayman_related" in payload:
            return [payload]
    return None


async def classify(
    batch: Sequence[ClassificationItem],
    oracle: Optional[BaseOracleClient],
    **kwargs: Any,
) -> List[ClassificationResult]:
    """Classify one batch with a default-configured cascade."""
    return await ClassificationCascade(oracle, **kwargs).classify(batch)
