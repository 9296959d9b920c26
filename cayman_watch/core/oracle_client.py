"""Extraction/classification oracle clients.

The pipeline talks to the oracle through ``BaseOracleClient.invoke`` only. A
request carries a batch of text items and an instruction profile; the
response is the raw completion text plus token usage. Parsing and count
validation of that text belong to the caller.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
from httpx import HTTPStatusError, TimeoutException

from cayman_watch.core.config import OracleSettings
from cayman_watch.core.exceptions import (
    APIClientError,
    APIRequestRejectedError,
    APITimeoutError,
    ConfigurationError,
)
from cayman_watch.prompts.system_prompts import (
    ARTICLE_CLASSIFICATION_PROFILE,
    GAZETTE_NOTICES_PROFILE,
    INSTRUCTION_PROFILES,
)
from cayman_watch.utils.logging import get_logger
from cayman_watch.utils.retry import retry_with_backoff

LOGGER = get_logger(__name__)


@dataclass(frozen=True)
class OracleItem:
    item_id: str
    text: str


@dataclass
class OracleRequest:
    """One batched oracle call.

    Attributes:
        items: Text items, answered positionally
        profile: Instruction profile name (see ``cayman_watch.prompts``)
        max_output_tokens: Response budget for this call
    """

    items: List[OracleItem]
    profile: str
    max_output_tokens: int = 8000


@dataclass
class OracleResponse:
    text: str
    input_tokens: int = 0
    output_tokens: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)


class BaseOracleClient(ABC):
    """Contract every oracle backend implements."""

    @abstractmethod
    async def invoke(self, request: OracleRequest) -> OracleResponse:
        """Send one batched request.

        Raises:
            APITimeoutError: If the call exceeds its timeout
            APIRequestRejectedError: If the request itself was refused
            APIClientError: For any other transport or server failure
        """


def render_items(items: List[OracleItem]) -> str:
    """Render items as delimited blocks the instruction profiles refer to."""
    blocks = [f"Total items: {len(items)}"]
    for idx, item in enumerate(items, start=1):
        blocks.append(f"### ITEM {idx} (id: {item.item_id})\n{item.text}")
    return "\n\n".join(blocks)


class HttpOracleClient(BaseOracleClient):
    """OpenAI-compatible chat-completions client (OpenRouter by default).

    The client makes exactly one HTTP attempt per ``invoke``; retries are
    owned by the caller through ``retry_with_backoff``.
    """

    def __init__(
        self,
        api_key: str,
        api_url: str = "https://openrouter.ai/api/v1/chat/completions",
        models: Optional[Dict[str, str]] = None,
        default_model: str = "openai/gpt-4o-mini",
        timeout: float = 120.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the oracle client.

        Args:
            api_key: Bearer token for the endpoint
            api_url: Full chat-completions URL
            models: Model name per instruction profile
            default_model: Model for profiles without an entry in ``models``
            timeout: Per-call timeout in seconds
            http_client: Shared client, mainly for tests
        """
        if not api_key:
            raise ConfigurationError("Oracle API key is not configured")

        self.api_key = api_key
        self.api_url = api_url
        self.models = dict(models or {})
        self.default_model = default_model
        self.timeout = timeout
        self._http_client = http_client

        LOGGER.info(
            f"Initialized oracle client for {api_url}",
            extra={"models": self.models, "timeout": timeout},
        )

    @classmethod
    def from_settings(cls, settings: OracleSettings) -> "HttpOracleClient":
        return cls(
            api_key=settings.api_key,
            api_url=settings.api_url,
            models={
                GAZETTE_NOTICES_PROFILE: settings.extraction_model,
                ARTICLE_CLASSIFICATION_PROFILE: settings.classification_model,
            },
            default_model=settings.extraction_model,
            timeout=settings.timeout_seconds,
        )

    def build_payload(self, request: OracleRequest) -> Dict[str, Any]:
        system_prompt = INSTRUCTION_PROFILES.get(request.profile)
        if system_prompt is None:
            raise ConfigurationError(f"Unknown instruction profile: {request.profile}")

        return {
            "model": self.models.get(request.profile, self.default_model),
            "messages": [
                {"role": "system", "content": system_prompt.strip()},
                {"role": "user", "content": render_items(request.items)},
            ],
            "temperature": 0.0,
            "max_tokens": request.max_output_tokens,
        }

    async def invoke(self, request: OracleRequest) -> OracleResponse:
        payload = self.build_payload(request)
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        LOGGER.debug(
            f"Calling oracle: {self.api_url}",
            extra={"profile": request.profile, "items": len(request.items)},
        )

        try:
            if self._http_client is not None:
                response = await self._http_client.post(
                    self.api_url, headers=headers, json=payload, timeout=self.timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(self.api_url, headers=headers, json=payload)
            response.raise_for_status()
            body = response.json()

        except HTTPStatusError as e:
            status_code = e.response.status_code
            error_body = e.response.text[:500]
            LOGGER.warning(
                "Oracle HTTP error",
                extra={"status_code": status_code, "error_body": error_body},
            )
            if 400 <= status_code < 500 and status_code != 429:
                raise APIRequestRejectedError(
                    f"Oracle rejected request {status_code}: {error_body}", e
                ) from e
            raise APIClientError(f"Oracle HTTP error {status_code}", e) from e

        except TimeoutException as e:
            LOGGER.warning("Oracle call timed out", extra={"timeout": self.timeout})
            raise APITimeoutError(f"Oracle call timed out after {self.timeout}s", e) from e

        except (httpx.HTTPError, ValueError) as e:
            raise APIClientError(f"Oracle call failed: {e}", e) from e

        return self._parse_completion(body)

    @staticmethod
    def _parse_completion(body: Dict[str, Any]) -> OracleResponse:
        choices = body.get("choices") or []
        if not choices:
            LOGGER.error(f"Unexpected oracle response format: {str(body)[:500]}")
            raise APIClientError("Invalid response format from oracle")

        content = (choices[0].get("message") or {}).get("content") or ""
        if not content:
            LOGGER.warning("Empty response from oracle")

        usage = body.get("usage") or {}
        return OracleResponse(
            text=content,
            input_tokens=int(usage.get("prompt_tokens") or 0),
            output_tokens=int(usage.get("completion_tokens") or 0),
            metadata={"model": body.get("model"), "id": body.get("id")},
        )


async def invoke_with_retry(
    oracle: BaseOracleClient,
    request: OracleRequest,
    max_attempts: int = 3,
    base_delay_ms: int = 2000,
    timeout_seconds: Optional[float] = None,
    sleep: Optional[Callable[[float], Awaitable[None]]] = None,
) -> OracleResponse:
    """Invoke the oracle with a call-level timeout and exponential backoff.

    Transient failures (timeouts, rate limits, server errors) are retried up
    to ``max_attempts`` in total. Rejected requests fail on the first attempt.

    Raises:
        APIClientError: Once attempts are exhausted or the request is rejected
    """

    async def attempt() -> OracleResponse:
        if timeout_seconds is None:
            return await oracle.invoke(request)
        try:
            return await asyncio.wait_for(oracle.invoke(request), timeout=timeout_seconds)
        except asyncio.TimeoutError as e:
            raise APITimeoutError(f"Oracle call exceeded {timeout_seconds}s", e) from e

    return await retry_with_backoff(
        attempt,
        max_attempts=max_attempts,
        base_delay_ms=base_delay_ms,
        retry_on=(APIClientError,),
        give_up_on=(APIRequestRejectedError,),
        operation=f"oracle call ({request.profile}, {len(request.items)} items)",
        sleep=sleep,
    )
