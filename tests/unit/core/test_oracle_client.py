"""Unit tests for HttpOracleClient and invoke_with_retry."""

import asyncio
import json
from unittest.mock import AsyncMock

import httpx
import pytest

from cayman_watch.core.exceptions import (
    APIClientError,
    APIRequestRejectedError,
    APITimeoutError,
    ConfigurationError,
)
from cayman_watch.core.oracle_client import (
    BaseOracleClient,
    HttpOracleClient,
    OracleItem,
    OracleRequest,
    OracleResponse,
    invoke_with_retry,
    render_items,
)
from cayman_watch.prompts.system_prompts import (
    ARTICLE_CLASSIFICATION_PROFILE,
    GAZETTE_NOTICES_PROFILE,
    INSTRUCTION_PROFILES,
)

API_URL = "https://oracle.test/v1/chat/completions"

COMPLETION = {
    "id": "cmpl-1",
    "model": "test-model",
    "choices": [{"message": {"role": "assistant", "content": '{"results": []}'}}],
    "usage": {"prompt_tokens": 120, "completion_tokens": 30},
}


def _request(profile: str = GAZETTE_NOTICES_PROFILE) -> OracleRequest:
    return OracleRequest(
        items=[OracleItem(item_id="section-0", text="Liquidation Notices\nALPHA HOLDINGS LTD")],
        profile=profile,
        max_output_tokens=9000,
    )


def _client(handler) -> HttpOracleClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpOracleClient(
        api_key="test-key",
        api_url=API_URL,
        models={GAZETTE_NOTICES_PROFILE: "extraction-model"},
        default_model="default-model",
        http_client=http_client,
    )


class TestHttpOracleClient:
    """Tests for the chat-completions transport."""

    @pytest.mark.asyncio
    async def test_completion_parsed(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=COMPLETION)

        response = await _client(handler).invoke(_request())

        assert response.text == '{"results": []}'
        assert response.input_tokens == 120
        assert response.output_tokens == 30
        assert response.metadata == {"model": "test-model", "id": "cmpl-1"}
        assert seen["auth"] == "Bearer test-key"
        assert seen["body"]["model"] == "extraction-model"
        assert seen["body"]["max_tokens"] == 9000
        assert seen["body"]["temperature"] == 0.0

    def test_payload_messages(self):
        payload = _client(lambda request: httpx.Response(200)).build_payload(
            _request(ARTICLE_CLASSIFICATION_PROFILE)
        )

        system, user = payload["messages"]
        assert payload["model"] == "default-model"
        assert system["content"] == INSTRUCTION_PROFILES[ARTICLE_CLASSIFICATION_PROFILE].strip()
        assert user["content"].startswith("Total items: 1")
        assert "### ITEM 1 (id: section-0)" in user["content"]

    def test_unknown_profile_rejected(self):
        client = _client(lambda request: httpx.Response(200))

        with pytest.raises(ConfigurationError):
            client.build_payload(_request("balance_sheets"))

    def test_missing_api_key(self):
        with pytest.raises(ConfigurationError):
            HttpOracleClient(api_key="")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [400, 401, 422])
    async def test_client_errors_are_rejections(self, status_code):
        client = _client(lambda request: httpx.Response(status_code, text="bad request"))

        with pytest.raises(APIRequestRejectedError):
            await client.invoke(_request())

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [429, 500, 503])
    async def test_transient_statuses_are_retryable(self, status_code):
        client = _client(lambda request: httpx.Response(status_code, text="busy"))

        with pytest.raises(APIClientError) as excinfo:
            await client.invoke(_request())

        assert not isinstance(excinfo.value, APIRequestRejectedError)

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(APITimeoutError):
            await _client(handler).invoke(_request())

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(APIClientError):
            await _client(handler).invoke(_request())

    @pytest.mark.asyncio
    async def test_missing_choices(self):
        client = _client(lambda request: httpx.Response(200, json={"choices": []}))

        with pytest.raises(APIClientError, match="Invalid response format"):
            await client.invoke(_request())


class TestRenderItems:

    def test_items_numbered_with_ids(self):
        text = render_items([OracleItem("a", "first"), OracleItem("b", "second")])

        assert text == "Total items: 2\n\n### ITEM 1 (id: a)\nfirst\n\n### ITEM 2 (id: b)\nsecond"


class SlowOracle(BaseOracleClient):
    def __init__(self):
        self.calls = 0

    async def invoke(self, request: OracleRequest) -> OracleResponse:
        self.calls += 1
        await asyncio.sleep(1)
        return OracleResponse(text="[]")


class TestInvokeWithRetry:
    """Tests for call-level timeouts and retries around an oracle."""

    @pytest.mark.asyncio
    async def test_call_timeout_is_retried_then_raised(self):
        oracle = SlowOracle()
        sleep = AsyncMock()

        with pytest.raises(APITimeoutError):
            await invoke_with_retry(
                oracle, _request(), max_attempts=2, base_delay_ms=0, timeout_seconds=0.01, sleep=sleep
            )

        assert oracle.calls == 2
        sleep.assert_awaited_once_with(0.0)

    @pytest.mark.asyncio
    async def test_returns_first_success(self):
        oracle = AsyncMock(spec=BaseOracleClient)
        oracle.invoke.side_effect = [APIClientError("HTTP 500"), OracleResponse(text="[]")]

        response = await invoke_with_retry(oracle, _request(), base_delay_ms=0, sleep=AsyncMock())

        assert response.text == "[]"
        assert oracle.invoke.await_count == 2
