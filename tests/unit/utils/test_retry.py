"""Unit tests for retry_with_backoff."""

from unittest.mock import AsyncMock

import pytest

from cayman_watch.core.exceptions import APIClientError, APIRequestRejectedError
from cayman_watch.utils.retry import backoff_delay_seconds, retry_with_backoff


class TestBackoffDelay:

    def test_delay_doubles_per_attempt(self):
        assert backoff_delay_seconds(1, 2000) == 2.0
        assert backoff_delay_seconds(2, 2000) == 4.0
        assert backoff_delay_seconds(3, 2000) == 8.0

    def test_zero_base_delay(self):
        assert backoff_delay_seconds(3, 0) == 0.0


class TestRetryWithBackoff:
    """Tests for the attempt bound and which errors are retried."""

    @pytest.mark.asyncio
    async def test_succeeds_after_transient_failures(self):
        fn = AsyncMock(side_effect=[APIClientError("503"), APIClientError("503"), "ok"])
        sleep = AsyncMock()

        result = await retry_with_backoff(
            fn, max_attempts=3, base_delay_ms=2000, retry_on=(APIClientError,), sleep=sleep
        )

        assert result == "ok"
        assert fn.await_count == 3
        assert [call.args[0] for call in sleep.await_args_list] == [2.0, 4.0]

    @pytest.mark.asyncio
    async def test_raises_last_error_when_exhausted(self):
        fn = AsyncMock(side_effect=[APIClientError("first"), APIClientError("last")])
        sleep = AsyncMock()

        with pytest.raises(APIClientError, match="last"):
            await retry_with_backoff(fn, max_attempts=2, retry_on=(APIClientError,), sleep=sleep)

        assert fn.await_count == 2
        sleep.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_other_errors_propagate_immediately(self):
        fn = AsyncMock(side_effect=KeyError("boom"))
        sleep = AsyncMock()

        with pytest.raises(KeyError):
            await retry_with_backoff(fn, max_attempts=3, retry_on=(APIClientError,), sleep=sleep)

        assert fn.await_count == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_give_up_on_skips_remaining_attempts(self):
        fn = AsyncMock(side_effect=APIRequestRejectedError("400"))
        sleep = AsyncMock()

        with pytest.raises(APIRequestRejectedError):
            await retry_with_backoff(
                fn,
                max_attempts=3,
                retry_on=(APIClientError,),
                give_up_on=(APIRequestRejectedError,),
                sleep=sleep,
            )

        assert fn.await_count == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_attempt_bound(self):
        with pytest.raises(ValueError):
            await retry_with_backoff(AsyncMock(), max_attempts=0)
