"""Tests for the transient retry primitive."""

from unittest.mock import MagicMock, patch

import pytest

from stratus.core.errors import ProviderError, TransientError
from stratus.execution.retry import (
    ExponentialBackoff,
    RetryContext,
    error_text,
    execute_with_retry,
    is_transient_error,
)


class TestExponentialBackoff:
    """Tests for ExponentialBackoff strategy."""

    def test_delays_double_until_capped(self):
        """Delays grow by the multiplier and never exceed max_delay."""
        strategy = ExponentialBackoff(base_delay=5.0, max_delay=60.0, multiplier=2.0)
        delays = [strategy.next_delay(i) for i in range(6)]
        assert delays == [5.0, 10.0, 20.0, 40.0, 60.0, 60.0]

    def test_jitter_stays_within_cap(self):
        """Jittered delays stay non-negative and capped."""
        strategy = ExponentialBackoff(base_delay=10.0, max_delay=12.0, jitter=True, jitter_range=0.5)
        for attempt in range(5):
            delay = strategy.next_delay(attempt)
            assert 0.0 <= delay <= 12.0

    def test_should_retry(self):
        strategy = ExponentialBackoff(max_retries=2)
        assert strategy.should_retry(0)
        assert strategy.should_retry(1)
        assert not strategy.should_retry(2)


class TestClassification:
    """Tests for the transient-error classifier."""

    @pytest.mark.parametrize(
        "message",
        [
            "ServiceUnavailable: try later",
            "Status 429 Too Many Requests",
            "HTTP 429",
            "received status code 429: slow down",
            "Request was throttled",
            "GatewayTimeout",
            "connection reset by peer",
            "az deployment group create timed out after 30s",
        ],
    )
    def test_transient(self, message):
        assert is_transient_error(RuntimeError(message))

    def test_code_attribute_counts(self):
        error = ProviderError("deployment failed", code="TooManyRequests")
        assert "TooManyRequests" in error_text(error)
        assert is_transient_error(error)

    @pytest.mark.parametrize(
        "message",
        ["StorageAccountAlreadyTaken", "Website with given name already exists", "AuthorizationFailed"],
    )
    def test_not_transient(self, message):
        assert not is_transient_error(ProviderError(message))

    @pytest.mark.parametrize(
        "message",
        [
            "InvalidTemplateDeployment: tracking id 'c1f4291e-8a7b-4c2d-9e10-5f6a7b8c9d0e'",
            "Resource /subscriptions/0429abcd/resourceGroups/rg not found",
            "Storage account deveuwst4290 is already taken",
            "correlation id 1f-429-a7",
        ],
    )
    def test_429_inside_identifiers_is_not_transient(self, message):
        assert not is_transient_error(ProviderError(message))

    def test_retryable_flag_counts_without_matching_text(self):
        assert is_transient_error(TransientError("az command exceeded its deadline"))

    def test_retryable_override(self):
        assert not is_transient_error(TransientError("odd failure", retryable=False))
        assert is_transient_error(ProviderError("unexpected EOF", retryable=True))


class TestRetryContext:
    """Tests for RetryContext.run."""

    def test_success_first_try(self):
        ctx = RetryContext(ExponentialBackoff(), sleep=MagicMock())
        assert ctx.run(lambda: "ok") == "ok"
        assert ctx.attempt == 1
        assert ctx.delays == []

    def test_raises_last_error_when_exhausted(self):
        sleep = MagicMock()
        ctx = RetryContext(ExponentialBackoff(max_retries=2, base_delay=1.0), sleep=sleep, on_retry=None)
        func = MagicMock(side_effect=TransientError("ServiceUnavailable"))

        with pytest.raises(TransientError):
            ctx.run(func)

        assert func.call_count == 3
        assert sleep.call_count == 2


class TestExecuteWithRetry:
    """Tests for execute_with_retry."""

    def test_success_after_transient_failures(self):
        action = MagicMock(side_effect=[TransientError("ServiceUnavailable"), "done"])
        sleeps: list[float] = []

        result = execute_with_retry(action, max_retries=3, initial_delay=1.0, sleep=sleeps.append)

        assert result.success is True
        assert result.result == "done"
        assert result.attempts == 2
        assert sleeps == [1.0]

    def test_persistent_transient_failure(self):
        """Five ServiceUnavailable responses with max_retries=3: four attempts, then give up."""
        action = MagicMock(side_effect=[RuntimeError("ServiceUnavailable")] * 5)
        sleeps: list[float] = []

        result = execute_with_retry(
            action, max_retries=3, initial_delay=5.0, max_delay=60.0, sleep=sleeps.append
        )

        assert result.success is False
        assert result.attempts == 4
        assert result.is_transient is True
        assert action.call_count == 4
        assert sleeps == [5.0, 10.0, 20.0]
        assert result.delays == sleeps
        assert "ServiceUnavailable" in result.error_message

    def test_failure_log_carries_category(self):
        action = MagicMock(side_effect=ConnectionError("peer went away"))

        with patch("stratus.execution.retry.logger") as mock_logger:
            result = execute_with_retry(action, max_retries=0)

        assert result.success is False
        event, kwargs = mock_logger.debug.call_args.args[0], mock_logger.debug.call_args.kwargs
        assert event == "retry.failed"
        assert kwargs["category"] == "NETWORK"

    def test_business_failure_not_retried(self):
        action = MagicMock(side_effect=ProviderError("StorageAccountAlreadyTaken"))
        sleep = MagicMock()

        result = execute_with_retry(action, max_retries=3, sleep=sleep)

        assert result.success is False
        assert result.attempts == 1
        assert result.is_transient is False
        sleep.assert_not_called()

    def test_custom_classifier(self):
        """An injected classifier overrides the default patterns."""
        action = MagicMock(side_effect=RuntimeError("ServiceUnavailable for Cosmos DB"))

        result = execute_with_retry(
            action, max_retries=3, is_transient=lambda e: "cosmos" not in str(e).lower(), sleep=MagicMock()
        )

        assert result.attempts == 1
        assert result.is_transient is False

    def test_zero_retries(self):
        action = MagicMock(side_effect=TransientError("timeout"))
        result = execute_with_retry(action, max_retries=0, sleep=MagicMock())
        assert result.attempts == 1
        assert result.is_transient is True

    @patch("stratus.execution.retry.time.sleep")
    def test_defaults_to_time_sleep(self, mock_sleep):
        action = MagicMock(side_effect=[TransientError("timeout"), 1])
        result = execute_with_retry(action, max_retries=1, initial_delay=0.5)
        assert result.success
        mock_sleep.assert_called_once_with(0.5)
