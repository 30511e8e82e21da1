"""Tests for the retry policy."""

from __future__ import annotations

import pytest

from wallet_insight.errors import ChainDataUnavailableError
from wallet_insight.retry import RetryError, RetryPolicy


class Flaky:
    def __init__(self, failures: int, error: Exception) -> None:
        self.failures = failures
        self.error = error
        self.calls = 0

    async def __call__(self, value: str) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return value


class TestRetryPolicy:
    def test_delays_are_exponential_and_capped(self) -> None:
        policy = RetryPolicy(max_attempts=5, base_delay=1.0, multiplier=3.0, max_delay=5.0)
        assert list(policy.delays()) == [1.0, 3.0, 5.0, 5.0]

    def test_single_attempt_has_no_delays(self) -> None:
        assert list(RetryPolicy(max_attempts=1).delays()) == []

    @pytest.mark.parametrize("kwargs", [{"max_attempts": 0}, {"base_delay": -1.0}, {"max_delay": -1.0}])
    def test_invalid_parameters(self, kwargs) -> None:
        with pytest.raises(ValueError):
            RetryPolicy(**kwargs)

    @pytest.mark.asyncio
    async def test_succeeds_after_transient_failures(self) -> None:
        func = Flaky(2, ChainDataUnavailableError("busy"))
        policy = RetryPolicy(max_attempts=3, base_delay=0, retry_on=(ChainDataUnavailableError,))

        assert await policy.run(func, "ok") == "ok"
        assert func.calls == 3

    @pytest.mark.asyncio
    async def test_exhausted_attempts_raise_retry_error(self) -> None:
        error = ChainDataUnavailableError("busy")
        func = Flaky(10, error)
        policy = RetryPolicy(max_attempts=3, base_delay=0)

        with pytest.raises(RetryError) as exc_info:
            await policy.run(func, "ok")

        assert func.calls == 3
        assert exc_info.value.last_exception is error

    @pytest.mark.asyncio
    async def test_other_errors_propagate_immediately(self) -> None:
        func = Flaky(1, ValueError("bad input"))
        policy = RetryPolicy(max_attempts=3, base_delay=0, retry_on=(ChainDataUnavailableError,))

        with pytest.raises(ValueError, match="bad input"):
            await policy.run(func, "ok")
        assert func.calls == 1
