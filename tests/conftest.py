"""Pytest configuration and fixtures."""

from __future__ import annotations

from collections.abc import Callable
from decimal import Decimal
from typing import Any

import pytest

from wallet_insight.config import (
    AnalysisSettings,
    ChainSettings,
    DatabaseSettings,
    RedisSettings,
    ScoringSettings,
    Settings,
)
from wallet_insight.errors import PriceUnavailableError
from wallet_insight.ingestor.models import OrderingKey


class StaticPriceOracle:
    """Price oracle with one fixed price per mint; counts lookups."""

    def __init__(self, prices: dict[str, Decimal]) -> None:
        self.prices = prices
        self.calls: list[tuple[str, OrderingKey]] = []

    async def price_at(self, token_mint: str, ordering_key: OrderingKey) -> Decimal:
        self.calls.append((token_mint, ordering_key))
        if token_mint not in self.prices:
            raise PriceUnavailableError(token_mint)
        return self.prices[token_mint]


@pytest.fixture
def wallet_address() -> str:
    """Sample Solana wallet address for testing."""
    return "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"


@pytest.fixture
def make_raw_event(wallet_address: str) -> Callable[..., dict[str, Any]]:
    """Factory for raw chain records as returned by an RPC source."""

    def _make(
        event_id: str,
        slot: int,
        amount: str,
        *,
        index: int = 0,
        kind: str = "transfer",
        mint: str = "SOL",
        price: str | None = "1",
        **extra: Any,
    ) -> dict[str, Any]:
        record: dict[str, Any] = {
            "event_id": event_id,
            "wallet_address": wallet_address,
            "slot": slot,
            "intra_slot_index": index,
            "kind": kind,
            "token_mint": mint,
            "amount": amount,
        }
        if price is not None:
            record["price"] = price
        record.update(extra)
        return record

    return _make


@pytest.fixture
def price_oracle() -> StaticPriceOracle:
    """Oracle pricing SOL at 100 and USDC at 1."""
    return StaticPriceOracle({"SOL": Decimal("100"), "USDC": Decimal("1")})


@pytest.fixture
def settings() -> Settings:
    """Settings with fast retries and no external backends."""
    return Settings(
        database=DatabaseSettings(DATABASE_URL=None),
        redis=RedisSettings(REDIS_URL=None),
        chain=ChainSettings(CHAIN_FETCH_MAX_ATTEMPTS=3, CHAIN_FETCH_RETRY_DELAY_SECONDS=0),
        analysis=AnalysisSettings(
            ANALYSIS_WINDOWS_HOURS="24,168",
            ANALYSIS_FRESHNESS_TOLERANCE_SLOTS=0,
            ANALYSIS_SNAPSHOT_BATCH_SIZE=1,
        ),
        scoring=ScoringSettings(
            SCORING_TIMEOUT_SECONDS=1.0,
            SCORING_MAX_ATTEMPTS=3,
            SCORING_RETRY_BASE_DELAY_SECONDS=0,
        ),
    )


@pytest.fixture
def make_price_oracle() -> Callable[[dict[str, Decimal]], StaticPriceOracle]:
    """Factory for oracles with custom fixed prices."""
    return StaticPriceOracle
