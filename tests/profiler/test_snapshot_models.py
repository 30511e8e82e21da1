"""Tests for profiler data models."""

from decimal import Decimal

import pytest

from wallet_insight.ingestor.models import OrderingKey
from wallet_insight.profiler.models import (
    EMPTY_PORTFOLIO_MINT,
    Holding,
    PortfolioSnapshot,
    RealizedGain,
)


@pytest.fixture
def snapshot(wallet_address: str) -> PortfolioSnapshot:
    return PortfolioSnapshot(
        wallet_address=wallet_address,
        as_of=OrderingKey(50, 2),
        holdings={
            "USDC": Holding("USDC", Decimal(300), Decimal(1)),
            "SOL": Holding("SOL", Decimal(2), Decimal(100)),
        },
        realized_gains=(RealizedGain("e9", "SOL", Decimal(1), Decimal(150), Decimal(100)),),
        cumulative_realized_gain=Decimal(75),
        event_count=9,
    )


def test_holding_cost_value() -> None:
    assert Holding("SOL", Decimal("1.5"), Decimal(10)).cost_value == Decimal(15)


def test_realized_gain_amount() -> None:
    gain = RealizedGain("e1", "SOL", Decimal(4), Decimal(2), Decimal(1))
    assert gain.amount == Decimal(4)


class TestPortfolioSnapshot:
    def test_holdings_are_read_only_and_sorted(self, snapshot: PortfolioSnapshot) -> None:
        assert list(snapshot.holdings) == ["SOL", "USDC"]
        with pytest.raises(TypeError):
            snapshot.holdings["BONK"] = Holding("BONK", Decimal(1), Decimal(0))  # type: ignore[index]

    def test_totals(self, snapshot: PortfolioSnapshot) -> None:
        assert snapshot.realized_gain == Decimal(50)
        assert snapshot.total_cost_basis == Decimal(500)

    def test_records_round_trip(self, snapshot: PortfolioSnapshot) -> None:
        records = snapshot.to_records()

        assert len(records) == 2
        assert {r["token_mint"] for r in records} == {"SOL", "USDC"}
        assert all(r["as_of_slot"] == 50 and r["as_of_index"] == 2 for r in records)

        restored = PortfolioSnapshot.from_records(records)
        assert restored.holdings == snapshot.holdings
        assert restored.as_of == snapshot.as_of
        assert restored.cumulative_realized_gain == Decimal(75)
        assert restored.event_count == 9
        assert restored.realized_gains == ()

    def test_empty_portfolio_keeps_placeholder_record(self, wallet_address: str) -> None:
        empty = PortfolioSnapshot(wallet_address=wallet_address, as_of=OrderingKey(3, 0), event_count=2)

        records = empty.to_records()

        assert len(records) == 1
        assert records[0]["token_mint"] == EMPTY_PORTFOLIO_MINT
        restored = PortfolioSnapshot.from_records(records)
        assert dict(restored.holdings) == {}
        assert restored.event_count == 2

    def test_from_records_requires_rows(self) -> None:
        with pytest.raises(ValueError):
            PortfolioSnapshot.from_records([])
