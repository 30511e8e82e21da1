"""Tests for windowed portfolio metrics."""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest

from wallet_insight.ingestor.models import OrderingKey
from wallet_insight.profiler.models import Holding, PortfolioSnapshot
from wallet_insight.scoring.metrics import MetricsEngine

WALLET = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"


def _snapshot(slot: int, **quantities: str) -> PortfolioSnapshot:
    return PortfolioSnapshot(
        wallet_address=WALLET,
        as_of=OrderingKey(slot, 0),
        holdings={mint: Holding(mint, Decimal(q), Decimal(0)) for mint, q in quantities.items()},
    )


@pytest.fixture
def snapshots() -> list[PortfolioSnapshot]:
    """SOL valued at 100, 200, 100, 300 at slots 0, 5, 12, 15."""
    return [
        _snapshot(0, SOL="1"),
        _snapshot(5, SOL="2"),
        _snapshot(12, SOL="1"),
        _snapshot(15, SOL="3"),
    ]


@pytest.fixture
def engine(price_oracle) -> MetricsEngine:
    # One second per slot keeps window arithmetic readable.
    return MetricsEngine(price_oracle, slot_duration_seconds=1.0)


class TestSeriesSelection:
    def test_window_slots(self, engine: MetricsEngine) -> None:
        assert engine.window_slots(timedelta(seconds=10)) == 10
        assert engine.window_slots(timedelta(milliseconds=10)) == 1

    def test_bracketing_snapshot_included(self, engine: MetricsEngine, snapshots) -> None:
        series = engine.select_series(snapshots, timedelta(seconds=10))
        assert [s.as_of.slot for s in series] == [5, 12, 15]

    def test_window_longer_than_history(self, engine: MetricsEngine, snapshots) -> None:
        series = engine.select_series(snapshots, timedelta(seconds=100))
        assert [s.as_of.slot for s in series] == [0, 5, 12, 15]

    def test_empty(self, engine: MetricsEngine) -> None:
        assert engine.select_series([], timedelta(seconds=10)) == []

    def test_invalid_slot_duration(self, price_oracle) -> None:
        with pytest.raises(ValueError):
            MetricsEngine(price_oracle, slot_duration_seconds=0)


class TestCompute:
    @pytest.mark.asyncio
    async def test_window_metrics(self, engine: MetricsEngine, snapshots) -> None:
        (window,) = await engine.compute(snapshots, [timedelta(seconds=10)])

        assert window.sample_count == 3
        assert window.start_value == Decimal(200)
        assert window.end_value == Decimal(300)
        assert window.return_pct == pytest.approx(50.0)
        # per-snapshot returns: -0.5, +2.0
        assert window.volatility == pytest.approx(1.25)
        assert window.max_drawdown == pytest.approx(0.5)
        assert window.diversification_index == pytest.approx(0.0)
        assert not window.insufficient_history

    @pytest.mark.asyncio
    async def test_windows_sorted_shortest_first(self, engine: MetricsEngine, snapshots) -> None:
        windows = await engine.compute(snapshots, [timedelta(seconds=100), timedelta(seconds=10)])

        assert [w.window_duration for w in windows] == [timedelta(seconds=10), timedelta(seconds=100)]
        assert windows[1].return_pct == pytest.approx(200.0)

    @pytest.mark.asyncio
    async def test_one_price_lookup_per_key(self, engine: MetricsEngine, snapshots, price_oracle) -> None:
        await engine.compute(snapshots, [timedelta(seconds=10), timedelta(seconds=100)])

        assert len(price_oracle.calls) == len(set(price_oracle.calls)) == 4

    @pytest.mark.asyncio
    async def test_insufficient_history(self, engine: MetricsEngine) -> None:
        (window,) = await engine.compute([_snapshot(3, SOL="1")], [timedelta(hours=24)])

        assert window.insufficient_history
        assert window.sample_count == 1
        assert window.volatility is None
        assert window.max_drawdown is None

    @pytest.mark.asyncio
    async def test_no_snapshots(self, engine: MetricsEngine, price_oracle) -> None:
        windows = await engine.compute([], [timedelta(hours=24), timedelta(days=7)])

        assert all(w.insufficient_history and w.sample_count == 0 for w in windows)
        assert price_oracle.calls == []

    @pytest.mark.asyncio
    async def test_unpriced_holdings_excluded(self, engine: MetricsEngine) -> None:
        series = [
            _snapshot(0, SOL="1", USDC="100", DELISTED="50"),
            _snapshot(5, SOL="1", USDC="100", DELISTED="50"),
        ]

        (window,) = await engine.compute(series, [timedelta(seconds=100)])

        assert window.end_value == Decimal(200)
        assert window.return_pct == pytest.approx(0.0)
        assert window.diversification_index == pytest.approx(0.5)

    @pytest.mark.asyncio
    async def test_zero_start_value(self, engine: MetricsEngine) -> None:
        series = [_snapshot(0, DELISTED="1"), _snapshot(5, SOL="1")]

        (window,) = await engine.compute(series, [timedelta(seconds=100)])

        assert window.start_value == Decimal(0)
        assert window.return_pct == 0.0
        assert window.volatility == 0.0

    @pytest.mark.asyncio
    async def test_other_oracle_errors_propagate(self, snapshots) -> None:
        class BrokenOracle:
            async def price_at(self, token_mint: str, ordering_key: OrderingKey) -> Decimal:
                raise RuntimeError("oracle exploded")

        engine = MetricsEngine(BrokenOracle(), slot_duration_seconds=1.0)

        with pytest.raises(RuntimeError, match="exploded"):
            await engine.compute(snapshots, [timedelta(seconds=10)])

    @pytest.mark.asyncio
    async def test_deterministic(self, engine: MetricsEngine, snapshots) -> None:
        windows = [timedelta(seconds=10), timedelta(seconds=100)]
        assert await engine.compute(snapshots, windows) == await engine.compute(snapshots, windows)
