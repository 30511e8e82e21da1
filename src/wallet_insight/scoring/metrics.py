"""Windowed performance metrics over portfolio snapshots.

For each trailing window the engine selects the snapshot series bracketing
``now - window`` and ``now`` (``now`` being the newest snapshot's slot),
values every snapshot through the injected price oracle, and computes:

- return_pct: valuation change between the first and last snapshot (%)
- volatility: population standard deviation of per-snapshot returns
- max_drawdown: largest peak-to-trough valuation decline (fraction)
- diversification_index: 1 - Herfindahl index of value shares at ``now``

Holdings whose price is unavailable are excluded from the valuation at
that point. Time dependence lives entirely in the oracle, so the engine
is deterministic when the oracle is stubbed.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Iterable, Sequence
from datetime import timedelta
from decimal import Decimal

import numpy as np

from wallet_insight.errors import PriceUnavailableError
from wallet_insight.ingestor.models import OrderingKey
from wallet_insight.profiler.models import PortfolioSnapshot
from wallet_insight.profiler.prices import PriceOracle
from wallet_insight.scoring.models import MetricWindow

logger = logging.getLogger(__name__)

# Solana targets ~400ms slots.
DEFAULT_SLOT_DURATION_SECONDS = 0.4

PriceKey = tuple[str, OrderingKey]


class MetricsEngine:
    """Computes windowed metrics from an ordered snapshot sequence.

    Example:
        ```python
        engine = MetricsEngine(oracle)
        windows = await engine.compute(snapshots, [timedelta(days=1), timedelta(days=7)])
        for w in windows:
            print(w.label, w.return_pct, w.volatility)
        ```
    """

    def __init__(
        self,
        price_oracle: PriceOracle,
        *,
        slot_duration_seconds: float = DEFAULT_SLOT_DURATION_SECONDS,
    ) -> None:
        if slot_duration_seconds <= 0:
            raise ValueError("slot_duration_seconds must be > 0")
        self._oracle = price_oracle
        self._slot_duration = slot_duration_seconds

    def window_slots(self, window: timedelta) -> int:
        """Number of slots covered by a window duration."""
        return max(1, math.ceil(window.total_seconds() / self._slot_duration))

    def select_series(
        self,
        snapshots: Sequence[PortfolioSnapshot],
        window: timedelta,
    ) -> list[PortfolioSnapshot]:
        """Snapshots bracketing the window: the last one at or before its
        start, followed by every snapshot inside it."""
        if not snapshots:
            return []
        now_slot = snapshots[-1].as_of.slot
        start_slot = now_slot - self.window_slots(window)

        bracket: PortfolioSnapshot | None = None
        inside: list[PortfolioSnapshot] = []
        for snapshot in snapshots:
            if snapshot.as_of.slot <= start_slot:
                bracket = snapshot
            else:
                inside.append(snapshot)
        return [bracket, *inside] if bracket is not None else inside

    async def _resolve_prices(self, keys: Iterable[PriceKey]) -> dict[PriceKey, Decimal]:
        unique = sorted(set(keys))
        results = await asyncio.gather(
            *(self._oracle.price_at(mint, key) for mint, key in unique),
            return_exceptions=True,
        )
        prices: dict[PriceKey, Decimal] = {}
        for price_key, result in zip(unique, results, strict=True):
            if isinstance(result, PriceUnavailableError):
                logger.debug("Excluding %s at %s from valuation: %s", price_key[0], price_key[1], result)
                continue
            if isinstance(result, BaseException):
                raise result
            prices[price_key] = result if isinstance(result, Decimal) else Decimal(str(result))
        return prices

    @staticmethod
    def _values(snapshot: PortfolioSnapshot, prices: dict[PriceKey, Decimal]) -> dict[str, Decimal]:
        values: dict[str, Decimal] = {}
        for mint, holding in snapshot.holdings.items():
            price = prices.get((mint, snapshot.as_of))
            if price is not None:
                values[mint] = holding.quantity * price
        return values

    @staticmethod
    def _diversification(values: dict[str, Decimal]) -> float:
        total = sum(values.values(), Decimal(0))
        if total <= 0:
            return 0.0
        hhi = sum(float(v / total) ** 2 for v in values.values())
        return 1.0 - hhi

    @staticmethod
    def _return_pct(start: Decimal, end: Decimal) -> float:
        if start == 0:
            return 0.0
        return float((end - start) / start) * 100.0

    @staticmethod
    def _volatility(valuations: Sequence[Decimal]) -> float:
        returns = [
            float((curr - prev) / prev)
            for prev, curr in zip(valuations, valuations[1:], strict=False)
            if prev > 0
        ]
        if not returns:
            return 0.0
        return float(np.std(np.asarray(returns, dtype=float)))

    @staticmethod
    def _max_drawdown(valuations: Sequence[Decimal]) -> float:
        peak = Decimal(0)
        worst = 0.0
        for value in valuations:
            peak = max(peak, value)
            if peak > 0:
                worst = max(worst, float((peak - value) / peak))
        return worst

    async def compute(
        self,
        snapshots: Sequence[PortfolioSnapshot],
        windows: Iterable[timedelta],
    ) -> tuple[MetricWindow, ...]:
        """Compute one MetricWindow per requested window, shortest first.

        Raises:
            Exception: Any oracle failure other than PriceUnavailableError.
        """
        requested = sorted(set(windows))
        series_by_window = {w: self.select_series(snapshots, w) for w in requested}

        needed = {
            (mint, s.as_of)
            for series in series_by_window.values()
            if len(series) >= 2
            for s in series
            for mint in s.holdings
        }
        prices = await self._resolve_prices(needed)

        results: list[MetricWindow] = []
        for window in requested:
            series = series_by_window[window]
            if len(series) < 2:
                results.append(MetricWindow.empty(window, sample_count=len(series)))
                continue

            per_snapshot = [self._values(s, prices) for s in series]
            valuations = [sum(v.values(), Decimal(0)) for v in per_snapshot]
            results.append(
                MetricWindow(
                    window_duration=window,
                    return_pct=self._return_pct(valuations[0], valuations[-1]),
                    volatility=self._volatility(valuations),
                    max_drawdown=self._max_drawdown(valuations),
                    diversification_index=self._diversification(per_snapshot[-1]),
                    sample_count=len(series),
                    start_value=valuations[0],
                    end_value=valuations[-1],
                )
            )
        return tuple(results)
