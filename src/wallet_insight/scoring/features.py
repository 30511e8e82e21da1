"""Feature extraction for model scoring."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from datetime import timedelta
from decimal import Decimal

from wallet_insight.profiler.models import Holding
from wallet_insight.scoring.models import FeatureVector, MetricWindow, window_label

WINDOW_FEATURES = ("return_pct", "volatility", "max_drawdown", "diversification", "has_history")
HOLDING_FEATURES = ("holding_count", "top_holding_share", "total_cost_basis")


def _to_float(x: float | Decimal | None) -> float:
    if x is None:
        return 0.0
    return float(x)


def feature_names(windows: Iterable[timedelta]) -> tuple[str, ...]:
    """Ordered feature names for a window configuration."""
    names: list[str] = []
    for window in sorted(set(windows)):
        label = window_label(window)
        names.extend(f"{feature}_{label}" for feature in WINDOW_FEATURES)
    names.extend(HOLDING_FEATURES)
    return tuple(names)


def _window_values(metrics: MetricWindow | None) -> list[float]:
    if metrics is None or metrics.insufficient_history:
        return [0.0, 0.0, 0.0, 0.0, 0.0]
    return [
        _to_float(metrics.return_pct),
        _to_float(metrics.volatility),
        _to_float(metrics.max_drawdown),
        _to_float(metrics.diversification_index),
        1.0,
    ]


def top_holding(holdings: Mapping[str, Holding]) -> tuple[str, float] | None:
    """Mint with the largest share of total cost basis, and that share."""
    total = sum((h.cost_value for h in holdings.values()), Decimal(0))
    if not holdings or total <= 0:
        return None
    mint, holding = max(holdings.items(), key=lambda item: (item[1].cost_value, item[0]))
    return mint, float(holding.cost_value / total)


def build_feature_vector(
    metric_windows: Sequence[MetricWindow],
    holdings: Mapping[str, Holding],
    *,
    windows: Iterable[timedelta],
) -> FeatureVector:
    """Build the fixed-shape feature vector.

    Every configured window contributes its five features even when the
    metrics engine produced nothing for it, so the shape depends only on
    the window configuration.
    """
    configured = sorted(set(windows))
    by_duration = {m.window_duration: m for m in metric_windows}

    values: list[float] = []
    for window in configured:
        values.extend(_window_values(by_duration.get(window)))

    top = top_holding(holdings)
    total_cost = sum((h.cost_value for h in holdings.values()), Decimal(0))
    values.extend(
        [
            float(len(holdings)),
            top[1] if top is not None else 0.0,
            _to_float(total_cost),
        ]
    )
    return FeatureVector(names=feature_names(configured), values=tuple(values))
