"""Tests for feature vector construction."""

from datetime import timedelta
from decimal import Decimal

import pytest

from wallet_insight.profiler.models import Holding
from wallet_insight.scoring.features import build_feature_vector, feature_names, top_holding
from wallet_insight.scoring.models import MetricWindow

DAY = timedelta(hours=24)
WEEK = timedelta(days=7)


@pytest.fixture
def holdings() -> dict[str, Holding]:
    return {
        "SOL": Holding("SOL", Decimal(3), Decimal(100)),
        "USDC": Holding("USDC", Decimal(100), Decimal(1)),
    }


def test_feature_names_depend_only_on_windows() -> None:
    names = feature_names([WEEK, DAY, DAY])

    assert names[:5] == (
        "return_pct_24h",
        "volatility_24h",
        "max_drawdown_24h",
        "diversification_24h",
        "has_history_24h",
    )
    assert names[5] == "return_pct_7d"
    assert names[-3:] == ("holding_count", "top_holding_share", "total_cost_basis")
    assert len(names) == 13


def test_top_holding(holdings) -> None:
    assert top_holding(holdings) == ("SOL", pytest.approx(0.75))
    assert top_holding({}) is None


class TestBuildFeatureVector:
    def test_values(self, holdings) -> None:
        day = MetricWindow(
            window_duration=DAY,
            return_pct=12.5,
            volatility=0.1,
            max_drawdown=0.05,
            diversification_index=0.4,
            sample_count=4,
        )

        vector = build_feature_vector([day], holdings, windows=[DAY, WEEK])

        assert len(vector) == 13
        assert vector["return_pct_24h"] == 12.5
        assert vector["has_history_24h"] == 1.0
        assert vector["holding_count"] == 2.0
        assert vector["top_holding_share"] == pytest.approx(0.75)
        assert vector["total_cost_basis"] == pytest.approx(400.0)

    def test_missing_and_insufficient_windows_are_zero(self, holdings) -> None:
        vector = build_feature_vector([MetricWindow.empty(DAY, sample_count=1)], holdings, windows=[DAY, WEEK])

        for name in feature_names([DAY, WEEK])[:10]:
            assert vector[name] == 0.0

    def test_shape_is_fixed(self, holdings) -> None:
        with_data = build_feature_vector([], holdings, windows=[DAY, WEEK])
        empty = build_feature_vector([], {}, windows=[DAY, WEEK])

        assert with_data.names == empty.names
        assert empty["top_holding_share"] == 0.0
