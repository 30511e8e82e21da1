"""Tests for scoring data models."""

from datetime import timedelta
from decimal import Decimal

import pytest

from wallet_insight.ingestor.models import OrderingKey
from wallet_insight.profiler.models import Holding
from wallet_insight.scoring.models import (
    Action,
    AnalysisResult,
    FeatureVector,
    MetricWindow,
    RiskLevel,
    TokenInsight,
    window_label,
)


@pytest.mark.parametrize(
    ("duration", "label"),
    [
        (timedelta(hours=24), "24h"),
        (timedelta(days=7), "7d"),
        (timedelta(days=30), "30d"),
        (timedelta(minutes=90), "90m"),
        (timedelta(seconds=45), "45s"),
    ],
)
def test_window_label(duration: timedelta, label: str) -> None:
    assert window_label(duration) == label


def test_window_label_rejects_empty_window() -> None:
    with pytest.raises(ValueError):
        window_label(timedelta(0))


@pytest.mark.parametrize(
    ("score", "level"),
    [(0.0, RiskLevel.LOW), (0.25, RiskLevel.MEDIUM), (0.5, RiskLevel.HIGH), (0.75, RiskLevel.VERY_HIGH), (1.0, RiskLevel.VERY_HIGH)],
)
def test_risk_level_from_score(score: float, level: RiskLevel) -> None:
    assert RiskLevel.from_score(score) is level


class TestFeatureVector:
    def test_lookup_by_name(self) -> None:
        vector = FeatureVector(names=("a", "b"), values=(1.0, 2.0))

        assert vector["b"] == 2.0
        assert vector.as_dict() == {"a": 1.0, "b": 2.0}
        assert len(vector) == 2

    def test_length_mismatch(self) -> None:
        with pytest.raises(ValueError):
            FeatureVector(names=("a",), values=(1.0, 2.0))


class TestAnalysisResult:
    @pytest.fixture
    def result(self, wallet_address: str) -> AnalysisResult:
        return AnalysisResult(
            wallet_address=wallet_address,
            computed_at=OrderingKey(900, 4),
            score=0.42,
            explanation="model says so",
            degraded=True,
            feature_vector=FeatureVector(names=("holding_count",), values=(1.0,)),
            windows=(
                MetricWindow(
                    window_duration=timedelta(hours=24),
                    return_pct=3.5,
                    volatility=0.2,
                    max_drawdown=0.1,
                    diversification_index=0.0,
                    sample_count=3,
                    start_value=Decimal("100.5"),
                    end_value=Decimal("104.0175"),
                ),
                MetricWindow.empty(timedelta(days=7), sample_count=1),
            ),
            holdings={"SOL": Holding("SOL", Decimal("1.5"), Decimal("67"))},
            risk_level=RiskLevel.MEDIUM,
            recommendations=("Consider diversifying your portfolio across more assets",),
            data_gaps=("Opening balance of 2 SOL assumed before event sig1",),
            token_insights={
                "SOL": TokenInsight(
                    token_mint="SOL",
                    concentration=1.0,
                    risk_level=RiskLevel.HIGH,
                    suggested_action=Action.REDUCE_EXPOSURE,
                )
            },
        )

    def test_record_restores_result(self, result: AnalysisResult) -> None:
        record = result.to_record()

        assert record["computed_at_slot"] == 900
        assert record["computed_at_index"] == 4
        assert AnalysisResult.from_record(record) == result

    def test_record_without_token_insights(self, result: AnalysisResult) -> None:
        record = result.to_record()
        del record["token_insights_json"]

        assert dict(AnalysisResult.from_record(record).token_insights) == {}

    def test_token_insight_serialized_values(self, result: AnalysisResult) -> None:
        insight = result.token_insights["SOL"]

        assert insight.to_dict() == {
            "token_mint": "SOL",
            "concentration": 1.0,
            "risk_level": "high",
            "suggested_action": "reduce_exposure",
        }
        assert TokenInsight.from_dict(insight.to_dict()) == insight

    def test_result_without_events(self, result: AnalysisResult) -> None:
        empty = AnalysisResult(
            wallet_address=result.wallet_address,
            computed_at=None,
            score=0.5,
            explanation="neutral",
            degraded=True,
            feature_vector=result.feature_vector,
            windows=(),
        )

        restored = AnalysisResult.from_record(empty.to_record())

        assert restored.computed_at is None
        assert dict(restored.holdings) == {}

    def test_holdings_read_only(self, result: AnalysisResult) -> None:
        with pytest.raises(TypeError):
            result.holdings["BONK"] = Holding("BONK", Decimal(1), Decimal(0))  # type: ignore[index]
