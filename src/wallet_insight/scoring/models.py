"""Data models for the scoring module."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal
from enum import Enum
from types import MappingProxyType

from wallet_insight.ingestor.models import OrderingKey
from wallet_insight.profiler.models import Holding


def window_label(duration: timedelta) -> str:
    """Short label for a window duration, e.g. ``24h``, ``7d``, ``90m``."""
    seconds = int(duration.total_seconds())
    if seconds <= 0:
        raise ValueError("window duration must be positive")
    if seconds % 86400 == 0 and seconds >= 2 * 86400:
        return f"{seconds // 86400}d"
    if seconds % 3600 == 0:
        return f"{seconds // 3600}h"
    if seconds % 60 == 0:
        return f"{seconds // 60}m"
    return f"{seconds}s"


@dataclass(frozen=True)
class MetricWindow:
    """Performance statistics over one trailing window.

    All metric fields are None when fewer than two snapshots fall in the
    window; insufficient history is a reportable state, not an error.

    Attributes:
        window_duration: Trailing window length.
        return_pct: Valuation change over the window, in percent.
        volatility: Standard deviation of per-snapshot returns.
        max_drawdown: Largest peak-to-trough decline as a fraction (0..1).
        diversification_index: 1 - Herfindahl index of holding value shares.
        sample_count: Snapshots used (including the bracketing start).
        start_value: Portfolio valuation at the start of the window.
        end_value: Portfolio valuation at the end of the window.
    """

    window_duration: timedelta
    return_pct: float | None = None
    volatility: float | None = None
    max_drawdown: float | None = None
    diversification_index: float | None = None
    sample_count: int = 0
    start_value: Decimal | None = None
    end_value: Decimal | None = None

    @property
    def label(self) -> str:
        return window_label(self.window_duration)

    @property
    def insufficient_history(self) -> bool:
        return self.return_pct is None

    @classmethod
    def empty(cls, window_duration: timedelta, *, sample_count: int = 0) -> MetricWindow:
        return cls(window_duration=window_duration, sample_count=sample_count)

    def to_dict(self) -> dict[str, object]:
        return {
            "window_seconds": int(self.window_duration.total_seconds()),
            "return_pct": self.return_pct,
            "volatility": self.volatility,
            "max_drawdown": self.max_drawdown,
            "diversification_index": self.diversification_index,
            "sample_count": self.sample_count,
            "start_value": str(self.start_value) if self.start_value is not None else None,
            "end_value": str(self.end_value) if self.end_value is not None else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> MetricWindow:
        def _optional_float(key: str) -> float | None:
            value = data.get(key)
            return float(str(value)) if value is not None else None

        def _optional_decimal(key: str) -> Decimal | None:
            value = data.get(key)
            return Decimal(str(value)) if value is not None else None

        return cls(
            window_duration=timedelta(seconds=int(str(data["window_seconds"]))),
            return_pct=_optional_float("return_pct"),
            volatility=_optional_float("volatility"),
            max_drawdown=_optional_float("max_drawdown"),
            diversification_index=_optional_float("diversification_index"),
            sample_count=int(str(data.get("sample_count", 0))),
            start_value=_optional_decimal("start_value"),
            end_value=_optional_decimal("end_value"),
        )


@dataclass(frozen=True)
class FeatureVector:
    """Fixed-shape, ordered numeric features consumed by the scoring model.

    Position is part of the contract: models may read values by index.
    """

    names: tuple[str, ...]
    values: tuple[float, ...]

    def __post_init__(self) -> None:
        if len(self.names) != len(self.values):
            raise ValueError("feature names and values must have the same length")

    def __len__(self) -> int:
        return len(self.values)

    def __getitem__(self, name: str) -> float:
        return self.values[self.names.index(name)]

    def as_dict(self) -> dict[str, float]:
        return dict(zip(self.names, self.values, strict=True))


class RiskLevel(str, Enum):
    """Coarse risk bucket derived from the numeric score."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    VERY_HIGH = "very_high"

    @classmethod
    def from_score(cls, score: float) -> RiskLevel:
        if score < 0.25:
            return cls.LOW
        if score < 0.5:
            return cls.MEDIUM
        if score < 0.75:
            return cls.HIGH
        return cls.VERY_HIGH


class Action(str, Enum):
    """Suggested action for one holding."""

    HOLD = "hold"
    SELL = "sell"
    REDUCE_EXPOSURE = "reduce_exposure"
    INCREASE_POSITION = "increase_position"


@dataclass(frozen=True)
class TokenInsight:
    """Risk view of one holding within its portfolio.

    ``concentration`` is the holding's share of the portfolio cost basis.
    """

    token_mint: str
    concentration: float
    risk_level: RiskLevel
    suggested_action: Action

    def to_dict(self) -> dict[str, object]:
        return {
            "token_mint": self.token_mint,
            "concentration": self.concentration,
            "risk_level": self.risk_level.value,
            "suggested_action": self.suggested_action.value,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> TokenInsight:
        return cls(
            token_mint=str(data["token_mint"]),
            concentration=float(str(data["concentration"])),
            risk_level=RiskLevel(str(data["risk_level"])),
            suggested_action=Action(str(data["suggested_action"])),
        )


@dataclass(frozen=True)
class AnalysisResult:
    """Scored, explainable analysis of one wallet.

    ``computed_at`` is the ordering key of the newest event folded to
    produce this result (None for a wallet without events). ``degraded``
    is set when the score comes from the local heuristic instead of the
    scoring capability.
    """

    wallet_address: str
    computed_at: OrderingKey | None
    score: float
    explanation: str
    degraded: bool
    feature_vector: FeatureVector
    windows: tuple[MetricWindow, ...]
    holdings: Mapping[str, Holding] = field(default_factory=dict)
    risk_level: RiskLevel = RiskLevel.LOW
    recommendations: tuple[str, ...] = ()
    data_gaps: tuple[str, ...] = ()
    token_insights: Mapping[str, TokenInsight] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for name in ("holdings", "token_insights"):
            value = getattr(self, name)
            if not isinstance(value, MappingProxyType):
                object.__setattr__(self, name, MappingProxyType(dict(value)))

    def to_record(self) -> dict[str, object]:
        """Flatten to a single record keyed by ``(wallet_address, computed_at)``."""
        return {
            "wallet_address": self.wallet_address,
            "computed_at_slot": self.computed_at.slot if self.computed_at else None,
            "computed_at_index": self.computed_at.index if self.computed_at else None,
            "score": self.score,
            "explanation": self.explanation,
            "degraded": self.degraded,
            "risk_level": self.risk_level.value,
            "features_json": json.dumps(
                {"names": list(self.feature_vector.names), "values": list(self.feature_vector.values)}
            ),
            "windows_json": json.dumps([w.to_dict() for w in self.windows]),
            "holdings_json": json.dumps(
                [
                    {"token_mint": h.token_mint, "quantity": str(h.quantity), "cost_basis": str(h.cost_basis)}
                    for h in self.holdings.values()
                ]
            ),
            "recommendations_json": json.dumps(list(self.recommendations)),
            "data_gaps_json": json.dumps(list(self.data_gaps)),
            "token_insights_json": json.dumps([i.to_dict() for i in self.token_insights.values()]),
        }

    @classmethod
    def from_record(cls, record: Mapping[str, object]) -> AnalysisResult:
        """Rebuild a result from a record produced by ``to_record``."""
        slot = record.get("computed_at_slot")
        index = record.get("computed_at_index")
        computed_at = (
            OrderingKey(int(str(slot)), int(str(index or 0))) if slot is not None else None
        )
        features = json.loads(str(record["features_json"]))
        holdings = {
            h["token_mint"]: Holding(
                token_mint=h["token_mint"],
                quantity=Decimal(h["quantity"]),
                cost_basis=Decimal(h["cost_basis"]),
            )
            for h in json.loads(str(record["holdings_json"]))
        }
        return cls(
            wallet_address=str(record["wallet_address"]),
            computed_at=computed_at,
            score=float(str(record["score"])),
            explanation=str(record["explanation"]),
            degraded=bool(record["degraded"]),
            feature_vector=FeatureVector(
                names=tuple(features["names"]),
                values=tuple(float(v) for v in features["values"]),
            ),
            windows=tuple(MetricWindow.from_dict(w) for w in json.loads(str(record["windows_json"]))),
            holdings=holdings,
            risk_level=RiskLevel(str(record["risk_level"])),
            recommendations=tuple(json.loads(str(record.get("recommendations_json") or "[]"))),
            data_gaps=tuple(json.loads(str(record.get("data_gaps_json") or "[]"))),
            token_insights={
                d["token_mint"]: TokenInsight.from_dict(d)
                for d in json.loads(str(record.get("token_insights_json") or "[]"))
            },
        )
