"""Scoring orchestrator wrapping an external scoring capability.

This module provides the ScoringOrchestrator class that turns windowed
metrics and holdings into a scored, explained AnalysisResult. The external
capability is treated as unreliable: each attempt has a deadline,
transient failures are retried with backoff, and when the capability
cannot produce a valid score a local heuristic takes over and the result
is marked degraded.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import math
from collections.abc import Awaitable, Iterable, Mapping, Sequence
from datetime import timedelta
from decimal import Decimal
from typing import Protocol, runtime_checkable

from wallet_insight.errors import ScoringUnavailableError
from wallet_insight.profiler.models import Holding
from wallet_insight.retry import RetryError, RetryPolicy
from wallet_insight.scoring.features import build_feature_vector, top_holding
from wallet_insight.scoring.models import (
    Action,
    AnalysisResult,
    FeatureVector,
    MetricWindow,
    RiskLevel,
    TokenInsight,
)

logger = logging.getLogger(__name__)

# Default configuration
DEFAULT_SCORING_TIMEOUT_SECONDS = 5.0
TRANSIENT_SCORING_ERRORS: tuple[type[Exception], ...] = (
    ScoringUnavailableError,
    TimeoutError,
    ConnectionError,
)

# Heuristic weights
HEURISTIC_VOLATILITY_WEIGHT = 0.6
HEURISTIC_CONCENTRATION_WEIGHT = 0.4
HEURISTIC_VOLATILITY_CEILING = 0.5  # per-snapshot return std-dev treated as maximal risk
HEURISTIC_MISSING_COMPONENT = 0.5

# Recommendation thresholds
MIN_DIVERSIFIED_HOLDINGS = 5
MIN_DIVERSIFICATION_INDEX = 0.5
MAX_SINGLE_HOLDING_SHARE = 0.2
MIN_POSITION_SHARE = 0.05


@runtime_checkable
class ScoringCapability(Protocol):
    """External scorer mapping a feature vector to ``(score, explanation)``.

    ``score`` may be a coroutine function or a plain blocking function;
    blocking implementations are run in a worker thread.
    """

    def score(
        self, features: FeatureVector
    ) -> tuple[float, str] | Awaitable[tuple[float, str]]: ...


def _valid_score(value: object) -> float | None:
    try:
        score = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    if not math.isfinite(score) or not 0.0 <= score <= 1.0:
        return None
    return score


def heuristic_score(metric_windows: Sequence[MetricWindow]) -> tuple[float, str]:
    """Local fallback score from volatility and concentration.

    Scoring Formula:
        per window with data:
            0.6 * min(volatility / 0.5, 1) + 0.4 * (1 - diversification_index)
        score = mean over windows with data (0.5 when none have data)
    """
    scored = [w for w in metric_windows if not w.insufficient_history]
    if not scored:
        return HEURISTIC_MISSING_COMPONENT, (
            "Heuristic estimate: not enough history in any window, neutral score assigned"
        )

    parts: list[float] = []
    for window in scored:
        volatility = (
            min(window.volatility / HEURISTIC_VOLATILITY_CEILING, 1.0)
            if window.volatility is not None
            else HEURISTIC_MISSING_COMPONENT
        )
        concentration = (
            1.0 - window.diversification_index
            if window.diversification_index is not None
            else HEURISTIC_MISSING_COMPONENT
        )
        parts.append(
            HEURISTIC_VOLATILITY_WEIGHT * volatility + HEURISTIC_CONCENTRATION_WEIGHT * concentration
        )

    score = min(max(sum(parts) / len(parts), 0.0), 1.0)
    labels = ", ".join(w.label for w in scored)
    return score, f"Heuristic estimate from volatility and concentration over {labels}"


def generate_recommendations(
    holdings: Mapping[str, Holding],
    metric_windows: Sequence[MetricWindow],
    risk_level: RiskLevel,
) -> tuple[str, ...]:
    """Portfolio recommendations derived from holdings and risk level."""
    recommendations: list[str] = []

    if len(holdings) < MIN_DIVERSIFIED_HOLDINGS:
        recommendations.append("Consider diversifying your portfolio across more assets")

    if risk_level in (RiskLevel.HIGH, RiskLevel.VERY_HIGH):
        total = sum((h.cost_value for h in holdings.values()), Decimal(0))
        if total > 0:
            for mint, holding in holdings.items():
                if float(holding.cost_value / total) > MAX_SINGLE_HOLDING_SHARE:
                    recommendations.append(f"Consider reducing exposure to token {mint}")

    if holdings:
        with_history = [w for w in metric_windows if w.diversification_index is not None]
        if with_history:
            diversification = with_history[0].diversification_index or 0.0
        else:
            top = top_holding(holdings)
            diversification = 1.0 - top[1] if top is not None else 1.0
        if diversification < MIN_DIVERSIFICATION_INDEX:
            recommendations.append("Portfolio is highly concentrated. Consider rebalancing.")

    return tuple(recommendations)


def _volatility_factor(metric_windows: Sequence[MetricWindow]) -> float:
    for window in sorted(metric_windows, key=lambda w: w.window_duration):
        if window.volatility is not None:
            return min(window.volatility / HEURISTIC_VOLATILITY_CEILING, 1.0)
    return HEURISTIC_MISSING_COMPONENT


def suggest_action(risk_level: RiskLevel, concentration: float) -> Action:
    if risk_level is RiskLevel.VERY_HIGH:
        return Action.SELL
    if risk_level is RiskLevel.HIGH:
        return Action.REDUCE_EXPOSURE
    if risk_level is RiskLevel.LOW and concentration < MIN_POSITION_SHARE:
        return Action.INCREASE_POSITION
    return Action.HOLD


def build_token_insights(
    holdings: Mapping[str, Holding],
    metric_windows: Sequence[MetricWindow],
) -> dict[str, TokenInsight]:
    """Per-holding concentration, risk level and suggested action.

    A holding's risk score is its cost-basis share scaled by the portfolio
    volatility of the shortest window with data, capped as in the heuristic.
    Holdings without any cost basis give no insights.
    """
    total = sum((h.cost_value for h in holdings.values()), Decimal(0))
    if total <= 0:
        return {}
    volatility = _volatility_factor(metric_windows)
    insights: dict[str, TokenInsight] = {}
    for mint, holding in holdings.items():
        concentration = float(holding.cost_value / total)
        risk_level = RiskLevel.from_score(concentration * volatility)
        insights[mint] = TokenInsight(
            token_mint=mint,
            concentration=concentration,
            risk_level=risk_level,
            suggested_action=suggest_action(risk_level, concentration),
        )
    return insights


class ScoringOrchestrator:
    """Scores a wallet's metrics through an unreliable external capability.

    Example:
        ```python
        orchestrator = ScoringOrchestrator(
            capability,
            windows=[timedelta(hours=24), timedelta(days=7)],
            retry_policy=RetryPolicy(max_attempts=3),
            timeout_seconds=5.0,
        )
        result = await orchestrator.score(metric_windows, holdings, wallet_address=wallet)
        if result.degraded:
            logger.info("Heuristic score used for %s", wallet)
        ```
    """

    def __init__(
        self,
        capability: ScoringCapability,
        *,
        windows: Iterable[timedelta],
        retry_policy: RetryPolicy | None = None,
        timeout_seconds: float = DEFAULT_SCORING_TIMEOUT_SECONDS,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            capability: External scorer (async or blocking ``score``).
            windows: Window configuration fixing the feature vector shape.
            retry_policy: Retry parameters; only transient scoring errors
                are retried regardless of the policy's ``retry_on``.
            timeout_seconds: Deadline for a single capability attempt.
        """
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        self._capability = capability
        self._windows = tuple(sorted(set(windows)))
        policy = retry_policy or RetryPolicy()
        self._retry_policy = RetryPolicy(
            max_attempts=policy.max_attempts,
            base_delay=policy.base_delay,
            multiplier=policy.multiplier,
            max_delay=policy.max_delay,
            retry_on=TRANSIENT_SCORING_ERRORS,
        )
        self._timeout = timeout_seconds

    @property
    def windows(self) -> tuple[timedelta, ...]:
        return self._windows

    async def _attempt(self, features: FeatureVector) -> tuple[float, str]:
        score_fn = self._capability.score
        if inspect.iscoroutinefunction(score_fn):
            pending = score_fn(features)
        else:
            # A cancelled thread keeps running; its result is discarded.
            pending = asyncio.to_thread(score_fn, features)
        score, explanation = await asyncio.wait_for(pending, timeout=self._timeout)
        return score, str(explanation)

    async def _score_with_capability(
        self, features: FeatureVector, wallet_address: str
    ) -> tuple[float, str] | None:
        try:
            raw_score, explanation = await self._retry_policy.run(self._attempt, features)
        except RetryError as e:
            logger.warning(
                "Scoring unavailable for %s, using heuristic: %s",
                wallet_address,
                e.last_exception,
            )
            return None
        except Exception as e:
            logger.warning(
                "Scoring capability failed for %s, using heuristic: %s",
                wallet_address,
                str(e) or type(e).__name__,
            )
            return None

        score = _valid_score(raw_score)
        if score is None:
            logger.warning(
                "Scoring capability returned invalid score %r for %s, using heuristic",
                raw_score,
                wallet_address,
            )
            return None
        return score, explanation

    async def score(
        self,
        metric_windows: Sequence[MetricWindow],
        holdings: Mapping[str, Holding],
        *,
        wallet_address: str,
    ) -> AnalysisResult:
        """Produce an AnalysisResult for the given metrics and holdings.

        The returned result has ``computed_at=None``; the caller stamps
        it with the frontier the metrics were computed at.

        Args:
            metric_windows: Output of ``MetricsEngine.compute``.
            holdings: Holdings of the newest snapshot.
            wallet_address: Wallet being scored.

        Returns:
            AnalysisResult, with ``degraded=True`` when the heuristic was used.
        """
        features = build_feature_vector(metric_windows, holdings, windows=self._windows)

        scored = await self._score_with_capability(features, wallet_address)
        degraded = scored is None
        if scored is None:
            score, explanation = heuristic_score(metric_windows)
        else:
            score, explanation = scored

        risk_level = RiskLevel.from_score(score)
        return AnalysisResult(
            wallet_address=wallet_address,
            computed_at=None,
            score=score,
            explanation=explanation,
            degraded=degraded,
            feature_vector=features,
            windows=tuple(metric_windows),
            holdings=holdings,
            risk_level=risk_level,
            recommendations=generate_recommendations(holdings, metric_windows, risk_level),
            token_insights=build_token_insights(holdings, metric_windows),
        )
