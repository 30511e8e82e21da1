"""Scoring layer - Windowed metrics, feature vectors and risk scores."""

from wallet_insight.scoring.features import build_feature_vector, feature_names
from wallet_insight.scoring.metrics import MetricsEngine
from wallet_insight.scoring.models import (
    Action,
    AnalysisResult,
    FeatureVector,
    MetricWindow,
    RiskLevel,
    TokenInsight,
)
from wallet_insight.scoring.scorer import ScoringCapability, ScoringOrchestrator
from wallet_insight.scoring.serving import ModelArtifactScorer

__all__ = [
    "Action",
    "AnalysisResult",
    "FeatureVector",
    "MetricWindow",
    "MetricsEngine",
    "ModelArtifactScorer",
    "RiskLevel",
    "ScoringCapability",
    "ScoringOrchestrator",
    "TokenInsight",
    "build_feature_vector",
    "feature_names",
]
