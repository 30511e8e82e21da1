"""Tests for joblib model serving."""

from __future__ import annotations

import json
from datetime import timedelta
from decimal import Decimal
from pathlib import Path

import joblib
import numpy as np
import pytest

from wallet_insight.profiler.models import Holding
from wallet_insight.scoring.features import build_feature_vector
from wallet_insight.scoring.serving import (
    ModelArtifactScorer,
    ModelServingError,
    load_model_from_artifact,
    predict_proba,
)


class FirstColumnClassifier:
    """Classifier whose positive-class probability is the first input column."""

    def predict_proba(self, X: np.ndarray) -> np.ndarray:
        first = X[:, 0]
        return np.column_stack([1.0 - first, first])


@pytest.fixture
def artifact_path(tmp_path: Path) -> Path:
    path = tmp_path / "wallet_risk.joblib"
    joblib.dump(FirstColumnClassifier(), path)
    return path


@pytest.fixture
def features():
    holdings = {
        "SOL": Holding("SOL", Decimal(3), Decimal(100)),
        "USDC": Holding("USDC", Decimal(100), Decimal(1)),
    }
    return build_feature_vector([], holdings, windows=[timedelta(hours=24)])


def test_predict_proba_follows_schema_columns(artifact_path: Path, features) -> None:
    schema = json.dumps({"feature_columns": ["top_holding_share", "holding_count", "not_a_feature"]})
    loaded = load_model_from_artifact(artifact_path=artifact_path, schema_json=schema)

    assert loaded.feature_columns == ("top_holding_share", "holding_count", "not_a_feature")
    assert predict_proba(features, loaded=loaded) == pytest.approx(0.75)


def test_unknown_column_scores_as_zero(artifact_path: Path, features) -> None:
    schema = json.dumps({"feature_columns": ["not_a_feature"]})
    loaded = load_model_from_artifact(artifact_path=artifact_path, schema_json=schema)

    assert predict_proba(features, loaded=loaded) == 0.0


def test_scorer(artifact_path: Path, features) -> None:
    schema = json.dumps({"feature_columns": ["top_holding_share"]})
    scorer = ModelArtifactScorer.from_artifact(artifact_path=artifact_path, schema_json=schema)

    score, explanation = scorer.score(features)

    assert score == pytest.approx(0.75)
    assert explanation == "Model wallet_risk.joblib scored 1 features"


@pytest.mark.parametrize("schema_json", ["not json", "{}", json.dumps({"feature_columns": []})])
def test_invalid_schema(artifact_path: Path, schema_json: str) -> None:
    with pytest.raises(ModelServingError, match="schema_json"):
        load_model_from_artifact(artifact_path=artifact_path, schema_json=schema_json)


def test_missing_artifact(tmp_path: Path) -> None:
    schema = json.dumps({"feature_columns": ["holding_count"]})
    with pytest.raises(ModelServingError, match="artifact"):
        load_model_from_artifact(artifact_path=tmp_path / "missing.joblib", schema_json=schema)
