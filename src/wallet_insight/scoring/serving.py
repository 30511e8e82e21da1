"""Model serving utilities for live scoring."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import numpy as np
from joblib import load

from wallet_insight.scoring.models import FeatureVector


class ModelServingError(RuntimeError):
    pass


@dataclass(frozen=True)
class LoadedModel:
    artifact_path: Path
    feature_columns: tuple[str, ...]
    model: Any


def load_model_from_artifact(*, artifact_path: Path, schema_json: str) -> LoadedModel:
    try:
        schema = json.loads(schema_json)
        cols = tuple(schema.get("feature_columns") or ())
        if not cols:
            raise ValueError("missing feature_columns")
    except Exception as e:
        raise ModelServingError(f"Invalid schema_json: {e}") from e

    try:
        model = load(artifact_path)
    except Exception as e:
        raise ModelServingError(f"Failed to load model artifact: {e}") from e

    return LoadedModel(artifact_path=artifact_path, feature_columns=cols, model=model)


def predict_proba(features: FeatureVector, *, loaded: LoadedModel) -> float:
    # Columns follow the training schema; features it does not know are dropped.
    values = features.as_dict()
    row = np.asarray([[values.get(c, 0.0) for c in loaded.feature_columns]], dtype=float)
    proba = loaded.model.predict_proba(row)[0][1]
    return float(proba)


class ModelArtifactScorer:
    """Blocking scoring capability backed by a joblib classifier artifact.

    The score is the positive-class probability; the explanation names the
    features the model consumed.
    """

    def __init__(self, loaded: LoadedModel) -> None:
        self._loaded = loaded

    @classmethod
    def from_artifact(cls, *, artifact_path: Path, schema_json: str) -> ModelArtifactScorer:
        return cls(load_model_from_artifact(artifact_path=artifact_path, schema_json=schema_json))

    def score(self, features: FeatureVector) -> tuple[float, str]:
        proba = predict_proba(features, loaded=self._loaded)
        explanation = (
            f"Model {self._loaded.artifact_path.name} scored "
            f"{len(self._loaded.feature_columns)} features"
        )
        return proba, explanation
