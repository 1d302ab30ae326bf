from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np
import torch

from plantcare.core.exceptions import DetectionError, InferenceError, ModelConfigurationError
from plantcare.services.model_pool import LoadedModel

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RankedPrediction:
    class_index: int
    confidence: float


@dataclass(frozen=True)
class EnsembleOutput:
    vectors: List[List[float]]
    averaged: List[float]
    ranked: List[RankedPrediction]


def average_probabilities(vectors: Sequence[Sequence[float]]) -> List[float]:
    """Element-wise arithmetic mean of equally sized probability vectors."""
    if not vectors:
        raise InferenceError("No predictions to average.")
    stacked = np.asarray(vectors, dtype=np.float64)
    return stacked.mean(axis=0).tolist()


def rank_predictions(
    averaged: Sequence[float],
    top_k: int = 5,
    min_confidence: float = 0.001,
) -> List[RankedPrediction]:
    """Return the top-k classes by averaged probability.

    Ties keep ascending class-index order. The confidence floor only trims the
    display list; the best entry is always kept.
    """
    order = sorted(range(len(averaged)), key=lambda idx: -averaged[idx])
    top = [RankedPrediction(class_index=idx, confidence=float(averaged[idx])) for idx in order[: max(1, top_k)]]
    kept = [pred for pred in top if pred.confidence >= min_confidence]
    return kept or top[:1]


def _extract_probabilities(model: LoadedModel, tensor: torch.Tensor) -> List[float]:
    output = model.predict(tensor)
    probabilities = output.detach().cpu().reshape(-1).tolist()
    # Drop the model output before the next pass allocates its own.
    del output
    return probabilities


class EnsemblePredictor:
    """Score every variant with every model and average the results."""

    def __init__(
        self,
        expected_classes: Optional[int] = None,
        top_k: int = 5,
        min_confidence: float = 0.001,
    ) -> None:
        self.expected_classes = expected_classes
        self.top_k = top_k
        self.min_confidence = min_confidence

    def collect(self, models: Sequence[LoadedModel], tensors: Sequence[torch.Tensor]) -> List[List[float]]:
        """Run all len(models) x len(tensors) passes, model-major order."""
        vectors: List[List[float]] = []
        width = self.expected_classes
        for model in models:
            for tensor in tensors:
                try:
                    probabilities = _extract_probabilities(model, tensor)
                except DetectionError:
                    raise
                except Exception as exc:
                    raise InferenceError(f"Model at {model.path} failed during inference: {exc}") from exc

                if width is None:
                    width = len(probabilities)
                if len(probabilities) != width:
                    raise ModelConfigurationError(
                        f"Model at {model.path} returned {len(probabilities)} probabilities, expected {width}."
                    )
                vectors.append(probabilities)
        return vectors

    def predict(self, models: Sequence[LoadedModel], tensors: Sequence[torch.Tensor]) -> EnsembleOutput:
        vectors = self.collect(models, tensors)
        averaged = average_probabilities(vectors)
        ranked = rank_predictions(averaged, top_k=self.top_k, min_confidence=self.min_confidence)
        if not ranked:
            raise InferenceError("Classifiers returned empty probability vectors.")
        logger.debug(
            "Ensemble of %d passes, top prediction class %d (%.4f)",
            len(vectors),
            ranked[0].class_index,
            ranked[0].confidence,
        )
        return EnsembleOutput(vectors=vectors, averaged=averaged, ranked=ranked)
