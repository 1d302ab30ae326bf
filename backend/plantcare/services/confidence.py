from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Sequence, Tuple

import numpy as np

from plantcare.core.config import Settings
from plantcare.services.ensemble import RankedPrediction


class Reliability(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


RELIABILITY_GUIDANCE = {
    Reliability.HIGH: "Proceed with treatment recommendations",
    Reliability.MEDIUM: "Consider secondary validation",
    Reliability.LOW: "Manual verification required",
}

_TIER_RECOMMENDATIONS = {
    Reliability.HIGH: (
        "High confidence detection - proceed with recommended treatment",
        "Monitor plant regularly for changes",
    ),
    Reliability.MEDIUM: (
        "Medium confidence - consider secondary analysis",
        "Compare with visual symptoms described in disease information",
        "Consult with local agricultural extension service if unsure",
    ),
    Reliability.LOW: (
        "Low confidence detection - manual verification strongly recommended",
        "Take additional photos from different angles",
        "Consult with plant pathologist or agricultural expert",
        "Consider laboratory testing for definitive diagnosis",
    ),
}


@dataclass(frozen=True)
class ConfidenceThresholds:
    """Product heuristics; every comparison against them is strict."""

    high_confidence: float = 0.90
    high_validation_score: float = 85.0
    medium_confidence: float = 0.70
    medium_validation_score: float = 70.0
    ambiguity_margin: float = 0.10

    @classmethod
    def from_settings(cls, settings: Settings) -> "ConfidenceThresholds":
        return cls(
            high_confidence=settings.high_confidence,
            high_validation_score=settings.high_validation_score,
            medium_confidence=settings.medium_confidence,
            medium_validation_score=settings.medium_validation_score,
            ambiguity_margin=settings.ambiguity_margin,
        )


@dataclass(frozen=True)
class Assessment:
    validation_score: float
    reliability: Reliability
    recommendations: Tuple[str, ...]


def validation_score(vectors: Sequence[Sequence[float]], winner: int) -> float:
    """Percentage of individual passes whose own arg-max is the ensemble winner."""
    if not vectors:
        return 0.0
    agreeing = sum(1 for vector in vectors if int(np.argmax(vector)) == winner)
    return agreeing / len(vectors) * 100


def determine_reliability(
    confidence: float,
    score: float,
    thresholds: ConfidenceThresholds = ConfidenceThresholds(),
) -> Reliability:
    if confidence > thresholds.high_confidence and score > thresholds.high_validation_score:
        return Reliability.HIGH
    if confidence > thresholds.medium_confidence and score > thresholds.medium_validation_score:
        return Reliability.MEDIUM
    return Reliability.LOW


def generate_recommendations(
    predictions: Sequence[RankedPrediction],
    reliability: Reliability,
    label_for: Callable[[int], str],
    thresholds: ConfidenceThresholds = ConfidenceThresholds(),
) -> List[str]:
    recommendations = list(_TIER_RECOMMENDATIONS[reliability])

    if len(predictions) > 1:
        best, runner_up = predictions[0], predictions[1]
        if best.confidence - runner_up.confidence < thresholds.ambiguity_margin:
            recommendations.append(
                f"Also consider possibility of {label_for(runner_up.class_index)} "
                f"({runner_up.confidence * 100:.1f}% confidence)"
            )
    return recommendations


class ConfidenceAssessor:
    def __init__(self, thresholds: ConfidenceThresholds = ConfidenceThresholds()) -> None:
        self.thresholds = thresholds

    def assess(
        self,
        vectors: Sequence[Sequence[float]],
        ranked: Sequence[RankedPrediction],
        label_for: Callable[[int], str],
    ) -> Assessment:
        top = ranked[0]
        score = validation_score(vectors, top.class_index)
        reliability = determine_reliability(top.confidence, score, self.thresholds)
        recommendations = generate_recommendations(ranked, reliability, label_for, self.thresholds)
        return Assessment(
            validation_score=score,
            reliability=reliability,
            recommendations=tuple(recommendations),
        )
