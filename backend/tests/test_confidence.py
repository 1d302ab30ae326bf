import pytest

from plantcare.services.confidence import (
    ConfidenceAssessor,
    ConfidenceThresholds,
    Reliability,
    determine_reliability,
    generate_recommendations,
    validation_score,
)
from plantcare.services.ensemble import RankedPrediction, average_probabilities, rank_predictions

NAMES = {0: "Apple Scab", 1: "Apple Black Rot", 2: "Apple Cedar Rust", 3: "Apple Healthy"}


def label_for(idx: int) -> str:
    return NAMES.get(idx, "Unknown")


def test_validation_score_counts_agreeing_votes():
    vectors = [[0.1, 0.9], [0.8, 0.2], [0.3, 0.7], [0.4, 0.6]]
    assert validation_score(vectors, winner=1) == 75.0
    assert validation_score(vectors, winner=0) == 25.0


def test_validation_score_is_100_when_everyone_agrees():
    assert validation_score([[0.2, 0.8]] * 7, winner=1) == 100.0


def test_validation_score_stays_in_range_for_an_unseen_winner():
    score = validation_score([[0.2, 0.8], [0.9, 0.1]], winner=5)
    assert 0.0 <= score <= 100.0
    assert score == 0.0


@pytest.mark.parametrize(
    "confidence, score, expected",
    [
        (0.90, 100.0, Reliability.MEDIUM),
        (0.901, 86.0, Reliability.HIGH),
        (0.95, 85.0, Reliability.MEDIUM),
        (0.70, 99.0, Reliability.LOW),
        (0.71, 70.0, Reliability.LOW),
        (0.71, 70.1, Reliability.MEDIUM),
        (0.2, 100.0, Reliability.LOW),
    ],
)
def test_reliability_boundaries_are_strict(confidence, score, expected):
    assert determine_reliability(confidence, score) is expected


def test_thresholds_are_configurable():
    relaxed = ConfidenceThresholds(high_confidence=0.5, high_validation_score=50.0)
    assert determine_reliability(0.6, 60.0, relaxed) is Reliability.HIGH


def test_two_models_five_variants_scenario():
    agreeing = [[0.02, 0.03, 0.93, 0.02]] * 8
    dissenting = [[0.1, 0.5, 0.3, 0.1]] * 2
    vectors = agreeing + dissenting
    ranked = [
        RankedPrediction(class_index=2, confidence=0.92),
        RankedPrediction(class_index=1, confidence=0.05),
        RankedPrediction(class_index=0, confidence=0.02),
    ]

    assessment = ConfidenceAssessor().assess(vectors, ranked, label_for)

    assert assessment.validation_score == pytest.approx(80.0)
    assert assessment.reliability is Reliability.MEDIUM
    assert len(assessment.recommendations) == 3


def test_uniform_single_vector_scenario():
    vectors = [[0.25, 0.25, 0.25, 0.25]]
    ranked = rank_predictions(average_probabilities(vectors))

    assessment = ConfidenceAssessor().assess(vectors, ranked, label_for)

    assert ranked[0].confidence == 0.25
    assert assessment.reliability is Reliability.LOW
    extra = [r for r in assessment.recommendations if r.startswith("Also consider")]
    assert extra == ["Also consider possibility of Apple Black Rot (25.0% confidence)"]


def test_tier_templates():
    high = generate_recommendations([RankedPrediction(0, 0.99)], Reliability.HIGH, label_for)
    low = generate_recommendations([RankedPrediction(0, 0.4)], Reliability.LOW, label_for)
    assert high[0].startswith("High confidence detection")
    assert len(high) == 2
    assert len(low) == 4


def test_clear_winner_gets_no_alternative_line():
    ranked = [RankedPrediction(0, 0.95), RankedPrediction(3, 0.03)]
    recs = generate_recommendations(ranked, Reliability.HIGH, label_for)
    assert not any(r.startswith("Also consider") for r in recs)


def test_alternative_line_names_unknown_runner_up():
    ranked = [RankedPrediction(0, 0.5), RankedPrediction(42, 0.45)]
    recs = generate_recommendations(ranked, Reliability.LOW, label_for)
    assert recs[-1] == "Also consider possibility of Unknown (45.0% confidence)"
