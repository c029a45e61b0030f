"""Statistics over journal entries used by the pattern tools."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from ..journal.models import Decision

BUCKET_UPPER_BOUNDS: Tuple[int, ...] = (20, 40, 60, 80, 100)
SUCCESS_RATING = 5

_POSITIVE_WORDS = ("better", "success", "good")
_NEGATIVE_WORDS = ("worse", "fail", "bad")


@dataclass
class CalibrationBucket:
    """Decisions whose confidence fell in one 20-point band."""

    confidence: int
    actual: float
    count: int

    @property
    def gap(self) -> float:
        """Stated minus realized success, as a fraction in [-1, 1]."""

        return (self.confidence - self.actual) / 100.0


@dataclass
class FrequencyPattern:
    label: str
    count: int
    avg_confidence: float
    decision_ids: List[str]


def has_calibration_data(decision: Decision) -> bool:
    return decision.is_reviewed and decision.confidence_level is not None


def outcome_score(decision: Decision) -> float:
    """Realized outcome in [0, 1]: the rating when present, else a text heuristic."""

    if decision.outcome_rating is not None:
        return decision.outcome_rating / 10.0
    text = (decision.actual_outcome or "").lower()
    if any(word in text for word in _POSITIVE_WORDS):
        return 1.0
    if any(word in text for word in _NEGATIVE_WORDS):
        return 0.0
    return 0.5


def is_success(decision: Decision) -> bool:
    if decision.outcome_rating is not None:
        return decision.outcome_rating >= SUCCESS_RATING
    text = (decision.actual_outcome or "").lower()
    return any(word in text for word in _POSITIVE_WORDS)


def brier_score(decisions: Sequence[Decision]) -> Optional[float]:
    """Mean squared gap between confidence and outcome; lower is better."""

    reviewed = [decision for decision in decisions if has_calibration_data(decision)]
    if not reviewed:
        return None
    forecasts = np.array([decision.confidence_level / 10.0 for decision in reviewed])
    outcomes = np.array([outcome_score(decision) for decision in reviewed])
    return float(np.mean((forecasts - outcomes) ** 2))


def calibration_curve(decisions: Sequence[Decision], min_decisions: int = 3) -> Optional[List[CalibrationBucket]]:
    """Success rate per confidence band; None with fewer than ``min_decisions`` entries."""

    reviewed = [decision for decision in decisions if has_calibration_data(decision)]
    if len(reviewed) < min_decisions:
        return None

    totals = {bound: [0, 0] for bound in BUCKET_UPPER_BOUNDS}
    for decision in reviewed:
        confidence = decision.confidence_level * 10
        bound = next((upper for upper in BUCKET_UPPER_BOUNDS if confidence <= upper), BUCKET_UPPER_BOUNDS[-1])
        totals[bound][1] += 1
        if is_success(decision):
            totals[bound][0] += 1

    return [
        CalibrationBucket(confidence=bound - 10, actual=successes / count * 100.0, count=count)
        for bound, (successes, count) in totals.items()
        if count
    ]


def _frequency(decisions: Sequence[Decision], attribute: str) -> List[FrequencyPattern]:
    counts: Counter = Counter()
    confidence_totals: Counter = Counter()
    members: dict = {}
    for decision in decisions:
        for label in getattr(decision, attribute) or []:
            counts[label] += 1
            confidence_totals[label] += decision.confidence_level or 0
            members.setdefault(label, []).append(decision.id)
    return [
        FrequencyPattern(
            label=label,
            count=count,
            avg_confidence=confidence_totals[label] / count,
            decision_ids=members[label],
        )
        for label, count in counts.most_common()
    ]


def tag_patterns(decisions: Sequence[Decision]) -> List[FrequencyPattern]:
    return _frequency(decisions, "tags")


def emotion_patterns(decisions: Sequence[Decision]) -> List[FrequencyPattern]:
    return _frequency(decisions, "emotional_flags")


def mean(values: Sequence[float]) -> Optional[float]:
    return float(np.mean(values)) if len(values) else None


__all__ = [
    "BUCKET_UPPER_BOUNDS",
    "CalibrationBucket",
    "FrequencyPattern",
    "brier_score",
    "calibration_curve",
    "emotion_patterns",
    "has_calibration_data",
    "is_success",
    "mean",
    "outcome_score",
    "tag_patterns",
]
