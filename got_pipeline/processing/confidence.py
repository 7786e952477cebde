"""Confidence vector computation.

A confidence vector holds four scores in [0, 1]: empirical support,
theoretical basis, methodological rigor and consensus alignment.
"""

from typing import Iterable, Optional, Sequence

from got_pipeline.extraction.signals import DEFAULT_CONFIDENCE_VECTOR

VECTOR_LENGTH = 4
PER_ITEM_INCREMENT = 0.15
ACCUMULATION_CAP = 0.9
CORROBORATION_BONUS = 0.1  # applied once more than three items exist


def _clamp(value: float) -> float:
    return min(1.0, max(0.0, value))


def calculate_confidence(evidence: Optional[Iterable[Optional[str]]]) -> float:
    """Aggregate confidence from a list of evidence items.

    Blank and None items are ignored. Each remaining item adds 0.15 up to 0.9,
    and a 0.1 bonus applies once there are more than three items.

    Examples:
        >>> calculate_confidence([])
        0.0
        >>> calculate_confidence(["a"])
        0.15
    """
    if not evidence:
        return 0.0
    count = sum(
        1 for item in evidence
        if item is not None and str(item).strip()
    )
    if count == 0:
        return 0.0
    score = min(count * PER_ITEM_INCREMENT, ACCUMULATION_CAP)
    if count > 3:
        score += CORROBORATION_BONUS
    return round(min(score, 1.0), 10)


def normalize_vector(values: Optional[Sequence[float]]) -> list[float]:
    """Coerce to exactly four clamped floats, padding from the default vector."""
    if not values:
        return list(DEFAULT_CONFIDENCE_VECTOR)
    vector = [_clamp(float(v)) for v in list(values)[:VECTOR_LENGTH]]
    vector.extend(DEFAULT_CONFIDENCE_VECTOR[len(vector):])
    return vector


def mean_confidence(vector: Sequence[float]) -> float:
    if not vector:
        return 0.0
    return sum(vector) / len(vector)


def blend_vectors(
    prior: Sequence[float], update: Sequence[float], weight: float = 0.5
) -> list[float]:
    """Blend two vectors element-wise; `weight` is the share given to `update`."""
    weight = _clamp(weight)
    prior_v = normalize_vector(prior)
    update_v = normalize_vector(update)
    return [
        _clamp((1.0 - weight) * p + weight * u)
        for p, u in zip(prior_v, update_v)
    ]


def average_vectors(vectors: Sequence[Sequence[float]]) -> list[float]:
    """Element-wise arithmetic mean; the default vector for no input."""
    if not vectors:
        return list(DEFAULT_CONFIDENCE_VECTOR)
    normalized = [normalize_vector(v) for v in vectors]
    return [
        sum(column) / len(normalized)
        for column in zip(*normalized)
    ]


def aggregate_confidence(vectors: Sequence[Sequence[float]]) -> float:
    """Mean of the per-vector means, 0.0 when empty."""
    if not vectors:
        return 0.0
    return sum(mean_confidence(normalize_vector(v)) for v in vectors) / len(vectors)
