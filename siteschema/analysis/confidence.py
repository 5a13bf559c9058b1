"""Structural pre-confidence for detected objects.

The score only decides whether the optional AI validation step runs; it
never changes the confidence reported on a detected object.
"""

from __future__ import annotations

from dataclasses import dataclass
from itertools import combinations
from typing import Sequence

import numpy as np

from .fields import classify_value
from .models import ContentObjectInstance

MAX_JACCARD_SAMPLE = 50
LARGE_SAMPLE = 10
SMALL_SAMPLE = 5


@dataclass(frozen=True)
class StructuralTuning:
    """Weights and thresholds for :func:`structural_confidence`."""

    skip_threshold: float = 0.8
    jaccard_weight: float = 0.4
    field_count_weight: float = 0.25
    type_consistency_weight: float = 0.35
    cv_penalty: float = 0.5
    max_source_penalty: float = 0.5
    source_step_penalty: float = 0.25
    large_sample_bonus: float = 0.05
    small_sample_penalty: float = 0.10


def source_factor(instances: Sequence[ContentObjectInstance], tuning: StructuralTuning) -> float:
    kinds = len({instance.source for instance in instances})
    return max(1.0 - tuning.max_source_penalty, 1.0 - tuning.source_step_penalty * (kinds - 1))


def mean_pairwise_jaccard(instances: Sequence[ContentObjectInstance]) -> float:
    key_sets = [set(instance.data) for instance in instances[:MAX_JACCARD_SAMPLE]]
    if len(key_sets) < 2:
        return 1.0
    scores = [
        len(a & b) / len(a | b) if a | b else 1.0
        for a, b in combinations(key_sets, 2)
    ]
    return float(np.mean(scores))


def field_count_factor(instances: Sequence[ContentObjectInstance], tuning: StructuralTuning) -> float:
    counts = np.array([len(instance.data) for instance in instances], dtype=float)
    mean = counts.mean()
    if mean == 0:
        return 0.0
    cv = counts.std() / mean
    return max(0.0, 1.0 - cv * tuning.cv_penalty)


def type_consistency(instances: Sequence[ContentObjectInstance]) -> float:
    """Fraction of keys whose value type agrees across every instance holding it."""
    observed: dict[str, set[str]] = {}
    for instance in instances:
        for key, value in instance.data.items():
            observed.setdefault(key, set()).add(classify_value(value))
    if not observed:
        return 0.0
    consistent = sum(1 for types in observed.values() if len(types) == 1)
    return consistent / len(observed)


def structural_confidence(
    instances: Sequence[ContentObjectInstance],
    tuning: StructuralTuning = StructuralTuning(),
) -> float:
    """Combine structural signals into a plausibility score in [0, 1]."""
    if not instances:
        return 0.0

    score = (
        tuning.jaccard_weight * mean_pairwise_jaccard(instances)
        + tuning.field_count_weight * field_count_factor(instances, tuning)
        + tuning.type_consistency_weight * type_consistency(instances)
    )
    score *= source_factor(instances, tuning)

    if len(instances) >= LARGE_SAMPLE:
        score += tuning.large_sample_bonus
    elif len(instances) < SMALL_SAMPLE:
        score -= tuning.small_sample_penalty

    return float(np.clip(score, 0.0, 1.0))
