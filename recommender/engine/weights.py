"""
Strategy weights derived from which preference signals a user actually has.

Rules are applied in order over an immutable base; a later rule overrides
fields set by an earlier one. The last rule is a full rebalance used when
both genre and language preferences are present.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Callable

from recommender.engine.types import UserProfile


@dataclass(frozen=True)
class WeightSet:
    genre: float
    language: float
    demographic: float
    collaborative: float
    trending: float


BASE_WEIGHTS = WeightSet(
    genre=0.5,
    language=0.25,
    demographic=0.05,
    collaborative=0.15,
    trending=0.05,
)

WeightRule = tuple[Callable[[UserProfile], bool], dict[str, float]]

WEIGHT_RULES: tuple[WeightRule, ...] = (
    (lambda u: u.prefers_trending, {"trending": 0.1, "genre": 0.45}),
    (lambda u: u.has_genres, {"genre": 0.6}),
    (lambda u: u.has_languages, {"language": 0.35}),
    (
        lambda u: u.has_genres and u.has_languages,
        {
            "genre": 0.45,
            "language": 0.35,
            "demographic": 0.05,
            "collaborative": 0.10,
            "trending": 0.05,
        },
    ),
)


def calculate_weights(
    user: UserProfile,
    base: WeightSet = BASE_WEIGHTS,
    rules: tuple[WeightRule, ...] = WEIGHT_RULES,
) -> WeightSet:
    weights = base
    for applies, overrides in rules:
        if applies(user):
            weights = replace(weights, **overrides)
    return weights
