"""
Candidate combination and scoring.

Each candidate list adds its strategy weight to every book it contains; a
book found by several strategies accumulates the sum. Bonus rules then run
in a fixed order, each a pure ``(candidate, user) -> candidate`` function.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Callable, Iterable, Sequence

from recommender.engine.types import ScoredCandidate, UserProfile
from recommender.engine.weights import WeightSet
from recommender.models.book import Book

HIGH_RATING = 4.5
HIGH_RATING_BONUS = 1.2
EXACT_GENRE_BONUS = 1.3
EXACT_LANGUAGE_BONUS = 1.3
PERFECT_MATCH_BONUS = 1.5

EXACT_GENRE = "exactGenre"
EXACT_LANGUAGE = "exactLanguage"
PERFECT_MATCH = "perfectMatch"

ScoringRule = Callable[[ScoredCandidate, UserProfile], ScoredCandidate]


def _boost(candidate: ScoredCandidate, factor: float, tag: str | None = None) -> ScoredCandidate:
    tags = candidate.match_types | {tag} if tag else candidate.match_types
    return replace(candidate, score=candidate.score * factor, match_types=tags)


def high_rating_bonus(candidate: ScoredCandidate, user: UserProfile) -> ScoredCandidate:
    if (candidate.book.rating or 0) >= HIGH_RATING:
        return _boost(candidate, HIGH_RATING_BONUS)
    return candidate


def exact_genre_bonus(candidate: ScoredCandidate, user: UserProfile) -> ScoredCandidate:
    genre = (candidate.book.genre or "").lower()
    if genre and genre in user.favorite_genres:
        return _boost(candidate, EXACT_GENRE_BONUS, EXACT_GENRE)
    return candidate


def exact_language_bonus(candidate: ScoredCandidate, user: UserProfile) -> ScoredCandidate:
    language = (candidate.book.language or "").lower()
    if language and language in user.preferred_languages:
        return _boost(candidate, EXACT_LANGUAGE_BONUS, EXACT_LANGUAGE)
    return candidate


def perfect_match_bonus(candidate: ScoredCandidate, user: UserProfile) -> ScoredCandidate:
    if {EXACT_GENRE, EXACT_LANGUAGE} <= candidate.match_types:
        return _boost(candidate, PERFECT_MATCH_BONUS, PERFECT_MATCH)
    return candidate


SCORING_RULES: tuple[ScoringRule, ...] = (
    high_rating_bonus,
    exact_genre_bonus,
    exact_language_bonus,
    perfect_match_bonus,
)


def accumulate(
    weighted_lists: Iterable[tuple[Sequence[Book], float]],
) -> list[ScoredCandidate]:
    """Merge candidate lists by book id, summing weights. Keeps first-seen order."""
    merged: dict[int, ScoredCandidate] = {}
    for books, weight in weighted_lists:
        for book in books:
            current = merged.get(book.id)
            if current is None:
                merged[book.id] = ScoredCandidate(book=book, score=weight)
            else:
                merged[book.id] = replace(current, score=current.score + weight)
    return list(merged.values())


def apply_rules(
    candidate: ScoredCandidate,
    user: UserProfile,
    rules: Sequence[ScoringRule] = SCORING_RULES,
) -> ScoredCandidate:
    for rule in rules:
        candidate = rule(candidate, user)
    return candidate


def score_and_combine(
    user: UserProfile,
    weights: WeightSet,
    genre_books: Sequence[Book],
    language_books: Sequence[Book],
    demographic_books: Sequence[Book],
    collaborative_books: Sequence[Book],
    trending_books: Sequence[Book],
) -> list[ScoredCandidate]:
    """Score every candidate and return them best first (ties keep insertion order)."""
    candidates = accumulate(
        [
            (genre_books, weights.genre),
            (language_books, weights.language),
            (demographic_books, weights.demographic),
            (collaborative_books, weights.collaborative),
            (trending_books, weights.trending),
        ]
    )
    scored = [apply_rules(candidate, user) for candidate in candidates]
    return sorted(scored, key=lambda c: c.score, reverse=True)
