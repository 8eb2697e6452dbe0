"""Unit tests for preference normalization and strategy weights."""

from __future__ import annotations

import pytest

from recommender.engine.preferences import normalize_labels, normalize_user_preferences
from recommender.engine.types import RentalPreferences, UserProfile
from recommender.engine.weights import BASE_WEIGHTS, WeightSet, calculate_weights


class TestNormalization:
    def test_trims_lowercases_and_drops_junk(self):
        assert normalize_labels(["  Poetry ", "SCIENCE Fiction", "", "   ", None, 42, "hindi"]) == (
            "poetry",
            "science fiction",
            "hindi",
        )

    def test_missing_lists_mean_no_preference(self):
        assert normalize_labels(None) == ()
        user = normalize_user_preferences(UserProfile(id=1))
        assert user.favorite_genres == ()
        assert user.preferred_languages == ()
        assert not user.has_genres and not user.has_languages

    def test_returns_copy_without_touching_input(self):
        original = UserProfile(id=7, favorite_genres=(" Poetry",), preferred_languages=("HINDI",), age=30)
        normalized = normalize_user_preferences(original)

        assert normalized is not original
        assert original.favorite_genres == (" Poetry",)
        assert original.preferred_languages == ("HINDI",)
        assert normalized.favorite_genres == ("poetry",)
        assert normalized.preferred_languages == ("hindi",)
        assert normalized.age == 30


def _user(genres=(), languages=(), prefers_trending=None) -> UserProfile:
    prefs = None if prefers_trending is None else RentalPreferences(prefers_trending=prefers_trending)
    return UserProfile(id=1, favorite_genres=genres, preferred_languages=languages, rental_preferences=prefs)


class TestWeights:
    def test_base_weights(self):
        assert calculate_weights(_user()) == WeightSet(0.5, 0.25, 0.05, 0.15, 0.05)

    def test_prefers_trending(self):
        weights = calculate_weights(_user(prefers_trending=True))
        assert weights.trending == 0.1
        assert weights.genre == 0.45
        assert weights.language == 0.25

    def test_prefers_trending_false_keeps_base(self):
        assert calculate_weights(_user(prefers_trending=False)) == BASE_WEIGHTS

    def test_genres_override_trending_genre_weight(self):
        weights = calculate_weights(_user(genres=("poetry",), prefers_trending=True))
        assert weights.genre == 0.6
        assert weights.trending == 0.1

    def test_languages_only(self):
        weights = calculate_weights(_user(languages=("hindi",)))
        assert weights.language == 0.35
        assert weights.genre == 0.5

    def test_both_preferences_rebalance_everything(self):
        weights = calculate_weights(_user(genres=("poetry",), languages=("hindi",), prefers_trending=True))
        assert weights == WeightSet(genre=0.45, language=0.35, demographic=0.05, collaborative=0.10, trending=0.05)

    def test_rules_apply_in_order_over_immutable_base(self):
        rules = (
            (lambda u: True, {"genre": 1.0}),
            (lambda u: True, {"genre": 2.0, "trending": 0.0}),
        )
        weights = calculate_weights(_user(), rules=rules)
        assert weights.genre == 2.0
        assert weights.trending == 0.0
        assert BASE_WEIGHTS.genre == 0.5

    @pytest.mark.parametrize("genres,languages", [((), ()), (("a",), ()), ((), ("b",)), (("a",), ("b",))])
    def test_weights_are_non_negative(self, genres, languages):
        weights = calculate_weights(_user(genres, languages))
        assert all(value >= 0 for value in vars(weights).values())
