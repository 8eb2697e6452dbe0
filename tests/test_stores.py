"""Tests for the SQL store's translation of declarative queries."""

from __future__ import annotations

from datetime import timedelta

import pytest

from recommender.stores.base import (
    BY_RATING,
    BookQuery,
    PeerQuery,
    SortKey,
    TextField,
    TextFilter,
    TextMatch,
)

from conftest import NOW


def genre(value, match=TextMatch.EXACT):
    return TextFilter(TextField.GENRE, (value,), match)


def titles(books):
    return [book.title for book in books]


class TestTextMatching:
    @pytest.mark.asyncio
    async def test_exact_is_case_insensitive_full_string(self, catalog, book_store):
        await catalog.book("A", genre="Poetry")
        await catalog.book("B", genre="POETRY")
        await catalog.book("C", genre="Poetry Anthology")

        books = await book_store.find(BookQuery(text=(genre("poetry"),)))

        assert titles(books) == ["A", "B"]

    @pytest.mark.asyncio
    async def test_exact_matches_any_of_several_values(self, catalog, book_store):
        await catalog.book("A", genre="Poetry")
        await catalog.book("B", genre="Drama")
        await catalog.book("C", genre="History")

        query = BookQuery(text=(TextFilter(TextField.GENRE, ("poetry", "drama")),))
        assert titles(await book_store.find(query)) == ["A", "B"]

    @pytest.mark.asyncio
    async def test_contains_is_substring(self, catalog, book_store):
        await catalog.book("A", genre="Science Fiction")
        await catalog.book("B", genre="Nonfiction")
        await catalog.book("C", genre="Poetry")

        books = await book_store.find(BookQuery(text=(genre("fict", TextMatch.CONTAINS),)))

        assert titles(books) == ["A", "B"]

    @pytest.mark.asyncio
    async def test_contains_treats_wildcards_literally(self, catalog, book_store):
        await catalog.book("A", genre="100% Romance")
        await catalog.book("B", genre="1000 Romance")
        await catalog.book("C", genre="Snake_case")
        await catalog.book("D", genre="Snakescase")

        percent = await book_store.find(BookQuery(text=(genre("100%", TextMatch.CONTAINS),)))
        underscore = await book_store.find(BookQuery(text=(genre("e_c", TextMatch.CONTAINS),)))

        assert titles(percent) == ["A"]
        assert titles(underscore) == ["C"]

    @pytest.mark.asyncio
    async def test_word_match_needs_whole_word(self, catalog, book_store):
        await catalog.book("A", genre="Science Fiction")
        await catalog.book("B", genre="Fiction")
        await catalog.book("C", genre="Fiction Classics")
        await catalog.book("D", genre="Nonfiction")

        books = await book_store.find(BookQuery(text=(genre("fiction", TextMatch.WORD),)))

        assert titles(books) == ["A", "B", "C"]

    @pytest.mark.asyncio
    async def test_text_filters_are_anded(self, catalog, book_store):
        await catalog.book("A", genre="Poetry", language="Hindi")
        await catalog.book("B", genre="Poetry", language="English")
        await catalog.book("C", genre="Drama", language="Hindi")

        query = BookQuery(
            text=(genre("poetry"), TextFilter(TextField.LANGUAGE, ("hindi",))),
        )
        assert titles(await book_store.find(query)) == ["A"]

    @pytest.mark.asyncio
    async def test_empty_values_match_nothing(self, catalog, book_store):
        await catalog.book("A", genre="Poetry")
        query = BookQuery(text=(TextFilter(TextField.GENRE, ()),))
        assert await book_store.find(query) == []


class TestBookFilters:
    @pytest.mark.asyncio
    async def test_out_of_stock_books_are_never_returned(self, catalog, book_store):
        await catalog.book("In", stock_quantity=2)
        await catalog.book("Out", stock_quantity=0)

        assert titles(await book_store.find(BookQuery())) == ["In"]
        assert titles(await book_store.find(BookQuery(in_stock=False))) == ["In", "Out"]

    @pytest.mark.asyncio
    async def test_include_and_exclude_ids(self, catalog, book_store):
        a, b, c = await catalog.books(3)

        included = await book_store.find(BookQuery(include_ids=frozenset({a.id, c.id})))
        excluded = await book_store.find(BookQuery(exclude_ids=frozenset({a.id})))

        assert [book.id for book in included] == [a.id, c.id]
        assert [book.id for book in excluded] == [b.id, c.id]

    @pytest.mark.asyncio
    async def test_read_by_users(self, catalog, book_store):
        a, b, c = await catalog.books(3)
        reader = await catalog.user()
        other = await catalog.user()
        await catalog.read(reader, a, c)
        await catalog.read(other, b)

        books = await book_store.find(BookQuery(read_by_user_ids=frozenset({reader})))

        assert [book.id for book in books] == [a.id, c.id]

    @pytest.mark.asyncio
    async def test_rating_rentals_and_recency(self, catalog, book_store):
        await catalog.book("Hot", rating=4.0, rental_count=5, last_rented=NOW - timedelta(days=2))
        await catalog.book("Stale", rating=4.0, rental_count=9, last_rented=NOW - timedelta(days=60))
        await catalog.book("Quiet", rating=4.0, rental_count=1, last_rented=NOW - timedelta(days=1))
        await catalog.book("Low", rating=2.0, rental_count=5, last_rented=NOW - timedelta(days=1))

        query = BookQuery(
            min_rating=3.5,
            min_rental_count=3,
            rented_since=NOW - timedelta(days=30),
        )
        assert titles(await book_store.find(query)) == ["Hot"]

    @pytest.mark.asyncio
    async def test_ordering_and_limit(self, catalog, book_store):
        await catalog.book("Mid", rating=4.0, rental_count=5)
        await catalog.book("Top", rating=4.9, rental_count=1)
        await catalog.book("Tie", rating=4.0, rental_count=7)
        await catalog.book("Low", rating=2.0, rental_count=9)

        by_rating = await book_store.find(BookQuery(order_by=BY_RATING, limit=3))
        by_rentals = await book_store.find(
            BookQuery(order_by=(SortKey("rental_count"), SortKey("rating")), limit=2)
        )

        # Equal ratings keep id order
        assert titles(by_rating) == ["Top", "Mid", "Tie"]
        assert titles(by_rentals) == ["Low", "Tie"]

    @pytest.mark.asyncio
    async def test_distinct_labels(self, catalog, book_store):
        await catalog.book(genre="Poetry", language="Hindi")
        await catalog.book(genre="Drama", language="Hindi")
        await catalog.book(genre="Poetry", language="English")

        assert await book_store.distinct(TextField.GENRE) == ["Drama", "Poetry"]
        assert await book_store.distinct(TextField.LANGUAGE) == ["English", "Hindi"]


class TestUserStore:
    @pytest.mark.asyncio
    async def test_find_by_id_builds_profile(self, catalog, user_store):
        book = await catalog.book()
        user_id = await catalog.user(
            favorite_genres=["Poetry"],
            preferred_languages=["Hindi"],
            age=30,
            rental_preferences={"prefers_trending": False},
        )
        await catalog.read(user_id, book)

        profile = await user_store.find_by_id(user_id)

        assert profile.favorite_genres == ("Poetry",)
        assert profile.preferred_languages == ("Hindi",)
        assert profile.rental_preferences.prefers_trending is False
        assert profile.read_book_ids == [book.id]

    @pytest.mark.asyncio
    async def test_unknown_user(self, user_store):
        assert await user_store.find_by_id(404) is None

    @pytest.mark.asyncio
    async def test_peer_query(self, catalog, user_store):
        me = await catalog.user(age=30, location="Delhi")
        near = await catalog.user(age=33, location="Delhi")
        await catalog.user(age=40, location="Delhi")
        await catalog.user(age=31, location="Pune")

        peers = await user_store.find(
            PeerQuery(exclude_user_id=me, min_age=25, max_age=35, location="Delhi")
        )

        assert [peer.id for peer in peers] == [near]

    @pytest.mark.asyncio
    async def test_readers_of_books(self, catalog, user_store):
        a, b = await catalog.books(2)
        me = await catalog.user()
        reader = await catalog.user()
        await catalog.user()
        await catalog.read(me, a)
        await catalog.read(reader, a, b)

        peers = await user_store.find(PeerQuery(exclude_user_id=me, read_any_of=frozenset({a.id})))

        assert [peer.id for peer in peers] == [reader]
        assert sorted(peers[0].read_book_ids) == sorted([a.id, b.id])
