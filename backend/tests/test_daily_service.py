import unittest
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
from sqlalchemy.exc import OperationalError

from cinema.schemas.daily import CacheSource
from cinema.services.daily_cache import CacheHit, DailyShowcaseCache
from cinema.services.daily_service import (
    OriginReadError,
    ShowcaseNotFoundError,
    filter_eligible_movies,
    is_movie_eligible,
    load_daily_showcase,
    normalize_movie,
    read_origin_movies,
    resolve_request_date,
)
from cinema.services.date_keys import DateKeyResolver
from cinema.services.remote_cache import UpstashRestStore


def _db_with_row(movies):
    db = MagicMock()
    row = None if movies is None else SimpleNamespace(movies=movies)
    db.query.return_value.filter.return_value.first.return_value = row
    return db


STORED_MOVIES = [
    {"id": 1, "title": "Interstellar", "vote_average": 8.4, "genre": "Sci-Fi/Adventure"},
    {"id": 2, "movieTitle": "Low Rated", "voteAverage": 5.9, "genre": "Comedy"},
    {"id": 3, "title": "Belgesel", "voteAverage": 8.0, "genre": "Belgesel"},
    {"id": 4, "title": "Parasite", "voteAverage": 8.5, "genre": "Thriller/Drama"},
]


class TestEligibility(unittest.TestCase):
    def test_rating_floor_is_inclusive(self) -> None:
        self.assertTrue(is_movie_eligible({"voteAverage": 6.5, "genre": "Drama"}))
        self.assertFalse(is_movie_eligible({"voteAverage": 6.49, "genre": "Drama"}))

    def test_missing_or_non_finite_rating_is_excluded(self) -> None:
        for value in (None, "n/a", float("nan"), float("inf"), True):
            with self.subTest(value=value):
                self.assertFalse(is_movie_eligible({"voteAverage": value, "genre": "Drama"}))

    def test_numeric_string_rating_counts(self) -> None:
        self.assertTrue(is_movie_eligible({"voteAverage": "7.2", "genre": "Drama"}))

    def test_documentaries_are_excluded_in_either_language(self) -> None:
        self.assertFalse(is_movie_eligible({"voteAverage": 9.0, "genre": "Music/Documentary"}))
        self.assertFalse(is_movie_eligible({"voteAverage": 9.0, "genre": "BELGESEL"}))
        self.assertTrue(is_movie_eligible({"voteAverage": 9.0}))

    def test_normalize_fills_title_and_rating_from_legacy_keys(self) -> None:
        movie = normalize_movie({"movie_title": "Old Boy", "vote_average": 8.3})
        self.assertEqual(movie["title"], "Old Boy")
        self.assertEqual(movie["voteAverage"], 8.3)

    def test_normalize_tolerates_non_objects(self) -> None:
        self.assertEqual(normalize_movie("junk"), {"title": None, "voteAverage": None})

    def test_filter_keeps_order(self) -> None:
        kept = filter_eligible_movies(STORED_MOVIES)
        self.assertEqual([movie["id"] for movie in kept], [1, 4])
        self.assertEqual(kept[0]["voteAverage"], 8.4)


class TestResolveRequestDate(unittest.TestCase):
    def setUp(self) -> None:
        self.resolver = DateKeyResolver("UTC", clock=lambda: datetime(2024, 3, 1, 9, tzinfo=timezone.utc))

    def test_valid_override_wins(self) -> None:
        self.assertEqual(resolve_request_date(self.resolver, "2023-12-25"), "2023-12-25")

    def test_invalid_override_uses_today(self) -> None:
        self.assertEqual(resolve_request_date(self.resolver, "yesterday"), "2024-03-01")
        self.assertEqual(resolve_request_date(self.resolver, None), "2024-03-01")


class TestReadOriginMovies(unittest.TestCase):
    def test_returns_stored_list(self) -> None:
        self.assertEqual(read_origin_movies(_db_with_row(STORED_MOVIES), "2024-03-01"), STORED_MOVIES)

    def test_missing_row_is_none(self) -> None:
        self.assertIsNone(read_origin_movies(_db_with_row(None), "2024-03-01"))

    def test_impossible_calendar_day_skips_query(self) -> None:
        db = MagicMock()
        self.assertIsNone(read_origin_movies(db, "2024-02-31"))
        db.query.assert_not_called()

    def test_database_failure_raises_origin_error(self) -> None:
        db = MagicMock()
        db.query.side_effect = OperationalError("SELECT", {}, Exception("connection refused"))
        with self.assertRaises(OriginReadError):
            read_origin_movies(db, "2024-03-01")


class TestLoadDailyShowcase(unittest.IsolatedAsyncioTestCase):
    async def test_cache_hit_never_touches_origin(self) -> None:
        cache = MagicMock(spec=DailyShowcaseCache)
        cache.get = AsyncMock(return_value=CacheHit(movies=[{"id": 9}], source=CacheSource.REMOTE))
        cache.set = AsyncMock()
        db = MagicMock()

        result = await load_daily_showcase(db, cache, "2024-03-01")

        self.assertEqual(result.source, CacheSource.REMOTE)
        self.assertEqual(result.movies, [{"id": 9}])
        db.query.assert_not_called()
        cache.set.assert_not_awaited()

    async def test_miss_reads_origin_filters_and_fills_cache(self) -> None:
        cache = DailyShowcaseCache()
        db = _db_with_row(STORED_MOVIES)

        first = await load_daily_showcase(db, cache, "2024-03-01")
        second = await load_daily_showcase(db, cache, "2024-03-01")

        self.assertEqual(first.source, CacheSource.ORIGIN)
        self.assertEqual([movie["id"] for movie in first.movies], [1, 4])
        self.assertEqual(second.source, CacheSource.MEMORY)
        self.assertEqual(second.movies, first.movies)
        db.query.assert_called_once()

    async def test_nothing_eligible_is_not_found_and_not_cached(self) -> None:
        cache = DailyShowcaseCache()
        db = _db_with_row([{"id": 2, "title": "Low", "voteAverage": 3.0}])

        with self.assertRaises(ShowcaseNotFoundError):
            await load_daily_showcase(db, cache, "2024-03-01")
        self.assertIsNone(await cache.get("2024-03-01"))

    async def test_missing_row_is_not_found(self) -> None:
        with self.assertRaises(ShowcaseNotFoundError) as ctx:
            await load_daily_showcase(_db_with_row(None), DailyShowcaseCache(), "2024-03-01")
        self.assertEqual(ctx.exception.date_key, "2024-03-01")

    async def test_origin_failure_propagates(self) -> None:
        db = MagicMock()
        db.query.side_effect = OperationalError("SELECT", {}, Exception("timeout"))
        with self.assertRaises(OriginReadError):
            await load_daily_showcase(db, DailyShowcaseCache(), "2024-03-01")

    async def test_remote_timeout_falls_through_to_origin(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        remote = UpstashRestStore(
            "https://kv.example.com",
            "token",
            timeout=0.5,
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
        cache = DailyShowcaseCache(remote=remote)
        db = _db_with_row(STORED_MOVIES + [{"id": 5, "title": "Nature", "voteAverage": 9.1, "genre": "Documentary"}])

        with self.assertLogs("cinema.services.daily_cache", level="WARNING"):
            result = await load_daily_showcase(db, cache, "2024-03-01")

        self.assertEqual(result.source, CacheSource.ORIGIN)
        self.assertEqual([movie["id"] for movie in result.movies], [1, 4])
        db.query.assert_called_once()
