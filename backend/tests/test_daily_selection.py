import unittest
from collections import Counter
from datetime import date

from cinema.services.daily_selection import (
    DAILY_MOVIE_COUNT,
    SLOT_LABELS,
    TMDB_DISCOVER_PAGE_WINDOW,
    build_seed_movies,
    count_unique_genres,
    enforce_genre_diversity,
    hash_string,
    normalize_movie_ids,
    seeded_random,
    seeded_shuffle,
    select_daily_movies,
    slot_pages,
    slot_params_for,
)
from cinema.services.tmdb_sync import map_discover_result, parse_year


def _movie(movie_id: int, genre: str, year: int, director: str = "") -> dict:
    return {"id": movie_id, "title": f"Movie {movie_id}", "genre": genre, "year": year, "director": director}


class TestDeterministicRandomness(unittest.TestCase):
    def test_fnv1a_known_values(self) -> None:
        self.assertEqual(hash_string(""), 2166136261)
        self.assertEqual(hash_string("a"), 0xE40C292C)

    def test_prng_is_reproducible_and_bounded(self) -> None:
        first, second = seeded_random(42), seeded_random(42)
        values = [first() for _ in range(50)]
        self.assertEqual(values, [second() for _ in range(50)])
        self.assertTrue(all(0 <= value < 1 for value in values))

    def test_shuffle_is_a_permutation(self) -> None:
        items = [{"id": i} for i in range(20)]
        shuffled = seeded_shuffle(items, "daily:2024-03-01")
        self.assertEqual(sorted(m["id"] for m in shuffled), list(range(20)))
        self.assertEqual(shuffled, seeded_shuffle(items, "daily:2024-03-01"))
        self.assertEqual([m["id"] for m in items], list(range(20)))


class TestSeedSelection(unittest.TestCase):
    def test_same_day_same_selection(self) -> None:
        self.assertEqual(build_seed_movies("2024-03-01"), build_seed_movies("2024-03-01"))

    def test_constraints_hold_across_days(self) -> None:
        for day in ("2024-01-01", "2024-02-29", "2024-03-01", "2025-07-14", "2026-12-31"):
            with self.subTest(day=day):
                movies = build_seed_movies(day)
                self.assertEqual(len(movies), DAILY_MOVIE_COUNT)
                self.assertEqual(len({m["id"] for m in movies}), DAILY_MOVIE_COUNT)

                directors = Counter(m["director"].lower() for m in movies)
                self.assertLessEqual(max(directors.values()), 1)
                self.assertTrue(any(m["year"] < 2000 for m in movies))
                self.assertTrue(any(m["year"] >= 2010 for m in movies))
                self.assertGreaterEqual(count_unique_genres(movies), 4)
                self.assertEqual([m["slotLabel"] for m in movies], SLOT_LABELS)

    def test_previous_day_ids_are_excluded(self) -> None:
        movies = build_seed_movies("2024-03-01", excluded_ids=[129, "bogus"])
        self.assertNotIn(129, [m["id"] for m in movies])
        self.assertEqual(len(movies), DAILY_MOVIE_COUNT)

    def test_exclusion_is_ignored_when_pool_would_be_too_small(self) -> None:
        movies = build_seed_movies("2024-03-01", excluded_ids=[157336, 155, 129])
        self.assertEqual(len(movies), DAILY_MOVIE_COUNT)


class TestSelectionRules(unittest.TestCase):
    def test_genre_diversity_keeps_last_classic_and_modern(self) -> None:
        selected = [
            _movie(1, "Drama", 1990),
            _movie(2, "Drama", 2015),
            _movie(3, "Drama", 2005),
            _movie(4, "Drama", 2006),
            _movie(5, "Drama", 2007),
        ]
        pool = selected + [_movie(6, "Comedy", 2004), _movie(7, "Horror", 2003), _movie(8, "Western", 2002)]

        result = enforce_genre_diversity(selected, pool)

        self.assertEqual(count_unique_genres(result), 4)
        self.assertEqual([m["id"] for m in result[:2]], [1, 2])

    def test_director_limit_with_top_up(self) -> None:
        pool = [
            _movie(1, "Drama", 1990, "Same"),
            _movie(2, "Comedy", 2015, "Same"),
            _movie(3, "Horror", 2012, "Same"),
            _movie(4, "Western", 1960, "Other"),
        ]
        # Only two distinct directors exist; the rest of the day is topped up.
        result = select_daily_movies(pool, "seed")
        self.assertEqual(len(result), 4)
        self.assertEqual({m["id"] for m in result}, {1, 2, 3, 4})

    def test_normalize_movie_ids(self) -> None:
        self.assertEqual(
            normalize_movie_ids([1, "2", 2.0, -1, 0, 3.5, True, None, "x", 1]),
            [1, 2],
        )


class TestTmdbPoolHelpers(unittest.TestCase):
    def test_slot_pages_stay_in_window(self) -> None:
        for slot in range(5):
            pages = slot_pages("2024-03-01", slot)
            self.assertEqual(len(pages), 2)
            self.assertEqual(len(set(pages)), 2)
            self.assertTrue(all(1 <= page <= TMDB_DISCOVER_PAGE_WINDOW for page in pages))
            self.assertEqual(pages, slot_pages("2024-03-01", slot))

    def test_modern_slot_floor_handles_leap_day(self) -> None:
        params = slot_params_for(date(2024, 2, 29))
        self.assertEqual(params[3]["primary_release_date.gte"], "2022-02-28")
        self.assertEqual(len(params), 5)

    def test_map_discover_result(self) -> None:
        genre_map = {18: "Drama", 80: "Crime", 53: "Thriller"}
        mapped = map_discover_result(
            {
                "id": 238,
                "title": "The Godfather",
                "release_date": "1972-03-14",
                "genre_ids": [18, 80, 53],
                "poster_path": "/3bhkrj58Vtu7enYsRolD1fZdja1.jpg",
                "vote_average": 8.7,
                "original_language": "en",
            },
            genre_map,
        )
        self.assertEqual(mapped["genre"], "Drama/Crime")
        self.assertEqual(mapped["year"], 1972)
        self.assertEqual(mapped["director"], "Unknown")
        self.assertEqual(mapped["voteAverage"], 8.7)

    def test_map_discover_result_drops_incomplete_rows(self) -> None:
        self.assertIsNone(map_discover_result({"id": 1, "title": "No Poster"}, {}))
        self.assertIsNone(map_discover_result({"id": True, "title": "x", "poster_path": "/a.jpg"}, {}))
        self.assertEqual(
            map_discover_result({"id": 2, "title": "x", "poster_path": "/a.jpg"}, {})["genre"],
            "Drama",
        )

    def test_parse_year_defaults(self) -> None:
        self.assertEqual(parse_year("1957-04-10"), 1957)
        self.assertEqual(parse_year(""), 2005)
        self.assertEqual(parse_year("0001-01-01"), 2005)
