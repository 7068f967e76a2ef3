"""
Daily selection: picks the five showcase movies for a day.

Selection is a pure function of the date key and the candidate pool: the pool
is shuffled with a PRNG seeded from the date, so every process (and every
re-run of the refresh job) picks the same movies for the same day.

Constraints, applied in order:
  1. at most one movie per director,
  2. at least one classic (before 2000) and one modern (2010+) pick,
  3. at least four distinct primary genres, without dropping the last
     classic or modern pick.
"""
import logging
from collections import Counter
from collections.abc import Callable, Iterable
from datetime import date
from typing import Any

from cinema.services.tmdb_sync import TMDBService, TMDBUpstreamError, map_discover_result

logger = logging.getLogger(__name__)

Movie = dict[str, Any]

DAILY_MOVIE_COUNT = 5
DAILY_MIN_UNIQUE_GENRES = 4
DAILY_MAX_MOVIES_PER_DIRECTOR = 1
CLASSIC_YEAR_THRESHOLD = 2000
MODERN_YEAR_THRESHOLD = 2010
MAX_GENRE_SWAPS = 10

TMDB_DISCOVER_PAGE_WINDOW = 20
TMDB_SLOT_PAGE_COUNT = 2
TMDB_MIN_POOL_SIZE = 30

SLOT_LABELS = ["The Legend", "The Hidden Gem", "DNA Flip", "The Modern", "The Mystery"]
SLOT_GRADIENTS = [
    "from-red-900 to-red-800",
    "from-orange-400 to-orange-600",
    "from-blue-800 to-blue-900",
    "from-pink-300 to-purple-400",
    "from-green-700 to-green-900",
]

SEED_MOVIES: list[Movie] = [
    {
        "id": 157336,
        "title": "Interstellar",
        "director": "Christopher Nolan",
        "year": 2014,
        "genre": "Sci-Fi/Adventure",
        "tagline": "Mankind was born on Earth. It was never meant to die here.",
        "color": "from-slate-900 to-indigo-900",
        "posterPath": "/gEU2QniL6C8zYEfe4NCJw46LCDp.jpg",
        "voteAverage": 8.4,
        "overview": (
            "The adventures of a group of explorers who make use of a newly discovered "
            "wormhole to surpass the limitations on human space travel."
        ),
    },
    {
        "id": 155,
        "title": "The Dark Knight",
        "director": "Christopher Nolan",
        "year": 2008,
        "genre": "Action/Crime",
        "tagline": "Why So Serious?",
        "color": "from-gray-900 to-slate-800",
        "posterPath": "/qJ2tW6WMUDux911r6m775X8H3rC.jpg",
        "voteAverage": 8.5,
        "overview": (
            "Batman raises the stakes in his war on crime with the help of Lt. Jim Gordon "
            "and District Attorney Harvey Dent."
        ),
    },
    {
        "id": 129,
        "title": "Spirited Away",
        "director": "Hayao Miyazaki",
        "year": 2001,
        "genre": "Animation/Fantasy",
        "tagline": "The tunnel led Chihiro to a mysterious town...",
        "color": "from-blue-800 to-teal-700",
        "posterPath": "/3G1Q5Jd9dqmHGS3U8Y2jPuygQ8K.jpg",
        "voteAverage": 8.5,
        "overview": (
            "A young girl, Chihiro, becomes trapped in a strange new world of spirits "
            "and must free her family."
        ),
    },
    {
        "id": 496243,
        "title": "Parasite",
        "director": "Bong Joon-ho",
        "year": 2019,
        "genre": "Comedy/Thriller",
        "tagline": "Act like you own the place.",
        "color": "from-green-900 to-gray-900",
        "posterPath": "/7IiTTgloJzvGIBNfSdNqOfqgFW9.jpg",
        "voteAverage": 8.5,
        "overview": (
            "All unemployed, Ki-taek's family takes peculiar interest in the wealthy Parks "
            "until they are entangled in an unexpected incident."
        ),
    },
    {
        "id": 389,
        "title": "12 Angry Men",
        "director": "Sidney Lumet",
        "year": 1957,
        "genre": "Drama",
        "tagline": "Life is in their hands. Death is on their minds.",
        "color": "from-gray-700 to-gray-900",
        "posterPath": "/2JP0P0XM4Lh3M26fU9h8rQ7B1Yx.jpg",
        "voteAverage": 8.5,
        "overview": (
            "The jury enters deliberations to decide whether a young defendant is guilty "
            "of murdering his father."
        ),
    },
]

# Mirrored on every refresh so the frontend always has these posters locally.
EXTRA_POSTER_MOVIES: list[Movie] = [
    {
        "id": 843,
        "title": "In the Mood for Love",
        "director": "Wong Kar-wai",
        "year": 2000,
        "genre": "Romance/Drama",
        "tagline": "Feelings keep lingering...",
        "color": "from-red-900 to-red-800",
        "posterPath": "/inVq3FRqcYIRl2la8iZikYYxFNR.jpg",
        "voteAverage": 8.1,
    },
]


# ── Deterministic randomness ─────────────────────────────────────────────────

def hash_string(value: str) -> int:
    """32-bit FNV-1a over UTF-16 code units."""
    h = 2166136261
    encoded = value.encode("utf-16-le")
    for i in range(0, len(encoded), 2):
        h ^= encoded[i] | (encoded[i + 1] << 8)
        h = (h * 16777619) & 0xFFFFFFFF
    return h


def seeded_random(seed: int) -> Callable[[], float]:
    """LCG (Numerical Recipes constants) returning floats in [0, 1)."""
    state = seed & 0xFFFFFFFF

    def _next() -> float:
        nonlocal state
        state = (state * 1664525 + 1013904223) & 0xFFFFFFFF
        return state / 4294967296

    return _next


def seeded_shuffle(items: list[Movie], seed_text: str) -> list[Movie]:
    """Fisher-Yates shuffle of a copy of *items*, seeded from *seed_text*."""
    pool = list(items)
    rand = seeded_random(hash_string(seed_text))
    for i in range(len(pool) - 1, 0, -1):
        j = int(rand() * (i + 1))
        pool[i], pool[j] = pool[j], pool[i]
    return pool


# ── Helpers ──────────────────────────────────────────────────────────────────

def normalize_movie_ids(values: Iterable[Any]) -> list[int]:
    """Positive integer ids, deduplicated in first-seen order."""
    seen: list[int] = []
    for value in values:
        if isinstance(value, bool):
            continue
        try:
            number = float(value)
        except (TypeError, ValueError):
            continue
        if not number.is_integer() or number <= 0:
            continue
        movie_id = int(number)
        if movie_id not in seen:
            seen.append(movie_id)
    return seen


def primary_genre(movie: Movie) -> str:
    return str(movie.get("genre") or "").split("/")[0].strip().lower()


def _year(movie: Movie) -> int:
    year = movie.get("year")
    return year if isinstance(year, int) else 0


def _is_classic(movie: Movie) -> bool:
    return _year(movie) < CLASSIC_YEAR_THRESHOLD


def _is_modern(movie: Movie) -> bool:
    return _year(movie) >= MODERN_YEAR_THRESHOLD


def _contains(selected: list[Movie], movie: Movie) -> bool:
    return any(item.get("id") == movie.get("id") for item in selected)


def count_unique_genres(movies: list[Movie]) -> int:
    return len({primary_genre(movie) for movie in movies})


def pick_with_director_limit(pool: list[Movie]) -> list[Movie]:
    """First DAILY_MOVIE_COUNT movies honouring the director cap, topped up if short."""
    selected: list[Movie] = []
    director_counts: Counter[str] = Counter()

    for movie in pool:
        director = str(movie.get("director") or "").strip().lower()
        if director and director_counts[director] >= DAILY_MAX_MOVIES_PER_DIRECTOR:
            continue
        selected.append(movie)
        if director:
            director_counts[director] += 1
        if len(selected) >= DAILY_MOVIE_COUNT:
            break

    if len(selected) < DAILY_MOVIE_COUNT:
        for movie in pool:
            if _contains(selected, movie):
                continue
            selected.append(movie)
            if len(selected) >= DAILY_MOVIE_COUNT:
                break

    return selected[:DAILY_MOVIE_COUNT]


def replace_movie(
    selected: list[Movie],
    pool: list[Movie],
    wanted: Callable[[Movie], bool],
    can_replace: Callable[[Movie, list[Movie]], bool],
) -> list[Movie]:
    """
    Make sure at least one selected movie satisfies *wanted*.

    The first pool candidate is swapped in for the last replaceable pick.
    """
    if any(wanted(movie) for movie in selected):
        return selected
    candidate = next((m for m in pool if wanted(m) and not _contains(selected, m)), None)
    if candidate is None:
        return selected

    for index in range(len(selected) - 1, -1, -1):
        if can_replace(selected[index], selected):
            updated = list(selected)
            updated[index] = candidate
            return updated
    return selected


def enforce_genre_diversity(selected: list[Movie], pool: list[Movie]) -> list[Movie]:
    """Swap duplicate-genre picks for new genres until the minimum is met."""
    current = list(selected)
    swaps = 0

    while count_unique_genres(current) < DAILY_MIN_UNIQUE_GENRES and swaps < MAX_GENRE_SWAPS:
        current_genres = {primary_genre(movie) for movie in current}
        candidate = next(
            (m for m in pool if not _contains(current, m) and primary_genre(m) not in current_genres),
            None,
        )
        if candidate is None:
            break

        genre_counts = Counter(primary_genre(movie) for movie in current)
        classics = sum(1 for movie in current if _is_classic(movie))
        moderns = sum(1 for movie in current if _is_modern(movie))

        replace_index = -1
        for index in range(len(current) - 1, -1, -1):
            movie = current[index]
            if genre_counts[primary_genre(movie)] <= 1:
                continue
            if _is_classic(movie) and classics <= 1:
                continue
            if _is_modern(movie) and moderns <= 1:
                continue
            replace_index = index
            break

        if replace_index < 0:
            break
        current[replace_index] = candidate
        swaps += 1

    return current


def apply_slot_styles(movies: list[Movie]) -> list[Movie]:
    """Stamp slot label and gradient by display position."""
    styled: list[Movie] = []
    for index, movie in enumerate(movies):
        item = dict(movie)
        if index < len(SLOT_LABELS):
            item["slotLabel"] = SLOT_LABELS[index]
            item["color"] = SLOT_GRADIENTS[index]
        styled.append(item)
    return styled


def select_daily_movies(pool: list[Movie], seed_text: str) -> list[Movie]:
    """Shuffle *pool* deterministically and apply every selection constraint."""
    shuffled = seeded_shuffle(pool, seed_text)
    selected = pick_with_director_limit(shuffled)
    selected = replace_movie(
        selected,
        shuffled,
        _is_classic,
        lambda movie, _snapshot: not _is_classic(movie),
    )
    selected = replace_movie(
        selected,
        shuffled,
        _is_modern,
        lambda movie, snapshot: (
            not _is_classic(movie) or sum(1 for item in snapshot if _is_classic(item)) > 1
        ),
    )
    selected = enforce_genre_diversity(selected, shuffled)
    return apply_slot_styles(selected[:DAILY_MOVIE_COUNT])


def _exclude(pool: list[Movie], excluded_ids: Iterable[Any]) -> list[Movie]:
    """Drop excluded ids unless that leaves too few movies to fill a day."""
    excluded = set(normalize_movie_ids(excluded_ids))
    filtered = [movie for movie in pool if movie.get("id") not in excluded]
    return filtered if len(filtered) >= DAILY_MOVIE_COUNT else pool


# ── Seed selection ───────────────────────────────────────────────────────────

def build_seed_movies(date_key: str, excluded_ids: Iterable[Any] = ()) -> list[Movie]:
    """Offline selection from the built-in seed list; never fails."""
    base_pool = [dict(movie) for movie in SEED_MOVIES]
    for extra in EXTRA_POSTER_MOVIES:
        if not _contains(base_pool, extra):
            base_pool.append(dict(extra))
    return select_daily_movies(_exclude(base_pool, excluded_ids), f"daily:{date_key}")


# ── TMDB pool selection ──────────────────────────────────────────────────────

def slot_params_for(day: date) -> list[dict[str, str]]:
    """
    Discover filters for the five slots.

    The "modern" slot looks back two years from *day*.
    """
    try:
        modern_floor = day.replace(year=day.year - 2)
    except ValueError:  # Feb 29
        modern_floor = day.replace(year=day.year - 2, day=28)
    return [
        {"vote_average.gte": "8.4", "vote_count.gte": "3000", "sort_by": "vote_average.desc"},
        {
            "vote_average.gte": "7.5",
            "vote_count.gte": "50",
            "vote_count.lte": "1000",
            "sort_by": "popularity.desc",
        },
        {"with_genres": "99,36,10752", "sort_by": "popularity.desc"},
        {
            "primary_release_date.gte": modern_floor.isoformat(),
            "vote_average.gte": "7.0",
            "sort_by": "popularity.desc",
        },
        {
            "vote_average.gte": "7.8",
            "with_original_language": "ja|ko|fr",
            "sort_by": "popularity.desc",
        },
    ]


def slot_pages(date_key: str, slot_index: int) -> list[int]:
    """Date-seeded discover pages (1..TMDB_DISCOVER_PAGE_WINDOW) for one slot."""
    base_page = hash_string(f"cron-slot:{date_key}:{slot_index}") % TMDB_DISCOVER_PAGE_WINDOW + 1
    return [
        (base_page + offset * 7 - 1) % TMDB_DISCOVER_PAGE_WINDOW + 1
        for offset in range(TMDB_SLOT_PAGE_COUNT)
    ]


async def build_tmdb_pool(service: TMDBService, date_key: str, today: date) -> list[Movie]:
    """Discover slots, topped up from popular/top-rated when the pool is thin."""
    genre_map = await service.fetch_genre_map()
    pool: dict[int, Movie] = {}

    def _absorb(results: list[dict]) -> None:
        for raw in results:
            mapped = map_discover_result(raw, genre_map)
            if mapped is not None and mapped["id"] not in pool:
                pool[mapped["id"]] = mapped

    for slot_index, params in enumerate(slot_params_for(today)):
        for page in slot_pages(date_key, slot_index):
            _absorb(await service.discover_movies(params, page))

    if len(pool) < TMDB_MIN_POOL_SIZE:
        fallback_page = hash_string(f"cron-fallback:{date_key}") % TMDB_DISCOVER_PAGE_WINDOW + 1
        _absorb(await service.list_movies("popular", fallback_page))
        _absorb(
            await service.list_movies(
                "top_rated",
                (fallback_page + 5 - 1) % TMDB_DISCOVER_PAGE_WINDOW + 1,
            )
        )

    return list(pool.values())


async def build_tmdb_movies(
    service: TMDBService,
    date_key: str,
    today: date,
    excluded_ids: Iterable[Any] = (),
) -> list[Movie]:
    """
    Selection from a live TMDB pool.

    Returns an empty list when TMDB fails or cannot fill a full day; the
    caller then falls back to build_seed_movies().
    """
    try:
        full_pool = await build_tmdb_pool(service, date_key, today)
    except (TMDBUpstreamError, ValueError) as exc:
        logger.warning("TMDB pool failed for %s, falling back to seeds: %s", date_key, exc)
        return []

    pool = _exclude(full_pool, excluded_ids)
    if len(pool) < DAILY_MOVIE_COUNT:
        logger.warning("TMDB pool for %s has only %d movies", date_key, len(pool))
        return []

    selected = select_daily_movies(pool, f"daily-cron:{date_key}")
    return selected if len(selected) == DAILY_MOVIE_COUNT else []
