"""
Daily showcase read path: resolve day → cache → origin → cache fill.

The eligibility filter runs only on cold reads from the origin table. Cached
records were filtered before they were written, so hits are served as-is and
the cache never holds an unfiltered list.
"""
import logging
import math
from dataclasses import dataclass
from datetime import date
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from cinema.core.config import settings
from cinema.db.models import DailyShowcase
from cinema.schemas.daily import CacheSource
from cinema.services.daily_cache import DailyShowcaseCache
from cinema.services.date_keys import DateKeyResolver, is_valid_date_key

logger = logging.getLogger(__name__)

MIN_VOTE_AVERAGE = 6.5
EXCLUDED_GENRE_MARKERS = ("documentary", "belgesel")


class ShowcaseNotFoundError(Exception):
    """Raised when the origin has no eligible movies for a day."""

    def __init__(self, date_key: str) -> None:
        super().__init__(f"No daily showcase entry for {date_key}")
        self.date_key = date_key


class OriginReadError(Exception):
    """Raised when the origin table cannot be queried."""


@dataclass(frozen=True)
class DailyShowcaseResult:
    date: str
    movies: list[Any]
    source: CacheSource


def normalize_movie(raw: Any) -> dict[str, Any]:
    """Copy a stored movie, filling `title` and `voteAverage` from legacy keys."""
    movie = dict(raw) if isinstance(raw, dict) else {}
    movie["title"] = movie.get("title") or movie.get("movieTitle") or movie.get("movie_title")
    if movie.get("voteAverage") is None:
        movie["voteAverage"] = movie.get("vote_average")
    return movie


def _as_rating(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        rating = float(value)
    except (TypeError, ValueError):
        return None
    return rating if math.isfinite(rating) else None


def is_movie_eligible(movie: dict[str, Any]) -> bool:
    """Finite rating at or above the floor, and not a documentary."""
    rating = _as_rating(movie.get("voteAverage"))
    if rating is None or rating < MIN_VOTE_AVERAGE:
        return False
    genre = str(movie.get("genre") or "").lower()
    return not any(marker in genre for marker in EXCLUDED_GENRE_MARKERS)


def filter_eligible_movies(raw_movies: list[Any]) -> list[dict[str, Any]]:
    """Normalize then filter, keeping display order."""
    normalized = [normalize_movie(raw) for raw in raw_movies]
    return [movie for movie in normalized if is_movie_eligible(movie)]


def resolve_request_date(resolver: DateKeyResolver, override: str | None) -> str:
    """Use a well-formed override verbatim, otherwise today's key."""
    if override and is_valid_date_key(override):
        return override
    return resolver.today()


def read_origin_movies(db: Session, date_key: str) -> list[Any] | None:
    """
    Fetch the stored movie list for *date_key*.

    None means "no row" (including impossible calendar days such as
    2024-02-31), which is an expected outcome rather than an error.
    """
    try:
        day = date.fromisoformat(date_key)
    except ValueError:
        return None

    try:
        row = db.query(DailyShowcase).filter(DailyShowcase.date == day).first()
    except SQLAlchemyError as exc:
        raise OriginReadError(f"Daily showcase lookup failed for {date_key}") from exc

    if row is None or not isinstance(row.movies, list):
        return None
    return row.movies


async def load_daily_showcase(
    db: Session,
    cache: DailyShowcaseCache,
    date_key: str,
) -> DailyShowcaseResult:
    """
    Serve the showcase for *date_key*.

    Raises:
        ShowcaseNotFoundError: the origin has no row or nothing eligible.
        OriginReadError: cache missed and the origin query failed.
    """
    hit = await cache.get(date_key)
    if hit is not None and hit.movies:
        return DailyShowcaseResult(date=date_key, movies=hit.movies, source=hit.source)

    raw_movies = read_origin_movies(db, date_key)
    movies = filter_eligible_movies(raw_movies or [])
    if not movies:
        raise ShowcaseNotFoundError(date_key)

    if not await cache.set(date_key, movies, settings.DAILY_CACHE_TTL_SECONDS):
        logger.warning("Daily showcase for %s was not cached", date_key)
    return DailyShowcaseResult(date=date_key, movies=movies, source=CacheSource.ORIGIN)
