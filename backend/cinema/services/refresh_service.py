"""
Daily refresh job: builds, poster-mirrors and upserts one day's showcase.

Independent of the read-path cache: it only writes the origin table, and the
cache TTLs are what eventually surface a refreshed row to readers.

Re-running for the same day is safe. A day whose posters are already all in
object storage is reported as "reused" with no uploads and no write, unless
`force` is set.
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from sqlalchemy import func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from cinema.db.models import DailyShowcase
from cinema.schemas.daily import PosterDiagnostic
from cinema.services.daily_selection import (
    DAILY_MOVIE_COUNT,
    EXTRA_POSTER_MOVIES,
    build_seed_movies,
    build_tmdb_movies,
    normalize_movie_ids,
)
from cinema.services.date_keys import previous_date_key
from cinema.services.poster_storage import PosterMirror, is_storage_backed
from cinema.services.tmdb_sync import TMDBService

logger = logging.getLogger(__name__)


class RefreshConfigError(Exception):
    """Raised when storage credentials are missing or have the wrong role."""


class RefreshStoreError(Exception):
    """Raised when the origin table cannot be read or written."""


@dataclass
class RefreshOutcome:
    date: str
    reused: bool = False
    updated: bool = False
    count: int = 0
    storage_backed_count: int = 0
    diagnostics: list[PosterDiagnostic] = field(default_factory=list)

    @property
    def all_storage_backed(self) -> bool:
        return self.count > 0 and self.storage_backed_count == self.count


def read_showcase_movies(db: Session, day: date) -> list[Any] | None:
    """Stored movies for *day*, None when there is no row."""
    try:
        row = db.query(DailyShowcase).filter(DailyShowcase.date == day).first()
    except SQLAlchemyError as exc:
        raise RefreshStoreError(f"Daily showcase read failed for {day}") from exc
    if row is None:
        return None
    return row.movies if isinstance(row.movies, list) else []


def upsert_daily_showcase(db: Session, day: date, movies: list[dict[str, Any]]) -> None:
    """Insert or replace the row for *day* (conflict target: date)."""
    stmt = (
        pg_insert(DailyShowcase)
        .values(date=day, movies=movies)
        .on_conflict_do_update(
            index_elements=[DailyShowcase.date],
            set_={"movies": movies, "updated_at": func.now()},
        )
    )
    try:
        db.execute(stmt)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise RefreshStoreError(f"Daily showcase upsert failed for {day}") from exc


class DailyRefreshJob:
    """One refresh run; build a fresh instance per invocation."""

    def __init__(self, mirror: PosterMirror, tmdb: TMDBService | None = None) -> None:
        self.mirror = mirror
        self.tmdb = tmdb

    async def select_movies(self, date_key: str, day: date, excluded_ids: list[int]) -> list[dict[str, Any]]:
        """TMDB pool when available and complete, otherwise the seed list."""
        if self.tmdb is not None:
            dynamic = await build_tmdb_movies(self.tmdb, date_key, day, excluded_ids)
            if len(dynamic) == DAILY_MOVIE_COUNT:
                return dynamic
        return build_seed_movies(date_key, excluded_ids)

    async def run(self, db: Session, date_key: str, force: bool = False) -> RefreshOutcome:
        day = date.fromisoformat(date_key)
        logger.info("Daily refresh for %s started (force=%s)", date_key, force)

        previous = read_showcase_movies(db, date.fromisoformat(previous_date_key(date_key))) or []
        previous_ids = normalize_movie_ids(
            movie.get("id") for movie in previous if isinstance(movie, dict)
        )

        existing = read_showcase_movies(db, day)
        movies: list[Any] = list(existing) if existing and not force else []
        if not movies:
            movies = await self.select_movies(date_key, day, previous_ids)

        if existing and not force and all(is_storage_backed(movie) for movie in movies):
            logger.info("Daily showcase for %s already mirrored; reusing", date_key)
            return RefreshOutcome(
                date=date_key,
                reused=True,
                count=len(movies),
                storage_backed_count=len(movies),
            )

        await self.mirror.ensure_bucket()
        mirrored = [
            await self.mirror.ensure_posters(movie) if isinstance(movie, dict) else movie
            for movie in movies
        ]
        for extra in EXTRA_POSTER_MOVIES:
            if not any(isinstance(m, dict) and m.get("id") == extra["id"] for m in mirrored):
                await self.mirror.ensure_posters(dict(extra))

        upsert_daily_showcase(db, day, mirrored)
        storage_backed = sum(1 for movie in mirrored if is_storage_backed(movie))
        logger.info(
            "Daily showcase for %s updated: %d movies, %d storage-backed",
            date_key,
            len(mirrored),
            storage_backed,
        )
        return RefreshOutcome(
            date=date_key,
            updated=True,
            count=len(mirrored),
            storage_backed_count=storage_backed,
            diagnostics=list(self.mirror.diagnostics),
        )
