"""
SQLAlchemy ORM models.

The origin store for the daily showcase. Column names, the JSONB type and
the array check constraint match alembic/versions/0001_daily_showcase.py.
"""
from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, Column, Date, DateTime
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase


# ── Base ──────────────────────────────────────────────────────────────────────

class Base(DeclarativeBase):
    pass


# ── Timestamp helper ──────────────────────────────────────────────────────────

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Models ────────────────────────────────────────────────────────────────────

class DailyShowcase(Base):
    """
    One curated list of movies per rollover-timezone calendar day.

    movies (JSONB) is an ordered array; position is display order:
        [
          {
            "id": 157336,                 ← TMDB id
            "title": "Interstellar",
            "director": "Christopher Nolan",
            "year": 2014,
            "genre": "Sci-Fi/Adventure",
            "voteAverage": 8.4,
            "posterPath": "https://…/storage/v1/object/public/posters/157336/w500.jpg",
            "slotLabel": "The Legend",
            ...
          },
          ...
        ]
    """
    __tablename__ = "daily_showcase"

    date = Column(Date, primary_key=True, comment="Rollover-timezone calendar day")
    movies = Column(JSONB, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint(
            "jsonb_typeof(movies) = 'array'",
            name="chk_daily_showcase_movies_array",
        ),
    )

    def __repr__(self) -> str:
        return f"<DailyShowcase date={self.date} movies={len(self.movies or [])}>"
