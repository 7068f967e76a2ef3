"""
Daily date keys.

A date key is the calendar day ("YYYY-MM-DD") in the single rollover timezone
configured for the process. Every component that talks about "today's"
showcase derives its key here so that the read path and the refresh job agree
on where the day boundary falls.
"""
import logging
import re
from collections.abc import Callable
from datetime import date, datetime, timedelta, timezone
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from cinema.core.config import settings

logger = logging.getLogger(__name__)

DATE_KEY_RE = re.compile(r"^[0-9]{4}-[0-9]{2}-[0-9]{2}$")
FALLBACK_TIMEZONE = "UTC"


def is_valid_date_key(value: object) -> bool:
    """
    Shape check only: ``2024-02-31`` passes.

    Client-supplied overrides are trusted for shape, never for calendar
    correctness; an impossible day simply has no origin row.
    """
    return isinstance(value, str) and DATE_KEY_RE.fullmatch(value) is not None


def previous_date_key(date_key: str) -> str:
    """Return the calendar day before *date_key*."""
    day = date.fromisoformat(date_key)
    return (day - timedelta(days=1)).isoformat()


def _load_zone(name: str) -> tuple[timezone | ZoneInfo, str]:
    """Load an IANA zone, falling back to UTC when the name is unusable."""
    try:
        return ZoneInfo(name), name
    except (ZoneInfoNotFoundError, ValueError, OSError) as exc:
        logger.warning(
            "Invalid rollover timezone %r (%s); falling back to %s",
            name,
            exc,
            FALLBACK_TIMEZONE,
        )
        return timezone.utc, FALLBACK_TIMEZONE


class DateKeyResolver:
    """Turns wall-clock instants into date keys for one fixed timezone."""

    def __init__(
        self,
        timezone_name: str,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._zone, self.effective_timezone = _load_zone(timezone_name.strip() or FALLBACK_TIMEZONE)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def resolve(self, now: datetime) -> str:
        """
        Format *now* as a date key in the rollover timezone.

        Naive datetimes are read as UTC. If the instant cannot be converted
        (e.g. it sits at the edge of the representable range) the first ten
        characters of its ISO form are used instead.
        """
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        try:
            local = now.astimezone(self._zone)
        except (OverflowError, ValueError):
            return now.isoformat()[:10]
        return f"{local.year:04d}-{local.month:02d}-{local.day:02d}"

    def today(self) -> str:
        return self.resolve(self._clock())


@lru_cache
def get_date_key_resolver() -> DateKeyResolver:
    """Process-wide resolver; the effective timezone never changes at runtime."""
    return DateKeyResolver(settings.DAILY_ROLLOVER_TIMEZONE)
