"""
Daily Showcase: /daily
────────────────────────
Endpoints:
  GET  /daily                 Today's showcase (memory → remote → origin)
  GET  /daily?date=YYYY-MM-DD Explicit day override
  GET  /daily?ping=1          Resolved timezone + date, touches no store
"""
from fastapi import APIRouter, Depends, Query, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from cinema.db.session import get_db
from cinema.schemas.daily import (
    DailyErrorResponse,
    DailyPingResponse,
    DailyShowcaseResponse,
    ErrorDetail,
)
from cinema.services.daily_cache import DailyShowcaseCache, get_daily_cache
from cinema.services.daily_service import (
    OriginReadError,
    ShowcaseNotFoundError,
    load_daily_showcase,
    resolve_request_date,
)
from cinema.services.date_keys import DateKeyResolver, get_date_key_resolver

router = APIRouter()

# Edge caching layered over the application cache.
CACHE_HEADERS = {"Cache-Control": "public, s-maxage=300, stale-while-revalidate=3600"}


def _error(status_code: int, date_key: str, code: str, message: str, headers: dict | None = None) -> JSONResponse:
    """Standard {ok: false, error: {code, message}} envelope."""
    body = DailyErrorResponse(date=date_key, error=ErrorDetail(code=code, message=message))
    return JSONResponse(status_code=status_code, content=body.model_dump(), headers=headers)


# ── Routes ────────────────────────────────────────────────────────────────────

@router.get(
    "",
    response_model=DailyShowcaseResponse | DailyPingResponse,
    responses={
        status.HTTP_404_NOT_FOUND: {"model": DailyErrorResponse},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": DailyErrorResponse},
    },
)
async def get_daily(
    response: Response,
    date: str | None = Query(None, description="Override day, YYYY-MM-DD"),
    ping: str | None = Query(None, description="1 → diagnostics only"),
    db: Session = Depends(get_db),
    cache: DailyShowcaseCache = Depends(get_daily_cache),
    resolver: DateKeyResolver = Depends(get_date_key_resolver),
):
    """
    Serve the daily showcase:
      1. Resolve the day (valid override, else today in the rollover zone).
      2. Memory / remote cache hit → respond.
      3. Miss → origin row, eligibility filter, cache fill → respond.
    """
    date_key = resolve_request_date(resolver, date)

    if ping == "1":
        return DailyPingResponse(date=date_key, timezone=resolver.effective_timezone)

    try:
        result = await load_daily_showcase(db, cache, date_key)
    except ShowcaseNotFoundError:
        return _error(
            status.HTTP_404_NOT_FOUND,
            date_key,
            "DAILY_NOT_FOUND",
            "No daily showcase entry.",
            headers=CACHE_HEADERS,
        )
    except OriginReadError as exc:
        return _error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            date_key,
            "DAILY_ORIGIN_FAILED",
            str(exc),
        )

    response.headers.update(CACHE_HEADERS)
    return DailyShowcaseResponse(date=result.date, source=result.source, movies=result.movies)
