"""
Refresh Job: /cron
────────────────────
Endpoints:
  GET  /cron/daily            Build/mirror/upsert today's showcase
  GET  /cron/daily?ping=1     Liveness, no auth, touches nothing
  GET  /cron/daily?env=1      Which credentials are configured

Query parameters:
  - secret=...   alternative to `Authorization: Bearer <CRON_SECRET>`
  - force=1|true rebuild and re-mirror even if today's row is complete
  - debug=1      include poster diagnostics in the response
  - date=YYYY-MM-DD override the day (defaults to today in the rollover zone)
"""
import logging
from datetime import date as date_type
from datetime import datetime, timezone

import httpx
from fastapi import APIRouter, Depends, Header, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from cinema.core.config import settings
from cinema.core.security import SERVICE_ROLE, decode_jwt_role, verify_cron_secret
from cinema.db.session import get_db
from cinema.schemas.daily import RefreshEnvResponse, RefreshResponse
from cinema.services.date_keys import DateKeyResolver, get_date_key_resolver, is_valid_date_key
from cinema.services.poster_storage import PosterMirror, PosterStorageError
from cinema.services.refresh_service import (
    DailyRefreshJob,
    RefreshConfigError,
    RefreshStoreError,
)
from cinema.services.tmdb_sync import TMDBConfigError, TMDBService

logger = logging.getLogger(__name__)

router = APIRouter()

REFRESH_HTTP_TIMEOUT_SECONDS = 20.0
MAX_DEBUG_DIAGNOSTICS = 10


def _error(status_code: int, code: str, message: str) -> JSONResponse:
    """Standard error envelope."""
    return JSONResponse(
        status_code=status_code,
        content={"ok": False, "error": {"code": code, "message": message}},
    )


def check_storage_config() -> None:
    """Refuse to run without a Supabase URL and a service-role key."""
    if not settings.SUPABASE_URL:
        raise RefreshConfigError("Missing env: SUPABASE_URL")
    if not settings.SUPABASE_SERVICE_ROLE_KEY:
        raise RefreshConfigError("Missing env: SUPABASE_SERVICE_ROLE_KEY")
    role = decode_jwt_role(settings.SUPABASE_SERVICE_ROLE_KEY)
    if role and role != SERVICE_ROLE:
        raise RefreshConfigError(
            f"SUPABASE_SERVICE_ROLE_KEY role is '{role}', expected '{SERVICE_ROLE}'"
        )


def env_report() -> RefreshEnvResponse:
    return RefreshEnvResponse(
        has_database_url=bool(settings.DATABASE_URL),
        has_supabase_url=bool(settings.SUPABASE_URL),
        has_service_key=bool(settings.SUPABASE_SERVICE_ROLE_KEY),
        service_role_claim=decode_jwt_role(settings.SUPABASE_SERVICE_ROLE_KEY),
        has_tmdb_api_key=bool(settings.TMDB_API_KEY),
        has_bucket=bool(settings.SUPABASE_STORAGE_BUCKET),
        has_cron_secret=bool(settings.CRON_SECRET),
        has_remote_cache=settings.remote_cache_enabled,
    )


# ── Routes ────────────────────────────────────────────────────────────────────

@router.get("/daily", response_model=RefreshResponse)
async def refresh_daily(
    ping: str | None = Query(None),
    env: str | None = Query(None),
    debug: str | None = Query(None),
    force: str | None = Query(None),
    secret: str | None = Query(None),
    date: str | None = Query(None, description="Override day, YYYY-MM-DD"),
    authorization: str | None = Header(None),
    db: Session = Depends(get_db),
    resolver: DateKeyResolver = Depends(get_date_key_resolver),
):
    """
    Run the refresh job for one day:
      1. Authorize with CRON_SECRET (header or query) when configured.
      2. Validate storage credentials.
      3. Select / reuse movies, mirror posters, upsert the origin row.
    """
    if ping == "1":
        return JSONResponse(
            content={"ok": True, "runtime": "python", "time": datetime.now(timezone.utc).isoformat()}
        )
    if env == "1":
        return JSONResponse(content=env_report().model_dump(by_alias=True))

    if not verify_cron_secret(settings.CRON_SECRET, authorization, secret):
        logger.warning("Unauthorized daily refresh attempt")
        return _error(status.HTTP_401_UNAUTHORIZED, "UNAUTHORIZED", "Unauthorized")

    date_key = date if date and is_valid_date_key(date) else resolver.today()
    try:
        date_type.fromisoformat(date_key)
    except ValueError:
        return _error(status.HTTP_400_BAD_REQUEST, "INVALID_DATE", f"{date_key} is not a calendar day")

    try:
        check_storage_config()
    except RefreshConfigError as exc:
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "REFRESH_NOT_CONFIGURED", str(exc))

    async with httpx.AsyncClient(timeout=REFRESH_HTTP_TIMEOUT_SECONDS) as client:
        try:
            tmdb: TMDBService | None = TMDBService(client=client)
        except TMDBConfigError:
            logger.info("TMDB_API_KEY not set; daily refresh uses seed movies")
            tmdb = None
        job = DailyRefreshJob(PosterMirror.from_settings(client), tmdb)
        try:
            outcome = await job.run(db, date_key, force=force in ("1", "true"))
        except PosterStorageError as exc:
            logger.error("Daily refresh for %s failed: %s", date_key, exc)
            return _error(status.HTTP_502_BAD_GATEWAY, "STORAGE_FAILED", str(exc))
        except RefreshStoreError as exc:
            logger.error("Daily refresh for %s failed: %s", date_key, exc)
            return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "ORIGIN_WRITE_FAILED", str(exc))

    body = RefreshResponse(
        date=outcome.date,
        reused=outcome.reused,
        updated=outcome.updated,
        count=outcome.count,
        storage_backed_count=outcome.storage_backed_count,
        all_storage_backed=outcome.all_storage_backed,
    )
    if debug == "1":
        body.diagnostics_count = len(outcome.diagnostics)
        body.diagnostics = outcome.diagnostics[:MAX_DEBUG_DIAGNOSTICS]
    return JSONResponse(content=body.model_dump(mode="json", by_alias=True, exclude_none=True))
