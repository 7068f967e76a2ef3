"""
Absolute Cinema API: FastAPI application entry point.

Routers are registered here. Each area lives in cinema/api/.
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cinema.core.config import settings
from cinema.core.logging import configure_logging
from cinema.api import cron, daily
from cinema.services.date_keys import get_date_key_resolver

configure_logging(settings.LOG_LEVEL)

app = FastAPI(
    title="Absolute Cinema API",
    description="Daily movie showcase backend.",
    version="0.1.0",
    docs_url="/docs" if settings.ENABLE_DOCS else None,
    redoc_url="/redoc" if settings.ENABLE_DOCS else None,
)

# ── CORS ──────────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET"],
    allow_headers=["*"],
)

# ── Routers ───────────────────────────────────────────────────────────────────
app.include_router(daily.router, prefix="/daily", tags=["daily"])
app.include_router(cron.router,  prefix="/cron",  tags=["cron"])


# ── Health check ──────────────────────────────────────────────────────────────
@app.get("/health", tags=["system"])
def health_check() -> dict:
    """Liveness probe. Returns 200 when the server is up."""
    return {
        "status": "ok",
        "version": "0.1.0",
        "env": settings.APP_ENV,
        "timezone": get_date_key_resolver().effective_timezone,
    }
