"""
Daily showcase schemas: cached record and /daily, /cron response shapes.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    ValidatorFunctionWrapHandler,
    field_validator,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CacheSource(str, Enum):
    """Where a daily showcase response was served from."""

    MEMORY = "memory"
    REMOTE = "remote"
    ORIGIN = "origin"


class ShowcaseRecord(BaseModel):
    """
    The unit stored in every cache tier.

    `movies` is opaque to the cache beyond being a non-empty list of JSON
    objects; `cachedAt` is informational and never used for expiry.
    """

    date: str = Field(pattern=r"^[0-9]{4}-[0-9]{2}-[0-9]{2}$")
    movies: list[Any] = Field(min_length=1)
    cached_at: datetime = Field(default_factory=_utcnow, alias="cachedAt")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("cached_at", mode="wrap")
    @classmethod
    def default_unparseable_cached_at(cls, value: Any, handler: ValidatorFunctionWrapHandler) -> datetime:
        # Informational only: a mangled stamp never rejects the record.
        try:
            return handler(value)
        except ValidationError:
            return _utcnow()

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class DailyPingResponse(BaseModel):
    """Diagnostic response for GET /daily?ping=1."""

    ok: bool = True
    date: str
    timezone: str
    runtime: str = "python"


class DailyShowcaseResponse(BaseModel):
    """Successful GET /daily payload."""

    ok: bool = True
    date: str
    source: CacheSource
    movies: list[Any]


class ErrorDetail(BaseModel):
    code: str
    message: str


class DailyErrorResponse(BaseModel):
    """Not-found / failure payload for GET /daily."""

    ok: bool = False
    date: str | None = None
    error: ErrorDetail


class PosterDiagnostic(BaseModel):
    """One failed poster mirror attempt."""

    movie_id: int = Field(serialization_alias="movieId")
    title: str
    size: str
    source_url: str | None = Field(default=None, serialization_alias="sourceUrl")
    error: str


class RefreshResponse(BaseModel):
    """Outcome of one refresh job run."""

    ok: bool = True
    date: str
    reused: bool = False
    updated: bool = False
    count: int = 0
    storage_backed_count: int = Field(default=0, serialization_alias="storageBackedCount")
    all_storage_backed: bool = Field(default=False, serialization_alias="allStorageBacked")
    diagnostics_count: int | None = Field(default=None, serialization_alias="diagnosticsCount")
    diagnostics: list[PosterDiagnostic] | None = None


class RefreshEnvResponse(BaseModel):
    """Which credentials are present (GET /cron/daily?env=1)."""

    ok: bool = True
    has_database_url: bool = Field(serialization_alias="hasDatabaseUrl")
    has_supabase_url: bool = Field(serialization_alias="hasSupabaseUrl")
    has_service_key: bool = Field(serialization_alias="hasServiceKey")
    service_role_claim: str | None = Field(default=None, serialization_alias="serviceRoleClaim")
    has_tmdb_api_key: bool = Field(serialization_alias="hasTmdbApiKey")
    has_bucket: bool = Field(serialization_alias="hasBucket")
    has_cron_secret: bool = Field(serialization_alias="hasCronSecret")
    has_remote_cache: bool = Field(serialization_alias="hasRemoteCache")
