"""
Poster mirroring: copies TMDB posters into Supabase Storage.
──────────────────────────────────────────────────────────────
Each movie gets two objects, `<id>/w500.<ext>` and `<id>/w200.<ext>`, in a
public bucket. Uploads use upsert, so re-running the refresh job for a day
overwrites in place instead of duplicating objects.

Storage REST endpoints used:
  GET  /storage/v1/bucket/{bucket}
  PUT  /storage/v1/bucket/{bucket}          (make public)
  POST /storage/v1/bucket                   (create)
  POST /storage/v1/object/{bucket}/{path}   (upload, x-upsert)
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

import httpx

from cinema.core.config import settings
from cinema.schemas.daily import PosterDiagnostic
from cinema.services.tmdb_sync import TMDB_IMAGE_BASE, TMDBConfigError, TMDBService, TMDBUpstreamError

logger = logging.getLogger(__name__)

STORAGE_TIMEOUT_SECONDS = 20.0
PUBLIC_OBJECT_MARKER = "/storage/v1/object/public/"
POSTER_SIZES = ("w500", "w200")
IMAGE_SOURCE_PROXIES = ("https://images.weserv.nl/?url=", "https://wsrv.nl/?url=")
ONE_YEAR_SECONDS = 31536000

_TMDB_IMAGE_RE = re.compile(r"^https?://image\.tmdb\.org/t/p/[^/]+/(.+)$", re.IGNORECASE)
_HTTP_RE = re.compile(r"^https?://", re.IGNORECASE)


class PosterStorageError(Exception):
    """Raised when the storage bucket cannot be prepared."""


@dataclass
class UploadResult:
    url: str | None
    error: str | None
    source_url: str | None = None


def is_storage_backed(movie: Any) -> bool:
    """True when the movie's poster already points at public object storage."""
    poster_path = movie.get("posterPath") if isinstance(movie, dict) else None
    return isinstance(poster_path, str) and PUBLIC_OBJECT_MARKER in poster_path


def to_image_url(poster_path: str, size: str) -> str:
    """TMDB image URL for *poster_path* at *size*; foreign URLs pass through."""
    if _HTTP_RE.match(poster_path):
        match = _TMDB_IMAGE_RE.match(poster_path)
        if match:
            return f"{TMDB_IMAGE_BASE}/{size}/{match.group(1)}"
        return poster_path
    clean = poster_path if poster_path.startswith("/") else f"/{poster_path}"
    return f"{TMDB_IMAGE_BASE}/{size}{clean}"


def build_source_candidates(poster_path: str, size: str) -> list[str]:
    """Direct URL first, then image proxies for TMDB-hosted posters."""
    direct = to_image_url(poster_path, size)
    candidates = [direct]
    if direct.lower().startswith("https://image.tmdb.org/") or direct.lower().startswith("http://image.tmdb.org/"):
        encoded = quote(direct, safe="")
        candidates.extend(f"{proxy}{encoded}" for proxy in IMAGE_SOURCE_PROXIES)
    return list(dict.fromkeys(candidates))


def ext_from_content_type(content_type: str | None) -> str:
    if not content_type:
        return "jpg"
    if "png" in content_type:
        return "png"
    if "webp" in content_type:
        return "webp"
    return "jpg"


@dataclass
class PosterMirror:
    """
    Mirrors posters for one refresh run.

    Latest TMDB poster paths are memoized per instance so a movie that appears
    twice in one run is looked up once.
    """

    supabase_url: str
    service_key: str
    bucket: str
    tmdb: TMDBService | None = None
    client: httpx.AsyncClient | None = None
    diagnostics: list[PosterDiagnostic] = field(default_factory=list)
    _poster_paths: dict[int, str | None] = field(default_factory=dict, init=False, repr=False)

    @classmethod
    def from_settings(cls, client: httpx.AsyncClient) -> "PosterMirror":
        try:
            tmdb: TMDBService | None = TMDBService(client=client)
        except TMDBConfigError:
            tmdb = None
        return cls(
            supabase_url=settings.SUPABASE_URL.rstrip("/"),
            service_key=settings.SUPABASE_SERVICE_ROLE_KEY,
            bucket=settings.SUPABASE_STORAGE_BUCKET,
            tmdb=tmdb,
            client=client,
        )

    @property
    def _auth_headers(self) -> dict[str, str]:
        return {"apikey": self.service_key, "Authorization": f"Bearer {self.service_key}"}

    def public_url(self, path: str) -> str:
        return f"{self.supabase_url}{PUBLIC_OBJECT_MARKER}{self.bucket}/{path}"

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        if self.client is not None:
            return await self.client.request(method, url, timeout=STORAGE_TIMEOUT_SECONDS, **kwargs)
        async with httpx.AsyncClient(timeout=STORAGE_TIMEOUT_SECONDS) as client:
            return await client.request(method, url, **kwargs)

    async def ensure_bucket(self) -> None:
        """Create the bucket, or make an existing one public."""
        base = f"{self.supabase_url}/storage/v1/bucket"
        try:
            response = await self._request("GET", f"{base}/{self.bucket}", headers=self._auth_headers)
            if response.status_code == 200:
                try:
                    is_public = response.json().get("public") is True
                except ValueError:
                    is_public = False
                if not is_public:
                    update = await self._request(
                        "PUT",
                        f"{base}/{self.bucket}",
                        headers=self._auth_headers,
                        json={"id": self.bucket, "name": self.bucket, "public": True},
                    )
                    if update.status_code >= 400:
                        raise PosterStorageError(f"Bucket update failed: {update.text}")
                return

            create = await self._request(
                "POST",
                base,
                headers=self._auth_headers,
                json={"id": self.bucket, "name": self.bucket, "public": True},
            )
        except httpx.RequestError as exc:
            raise PosterStorageError("Storage bucket request failed") from exc

        if create.status_code >= 400 and "already exists" not in create.text.lower():
            raise PosterStorageError(f"Bucket create failed: {create.text}")

    async def latest_poster_path(self, movie: dict[str, Any]) -> str | None:
        """Current TMDB poster path by id, then by title search."""
        movie_id = movie.get("id")
        if movie_id in self._poster_paths:
            return self._poster_paths[movie_id]
        if self.tmdb is None:
            self._poster_paths[movie_id] = None
            return None

        found: str | None = None
        try:
            found = await self.tmdb.get_poster_path(movie_id)
        except (TMDBUpstreamError, ValueError) as exc:
            logger.warning("TMDB details lookup failed for movie %s: %s", movie_id, exc)

        if found is None and movie.get("title"):
            try:
                found = await self.tmdb.search_poster_path(str(movie["title"]))
            except (TMDBUpstreamError, ValueError) as exc:
                logger.warning("TMDB search lookup failed for %r: %s", movie["title"], exc)

        self._poster_paths[movie_id] = found
        return found

    async def upload_poster(self, movie_id: int, poster_path: str, size: str) -> UploadResult:
        """Fetch the first reachable source and upload it as `<id>/<size>.<ext>`."""
        sources = build_source_candidates(poster_path, size)
        fetch_error = "fetch_failed"
        last_source: str | None = None
        image: httpx.Response | None = None

        for source_url in sources:
            last_source = source_url
            try:
                response = await self._request("GET", source_url)
            except httpx.RequestError as exc:
                fetch_error = f"fetch_exception: {exc.__class__.__name__}"
                continue
            if response.status_code != 200:
                fetch_error = f"fetch_http_{response.status_code}"
                continue
            image = response
            break

        if image is None:
            return UploadResult(url=None, error=fetch_error, source_url=last_source)

        content_type = image.headers.get("content-type")
        path = f"{movie_id}/{size}.{ext_from_content_type(content_type)}"
        try:
            upload = await self._request(
                "POST",
                f"{self.supabase_url}/storage/v1/object/{self.bucket}/{path}",
                headers={
                    **self._auth_headers,
                    "content-type": content_type or "image/jpeg",
                    "cache-control": f"max-age={ONE_YEAR_SECONDS}",
                    "x-upsert": "true",
                },
                content=image.content,
            )
        except httpx.RequestError as exc:
            return UploadResult(url=None, error=f"upload_{exc.__class__.__name__}", source_url=last_source)

        if upload.status_code >= 400:
            return UploadResult(url=None, error=f"upload_http_{upload.status_code}", source_url=last_source)
        return UploadResult(url=self.public_url(path), error=None, source_url=last_source)

    async def ensure_posters(self, movie: dict[str, Any]) -> dict[str, Any]:
        """
        Mirror both poster sizes for *movie*.

        On failure the TMDB path is kept and a diagnostic is recorded; the
        movie is never dropped.
        """
        if not movie.get("posterPath"):
            return movie
        if movie.get("id") is None:
            logger.warning("Skipping poster mirror for %r: movie has no id", movie.get("title"))
            return movie

        effective_path = await self.latest_poster_path(movie) or str(movie["posterPath"])
        results: dict[str, UploadResult] = {}
        for size in POSTER_SIZES:
            results[size] = await self.upload_poster(movie["id"], effective_path, size)
            if results[size].error:
                logger.warning(
                    "Poster %s for movie %s not mirrored: %s", size, movie["id"], results[size].error
                )
                self.diagnostics.append(
                    PosterDiagnostic(
                        movie_id=movie["id"],
                        title=str(movie.get("title") or ""),
                        size=size,
                        source_url=results[size].source_url,
                        error=results[size].error,
                    )
                )

        full, thumb = results["w500"], results["w200"]
        return {
            **movie,
            "posterPath": full.url or effective_path,
            "posterStoragePath": full.url,
            "posterThumbPath": thumb.url,
            "posterSource": "storage" if full.url else "tmdb",
        }
