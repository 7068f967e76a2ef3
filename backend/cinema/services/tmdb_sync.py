"""
TMDB Sync Service
─────────────────
Wraps the TMDB v3 REST API for the daily refresh job.

Flow:
  1. Refresh job asks for the genre map and date-seeded discover pages.
  2. Results are mapped into showcase movie dicts (camelCase, as stored).
  3. Poster mirroring asks for the latest poster path of each pick.
"""
import logging
from typing import Any

import httpx

from cinema.core.config import settings

logger = logging.getLogger(__name__)

TMDB_BASE_URL = "https://api.themoviedb.org/3"
TMDB_IMAGE_BASE = "https://image.tmdb.org/t/p"
TMDB_TIMEOUT_SECONDS = 10.0
PLACEHOLDER_API_KEYS = {"YOUR_TMDB_API_KEY"}

DEFAULT_GENRE = "Drama"
DEFAULT_YEAR = 2005


class TMDBConfigError(Exception):
    """Raised when TMDB client is used without an API key."""


class TMDBUpstreamError(Exception):
    """Raised for non-recoverable TMDB request/response errors."""


def parse_year(release_date: Any) -> int:
    """Year from a TMDB release date, DEFAULT_YEAR when missing or implausible."""
    if not isinstance(release_date, str) or len(release_date) < 4:
        return DEFAULT_YEAR
    try:
        year = int(release_date[:4])
    except ValueError:
        return DEFAULT_YEAR
    return year if 1900 <= year <= 2100 else DEFAULT_YEAR


def map_discover_result(raw: dict, genre_map: dict[int, str]) -> dict | None:
    """
    Normalize a TMDB discover/list row into a showcase movie.

    Rows without a positive id, a title or a poster are dropped. Genre is the
    first two TMDB genres joined with "/".
    """
    tmdb_id = raw.get("id")
    if isinstance(tmdb_id, bool) or not isinstance(tmdb_id, int) or tmdb_id <= 0:
        return None

    title = str(raw.get("title") or raw.get("name") or "").strip()
    if not title:
        return None

    poster_path = raw.get("poster_path")
    if not isinstance(poster_path, str) or not poster_path:
        return None

    genres = [genre_map[gid] for gid in raw.get("genre_ids") or [] if gid in genre_map][:2]
    vote_average = raw.get("vote_average")
    overview = raw.get("overview")
    language = raw.get("original_language")

    return {
        "id": tmdb_id,
        "title": title,
        "director": "Unknown",
        "year": parse_year(raw.get("release_date")),
        "genre": "/".join(genres) or DEFAULT_GENRE,
        "tagline": "",
        "posterPath": poster_path,
        "voteAverage": vote_average if isinstance(vote_average, (int, float)) else None,
        "overview": overview if isinstance(overview, str) else None,
        "originalLanguage": language if isinstance(language, str) else None,
    }


class TMDBService:
    """
    Thin async wrapper around TMDB v3 API.
    Uses httpx so requests never block the event loop.
    """

    def __init__(self, api_key: str | None = None, client: httpx.AsyncClient | None = None) -> None:
        self.api_key = (api_key or settings.TMDB_API_KEY).strip()
        if not self.api_key or self.api_key in PLACEHOLDER_API_KEYS:
            raise TMDBConfigError(
                "TMDB_API_KEY is not set. "
                "Add it to your .env file or pass it explicitly."
            )
        self._client = client

    async def _get(self, path: str, params: dict[str, Any]) -> httpx.Response:
        query = {"api_key": self.api_key, "language": "en-US", **params}
        url = f"{TMDB_BASE_URL}{path}"
        try:
            if self._client is not None:
                return await self._client.get(url, params=query, timeout=TMDB_TIMEOUT_SECONDS)
            async with httpx.AsyncClient(timeout=TMDB_TIMEOUT_SECONDS) as client:
                return await client.get(url, params=query)
        except httpx.RequestError as exc:
            raise TMDBUpstreamError(f"TMDB request to {path} failed") from exc

    async def fetch_genre_map(self) -> dict[int, str]:
        """Return {genre_id: name} for movies."""
        response = await self._get("/genre/movie/list", {})
        if response.status_code != 200:
            raise TMDBUpstreamError(f"TMDB genre list failed with status {response.status_code}")

        genre_map: dict[int, str] = {}
        for genre in response.json().get("genres", []):
            if isinstance(genre.get("id"), int) and isinstance(genre.get("name"), str):
                genre_map[genre["id"]] = genre["name"]
        return genre_map

    async def discover_movies(self, params: dict[str, str], page: int) -> list[dict]:
        """
        Raw /discover/movie results for one page.

        A failed page is skipped (empty list) so one bad slot does not sink
        the whole pool.
        """
        query = {
            "include_adult": "false",
            "include_video": "false",
            "page": str(page),
            **params,
        }
        response = await self._get("/discover/movie", query)
        if response.status_code != 200:
            logger.warning("TMDB discover page %s failed with status %s", page, response.status_code)
            return []
        results = response.json().get("results")
        return results if isinstance(results, list) else []

    async def list_movies(self, endpoint: str, page: int) -> list[dict]:
        """Raw results of /movie/popular or /movie/top_rated."""
        response = await self._get(f"/movie/{endpoint}", {"page": str(page)})
        if response.status_code != 200:
            return []
        results = response.json().get("results")
        return results if isinstance(results, list) else []

    async def get_poster_path(self, tmdb_id: int) -> str | None:
        """Current poster path from /movie/{id}, None when missing or not found."""
        response = await self._get(f"/movie/{tmdb_id}", {})
        if response.status_code != 200:
            return None
        poster_path = response.json().get("poster_path")
        return poster_path if isinstance(poster_path, str) and poster_path else None

    async def search_poster_path(self, title: str) -> str | None:
        """Poster path of the first /search/movie hit for *title*."""
        cleaned = title.strip()
        if not cleaned:
            return None
        response = await self._get("/search/movie", {"query": cleaned})
        if response.status_code != 200:
            return None
        results = response.json().get("results") or []
        if not results:
            return None
        poster_path = results[0].get("poster_path")
        return poster_path if isinstance(poster_path, str) and poster_path else None
