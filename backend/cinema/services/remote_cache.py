"""
Remote cache store: Upstash-style Redis REST client.
──────────────────────────────────────────────────────
Only the two commands the daily cache needs:

  GET  {base}/get/{key}            → {"result": "<value>" | null}
  POST {base}/set/{key}?EX=<ttl>   (body = value) → {"result": "OK"}

Every transport, status or decoding failure is raised as RemoteCacheError so
the caller can decide, explicitly, to treat it as a miss.
"""
from typing import Any
from urllib.parse import quote

import httpx

from cinema.core.config import settings


class RemoteCacheConfigError(Exception):
    """Raised when the REST URL or token is not configured."""


class RemoteCacheError(Exception):
    """Raised for any failed remote cache request."""


class UpstashRestStore:
    """
    Thin async wrapper around the Redis REST protocol.
    Uses httpx so calls never block the event loop.
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        timeout: float = 3.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        base_url = base_url.strip().rstrip("/")
        token = token.strip()
        if not base_url or not token:
            raise RemoteCacheConfigError(
                "KV_REST_API_URL / KV_REST_API_TOKEN are not set. "
                "The remote cache tier stays disabled."
            )
        self.base_url = base_url
        self.timeout = timeout
        self._headers = {"Authorization": f"Bearer {token}"}
        self._client = client

    @classmethod
    def from_settings(cls) -> "UpstashRestStore":
        return cls(
            settings.KV_REST_API_URL,
            settings.KV_REST_API_TOKEN,
            timeout=settings.REMOTE_CACHE_TIMEOUT_SECONDS,
        )

    async def get(self, key: str) -> str | None:
        """Return the stored string for *key*, or None when absent."""
        payload = await self._request("GET", f"/get/{quote(key, safe='')}")
        result = payload.get("result")
        if result is None:
            return None
        if not isinstance(result, str):
            raise RemoteCacheError(f"Unexpected GET result type {type(result).__name__}")
        return result or None

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store *value* under *key* with an expiry of *ttl_seconds*."""
        payload = await self._request(
            "POST",
            f"/set/{quote(key, safe='')}",
            params={"EX": str(int(ttl_seconds))},
            content=value.encode("utf-8"),
        )
        if payload.get("result") != "OK":
            raise RemoteCacheError(f"SET rejected: {payload.get('error') or payload.get('result')}")

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            if self._client is not None:
                response = await self._client.request(
                    method, url, headers=self._headers, timeout=self.timeout, **kwargs
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.request(method, url, headers=self._headers, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise RemoteCacheError(
                f"Remote cache {method} failed with status {exc.response.status_code}"
            ) from exc
        except httpx.RequestError as exc:
            raise RemoteCacheError(f"Remote cache {method} request failed") from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise RemoteCacheError("Remote cache returned a non-JSON body") from exc
        if not isinstance(payload, dict):
            raise RemoteCacheError("Remote cache returned an unexpected body")
        return payload
