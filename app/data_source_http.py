from __future__ import annotations

import logging
import os
import time
from urllib.parse import quote

import httpx

from data_sources import DataSourceError


logger = logging.getLogger("vista.http")


def _base_url() -> str:
    return (os.getenv("VISTA_DATA_SOURCE_URL") or "").strip().rstrip("/")


def _token() -> str:
    return (os.getenv("VISTA_DATA_SOURCE_TOKEN") or "").strip()


def _timeout() -> float:
    return float(os.getenv("VISTA_HTTP_TIMEOUT", "30"))


def http_source_enabled() -> bool:
    return bool(_base_url())


class HttpDataSource:
    """REST data source: ``POST {base}/objects/{name}/find`` and ``GET {base}/objects/{name}/schema``."""

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url if base_url is not None else _base_url()).rstrip("/")
        self.token = token if token is not None else _token()
        self.timeout = timeout if timeout is not None else _timeout()
        self.transport = transport
        if not self.base_url:
            raise DataSourceError("DATA_SOURCE_URL_REQUIRED", "VISTA_DATA_SOURCE_URL is required", "base_url")

    def _headers(self) -> dict:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _url(self, object_name: str, suffix: str) -> str:
        return f"{self.base_url}/objects/{quote(object_name, safe='')}/{suffix}"

    async def _request(self, method: str, url: str, payload: dict | None = None) -> object:
        start = time.perf_counter()
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                res = await client.request(method, url, headers=self._headers(), json=payload)
        except httpx.HTTPError as exc:
            logger.warning("http_request_failed method=%s url=%s error=%s", method, url, exc)
            raise DataSourceError("DATA_SOURCE_UNAVAILABLE", str(exc), url) from exc
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info("http_request method=%s url=%s status=%s ms=%.1f", method, url, res.status_code, elapsed_ms)
        if res.status_code == 404:
            raise DataSourceError("OBJECT_NOT_FOUND", f"{method} {url} returned 404", url)
        if res.status_code >= 400:
            raise DataSourceError("DATA_SOURCE_HTTP_ERROR", f"{res.status_code}:{res.text[:200]}", url)
        try:
            return res.json()
        except ValueError as exc:
            raise DataSourceError("DATA_SOURCE_BAD_RESPONSE", "Response is not JSON", url) from exc

    async def find(self, object_name: str, query: dict | None = None) -> object:
        return await self._request("POST", self._url(object_name, "find"), query or {})

    async def get_object_schema(self, object_name: str) -> dict:
        body = await self._request("GET", self._url(object_name, "schema"))
        if not isinstance(body, dict):
            raise DataSourceError("DATA_SOURCE_BAD_RESPONSE", "Schema must be an object", object_name)
        return body.get("schema") if isinstance(body.get("schema"), dict) else body
