from __future__ import annotations

import logging
from typing import Any

import requests

from clausewatch.config import get_settings
from clausewatch.connectors.base import DEFAULT_FETCH_TIMEOUT_SECONDS, PageFetchClient
from clausewatch.errors import ConfigurationError, FetchError

logger = logging.getLogger(__name__)

MAP_ENDPOINT = "/v1/map"
SCRAPE_ENDPOINT = "/v1/scrape"


class FirecrawlClient(PageFetchClient):
    name = "firecrawl"

    def __init__(
        self,
        api_key: str | None = None,
        *,
        base_url: str | None = None,
        request_timeout_seconds: int | None = None,
        session: requests.Session | None = None,
    ) -> None:
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.firecrawl_api_key
        if not self.api_key:
            raise ConfigurationError("FIRECRAWL_API_KEY is not set. Add it to .env or the environment.")
        self.base_url = (base_url or settings.firecrawl_base_url).rstrip("/")
        self.request_timeout_seconds = request_timeout_seconds or settings.request_timeout_seconds
        self.http = session or requests.Session()
        self.headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}

    def _post(self, endpoint: str, payload: dict[str, Any], *, timeout: float, url: str) -> dict[str, Any]:
        try:
            res = self.http.post(f"{self.base_url}{endpoint}", json=payload, headers=self.headers, timeout=timeout)
        except requests.RequestException as exc:
            raise FetchError(f"{exc.__class__.__name__}: {exc}", url=url) from exc
        if res.status_code >= 400:
            raise FetchError(f"Firecrawl {endpoint} failed: status={res.status_code} body={res.text[:300]}", url=url)
        try:
            body = res.json()
        except ValueError as exc:
            raise FetchError(f"Firecrawl {endpoint} returned non-JSON body", url=url) from exc
        if not isinstance(body, dict) or body.get("success") is False:
            error = body.get("error", "unknown error") if isinstance(body, dict) else "unexpected payload"
            raise FetchError(f"Firecrawl {endpoint} unsuccessful: {error}", url=url)
        return body

    def discover(self, root_url: str, hint: str, limit: int) -> list[str]:
        body = self._post(
            MAP_ENDPOINT,
            {"url": root_url, "search": hint, "limit": int(limit)},
            timeout=self.request_timeout_seconds,
            url=root_url,
        )
        links: list[str] = []
        for item in body.get("links") or []:
            if isinstance(item, str):
                value = item
            elif isinstance(item, dict):
                value = str(item.get("url") or "")
            else:
                continue
            value = value.strip()
            if value:
                links.append(value)
        logger.info("Firecrawl map for %s returned %s links", root_url, len(links))
        return links[: int(limit)]

    def fetch_text(self, url: str, timeout: int = DEFAULT_FETCH_TIMEOUT_SECONDS) -> str:
        body = self._post(
            SCRAPE_ENDPOINT,
            {
                "url": url,
                "formats": ["markdown"],
                "onlyMainContent": True,
                "timeout": int(timeout * 1000),
            },
            # HTTP timeout leaves headroom over the remote render timeout.
            timeout=timeout + 15,
            url=url,
        )
        data = body.get("data") if isinstance(body.get("data"), dict) else body
        markdown = str((data or {}).get("markdown") or "").strip()
        if not markdown:
            raise FetchError(f"No markdown content returned for {url}", url=url)
        return markdown
