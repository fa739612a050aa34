from __future__ import annotations

DEFAULT_FETCH_TIMEOUT_SECONDS = 30


class PageFetchClient:
    """Page-fetch service: link discovery on a root domain and rendered text per URL."""

    name: str = "base"

    def discover(self, root_url: str, hint: str, limit: int) -> list[str]:
        raise NotImplementedError

    def fetch_text(self, url: str, timeout: int = DEFAULT_FETCH_TIMEOUT_SECONDS) -> str:
        raise NotImplementedError
