from clausewatch.connectors.base import DEFAULT_FETCH_TIMEOUT_SECONDS, PageFetchClient
from clausewatch.connectors.utils import SanitizedUrl, is_private_hostname, sanitize_url


def default_page_client() -> PageFetchClient:
    from clausewatch.connectors.firecrawl import FirecrawlClient

    return FirecrawlClient()


__all__ = [
    "DEFAULT_FETCH_TIMEOUT_SECONDS",
    "PageFetchClient",
    "SanitizedUrl",
    "default_page_client",
    "is_private_hostname",
    "sanitize_url",
]
