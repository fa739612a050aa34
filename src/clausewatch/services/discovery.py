from __future__ import annotations

from dataclasses import dataclass, field
import json
import logging

from clausewatch.connectors import DEFAULT_FETCH_TIMEOUT_SECONDS, PageFetchClient, sanitize_url
from clausewatch.schemas import DocumentCategory
from clausewatch.services.legal_pages import (
    CandidateLink,
    classify_links,
    deduplicate_by_category,
    merge_with_fallbacks,
)
from clausewatch.errors import AllFetchesFailed, NoCandidatesDiscovered, NoCanonicalPagesResolved

logger = logging.getLogger(__name__)

DISCOVERY_HINT = "terms of service privacy policy data processing agreement subprocessor legal"
MAX_DISCOVERY_LINKS = 200


@dataclass(slots=True, frozen=True)
class ScrapedDocument:
    category: DocumentCategory
    source_url: str
    text: str


@dataclass(slots=True, frozen=True)
class FetchFailure:
    url: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"url": self.url, "message": self.message}


@dataclass(slots=True)
class DiscoveryResult:
    vendor_hostname: str
    root_url: str
    documents: list[ScrapedDocument]
    combined_text: str
    fetch_errors: list[FetchFailure] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {
            "vendor": self.vendor_hostname,
            "rootUrl": self.root_url,
            "documents": [
                {"type": doc.category.value, "sourceUrl": doc.source_url, "chars": len(doc.text)}
                for doc in self.documents
            ],
            "errors": [item.to_dict() for item in self.fetch_errors],
        }


def document_block(doc: ScrapedDocument) -> str:
    label = doc.category.value.upper()
    return f"\n--- BEGIN {label} (source: {doc.source_url}) ---\n\n{doc.text}\n\n--- END {label} ---\n"


def combine_documents(documents: list[ScrapedDocument]) -> str:
    """Delimited text consumed verbatim by the extraction prompt; order and markers are a contract."""
    return "\n".join(document_block(doc) for doc in documents)


class DocumentDiscovery:
    def __init__(
        self,
        page_client: PageFetchClient,
        *,
        hint: str = DISCOVERY_HINT,
        limit: int = MAX_DISCOVERY_LINKS,
        fetch_timeout: int = DEFAULT_FETCH_TIMEOUT_SECONDS,
    ) -> None:
        self.page_client = page_client
        self.hint = hint
        self.limit = limit
        self.fetch_timeout = fetch_timeout

    def _discover_links(self, root_url: str, hostname: str) -> list[CandidateLink]:
        try:
            links = self.page_client.discover(root_url, self.hint, self.limit)
        except Exception as exc:
            raise NoCandidatesDiscovered(
                f"Page discovery failed for {root_url}: {exc}",
                hostname=hostname,
            ) from exc
        if not links:
            raise NoCandidatesDiscovered(
                f"Page discovery returned no links for {root_url}. The site may be blocking crawlers.",
                hostname=hostname,
            )
        matched = classify_links(links[: self.limit])
        logger.info("Discovery for %s: links=%s legal_matches=%s", hostname, len(links), len(matched))
        return deduplicate_by_category(matched)

    def _fetch_all(self, pages: list[CandidateLink]) -> tuple[list[ScrapedDocument], list[FetchFailure]]:
        documents: list[ScrapedDocument] = []
        failures: list[FetchFailure] = []
        for page in pages:
            try:
                text = self.page_client.fetch_text(page.url, timeout=self.fetch_timeout)
            except Exception as exc:
                logger.warning("Fetch failed for %s (%s): %s", page.url, page.category.value, exc)
                failures.append(FetchFailure(url=page.url, message=str(exc) or exc.__class__.__name__))
                continue
            documents.append(ScrapedDocument(category=page.category, source_url=page.url, text=text))
        return documents, failures

    def discover(self, input_url: str) -> DiscoveryResult:
        sanitized = sanitize_url(input_url)
        root_url, hostname = sanitized.url, sanitized.hostname

        discovered = self._discover_links(root_url, hostname)
        pages = merge_with_fallbacks(root_url, discovered)
        if not pages:
            raise NoCanonicalPagesResolved(
                f"No legal document pages (terms, privacy, DPA) found on {hostname}. "
                "The site may use non-standard URL patterns or block crawlers.",
                hostname=hostname,
            )

        documents, failures = self._fetch_all(pages)
        if not documents:
            raise AllFetchesFailed(
                f"All page fetches failed for {hostname}. "
                f"Errors: {json.dumps([item.to_dict() for item in failures])}",
                hostname=hostname,
            )

        logger.info(
            "Discovery complete for %s: documents=%s fetch_errors=%s",
            hostname,
            len(documents),
            len(failures),
        )
        return DiscoveryResult(
            vendor_hostname=hostname,
            root_url=root_url,
            documents=documents,
            combined_text=combine_documents(documents),
            fetch_errors=failures,
        )


def discover_vendor_documents(input_url: str, page_client: PageFetchClient) -> DiscoveryResult:
    return DocumentDiscovery(page_client).discover(input_url)
