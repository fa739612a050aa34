"""
Turn a pile of discovered links into one canonical legal page per document category.

Classification looks at the URL path only. Deduplication keeps a single URL per
category: a non-localized path always beats a localized one (`/de-DE/terms`), then
the shorter URL wins, then the lexicographically smaller one, so the outcome does
not depend on the order in which discovery and fallback lists were merged.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
import re
from urllib.parse import urlparse

from clausewatch.schemas import DocumentCategory

# Generic /legal and /policies index pages never match.
LEGAL_PATH_PATTERNS: tuple[tuple[re.Pattern[str], DocumentCategory], ...] = (
    (
        re.compile(r"/(terms|tos|terms-of-service|terms-of-use|termsofservice|termsofuse)", re.IGNORECASE),
        DocumentCategory.TOS,
    ),
    (re.compile(r"/(privacy|privacy-policy|privacypolicy|data-privacy)", re.IGNORECASE), DocumentCategory.PRIVACY),
    (re.compile(r"/(dpa|data-processing|dataprocessing|data-protection)", re.IGNORECASE), DocumentCategory.DPA),
    (
        re.compile(r"/(subprocessor|sub-processor|subprocessors|sub-processors)", re.IGNORECASE),
        DocumentCategory.SUBPROCESSOR,
    ),
)

CATEGORY_ORDER: tuple[DocumentCategory, ...] = tuple(category for _, category in LEGAL_PATH_PATTERNS)

FALLBACK_PATHS: tuple[tuple[str, DocumentCategory], ...] = (
    ("/policies/terms-of-use", DocumentCategory.TOS),
    ("/terms-of-use", DocumentCategory.TOS),
    ("/terms-of-service", DocumentCategory.TOS),
    ("/terms", DocumentCategory.TOS),
    ("/policies/privacy-policy", DocumentCategory.PRIVACY),
    ("/privacy-policy", DocumentCategory.PRIVACY),
    ("/privacy", DocumentCategory.PRIVACY),
    ("/policies/data-processing-addendum", DocumentCategory.DPA),
    ("/dpa", DocumentCategory.DPA),
    ("/subprocessors", DocumentCategory.SUBPROCESSOR),
    ("/sub-processors", DocumentCategory.SUBPROCESSOR),
)

LOCALE_SEGMENT_RE = re.compile(r"/[a-z]{2}(-[A-Z]{2})?/")


@dataclass(slots=True, frozen=True)
class CandidateLink:
    url: str
    category: DocumentCategory


def _url_path(url: str) -> str:
    try:
        return urlparse(url).path or "/"
    except ValueError:
        return ""


def classify_url(url: str) -> DocumentCategory | None:
    path = _url_path(url)
    if not path:
        return None
    for pattern, category in LEGAL_PATH_PATTERNS:
        if pattern.search(path):
            return category
    return None


def is_localized_url(url: str) -> bool:
    return bool(LOCALE_SEGMENT_RE.search(_url_path(url)))


def _category_rank(category: DocumentCategory) -> int:
    try:
        return CATEGORY_ORDER.index(category)
    except ValueError:
        return len(CATEGORY_ORDER)


def _preference_key(link: CandidateLink) -> tuple[bool, int, str]:
    return (is_localized_url(link.url), len(link.url), link.url)


def deduplicate_by_category(links: Iterable[CandidateLink]) -> list[CandidateLink]:
    best: dict[DocumentCategory, CandidateLink] = {}
    for link in links:
        existing = best.get(link.category)
        if existing is None or _preference_key(link) < _preference_key(existing):
            best[link.category] = link
    return sorted(best.values(), key=lambda link: _category_rank(link.category))


def classify_links(urls: Iterable[str]) -> list[CandidateLink]:
    matched: list[CandidateLink] = []
    for url in urls:
        category = classify_url(url)
        if category is not None:
            matched.append(CandidateLink(url=url, category=category))
    return matched


def fallback_links(root_url: str) -> list[CandidateLink]:
    root = (root_url or "").rstrip("/")
    links: list[CandidateLink] = []
    seen: set[DocumentCategory] = set()
    for path, category in FALLBACK_PATHS:
        if category in seen:
            continue
        seen.add(category)
        links.append(CandidateLink(url=f"{root}{path}", category=category))
    return links


def merge_with_fallbacks(root_url: str, discovered: Iterable[CandidateLink]) -> list[CandidateLink]:
    return deduplicate_by_category([*discovered, *fallback_links(root_url)])
