from __future__ import annotations

import sys
from datetime import datetime
from pathlib import Path
from typing import Any

import pytest


ROOT_DIR = Path(__file__).resolve().parents[1]
SRC_DIR = ROOT_DIR / "src"

if SRC_DIR.exists() and str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from clausewatch.connectors import PageFetchClient  # noqa: E402
from clausewatch.errors import DuplicateVendorError, FetchError, PersistenceError  # noqa: E402
from clausewatch.services.extraction import ScorecardExtractor  # noqa: E402
from clausewatch.services.vendor_store import AuditEvent, TrackedVendor, VendorStore  # noqa: E402


class FakePageClient(PageFetchClient):
    """Scripted page-fetch service. Every call is recorded."""

    name = "fake"

    def __init__(
        self,
        links: dict[str, list[str]] | None = None,
        texts: dict[str, str] | None = None,
        *,
        default_text: str | None = None,
        fail_roots: set[str] | None = None,
    ) -> None:
        self.links = links or {}
        self.texts = texts or {}
        self.default_text = default_text
        self.fail_roots = fail_roots or set()
        self.discover_calls: list[tuple[str, str, int]] = []
        self.fetch_calls: list[tuple[str, int]] = []

    def discover(self, root_url: str, hint: str, limit: int) -> list[str]:
        self.discover_calls.append((root_url, hint, limit))
        if root_url in self.fail_roots:
            raise FetchError("map request timed out", url=root_url)
        return list(self.links.get(root_url, []))

    def fetch_text(self, url: str, timeout: int = 30) -> str:
        self.fetch_calls.append((url, timeout))
        if url in self.texts:
            return self.texts[url]
        if self.default_text is not None:
            return f"{self.default_text} ({url})"
        raise FetchError(f"status=404 for {url}", url=url)

    @property
    def call_count(self) -> int:
        return len(self.discover_calls) + len(self.fetch_calls)


class FakeExtractor(ScorecardExtractor):
    """Returns queued payloads in order; an Exception in the queue is raised instead."""

    name = "fake"

    def __init__(self, *payloads: Any) -> None:
        self.payloads = list(payloads)
        self.calls: list[tuple[str, str, str]] = []

    def extract(self, system_instructions: str, vendor_name: str, combined_text: str):
        self.calls.append((system_instructions, vendor_name, combined_text))
        if not self.payloads:
            raise AssertionError("FakeExtractor has no payload left")
        payload = self.payloads.pop(0)
        if isinstance(payload, Exception):
            raise payload
        return payload


class InMemoryVendorStore(VendorStore):
    def __init__(self) -> None:
        self.vendors: dict[str, TrackedVendor] = {}
        self.events: list[AuditEvent] = []
        self.stale_queries: list[tuple[datetime, int]] = []
        self.opened = False
        self._counter = 0

    def open(self) -> "InMemoryVendorStore":
        self.opened = True
        return self

    def close(self) -> None:
        self.opened = False

    def add_vendor(self, url: str, hostname: str, name: str | None = None) -> TrackedVendor:
        if any(vendor.url == url for vendor in self.vendors.values()):
            raise DuplicateVendorError(f"Vendor URL is already tracked: {url}")
        self._counter += 1
        vendor = TrackedVendor(id=f"v{self._counter}", url=url, hostname=hostname, name=name)
        self.vendors[vendor.id] = vendor
        return vendor

    def list_vendors(self) -> list[TrackedVendor]:
        return list(self.vendors.values())

    def get_vendor(self, vendor_id: str) -> TrackedVendor | None:
        return self.vendors.get(vendor_id)

    def find_stale_vendors(self, stale_before: datetime, limit: int) -> list[TrackedVendor]:
        self.stale_queries.append((stale_before, limit))
        stale = [
            vendor
            for vendor in self.vendors.values()
            if vendor.latest_scan_at is None or vendor.latest_scan_at < stale_before
        ]
        stale.sort(key=lambda vendor: (vendor.latest_scan_at is not None, vendor.latest_scan_at or datetime.min))
        return stale[:limit]

    def rotate_scorecard(self, vendor_id, scorecard, scanned_at) -> None:
        vendor = self.vendors.get(vendor_id)
        if vendor is None:
            raise PersistenceError(f"Unknown vendor: {vendor_id}")
        vendor.previous_scorecard = vendor.latest_scorecard
        vendor.previous_scan_at = vendor.latest_scan_at
        vendor.latest_scorecard = scorecard.to_payload()
        vendor.latest_scan_at = scanned_at

    def append_audit_event(self, event: AuditEvent) -> None:
        self.events.append(event)

    def list_audit_events(self, vendor_id: str) -> list[AuditEvent]:
        return [event for event in self.events if event.vendor_id == vendor_id]


def make_finding(title: str, severity: str = "MEDIUM", source: str = "privacy") -> dict[str, Any]:
    return {
        "title": title,
        "severity": severity,
        "detected": True,
        "evidence": f"We may use your content to {title.lower()}.",
        "sourceDocument": source,
        "explanation": "Customer data may leave the agreed processing scope.",
        "frameworkRef": "GDPR Art. 28",
    }


def make_scorecard_payload(
    overall: str = "MEDIUM",
    *,
    vendor: str = "example.com",
    ai_training: tuple[str, list[str]] = ("MEDIUM", ["Model improvement on inputs"]),
    sub_processors: tuple[str, list[str]] = ("LOW", ["Sub-processor list disclosed"]),
    telemetry: tuple[str, list[str]] = ("LOW", ["Usage logs kept 30 days"]),
) -> dict[str, Any]:
    def _category(entry: tuple[str, list[str]]) -> dict[str, Any]:
        level, titles = entry
        return {"riskLevel": level, "findings": [make_finding(title, level) for title in titles]}

    return {
        "vendor": vendor,
        "analyzedAt": "2026-01-15T10:00:00Z",
        "overallRiskLevel": overall,
        "categories": {
            "aiTraining": _category(ai_training),
            "subProcessors": _category(sub_processors),
            "telemetryRetention": _category(telemetry),
        },
        "summary": "Vendor trains on inputs by default. Opt-out is available for enterprise plans.",
    }


@pytest.fixture
def scorecard_payload():
    return make_scorecard_payload


@pytest.fixture
def page_client_factory():
    return FakePageClient


@pytest.fixture
def extractor_factory():
    return FakeExtractor


@pytest.fixture
def memory_store() -> InMemoryVendorStore:
    return InMemoryVendorStore().open()
