"""
Drip-feed monitoring of tracked vendors.

Each invocation picks at most BATCH_SIZE vendors whose last scan is missing or older
than STALE_THRESHOLD, re-runs discovery and extraction, diffs the new scorecard
against the stored one and rotates the stored pair. A larger fleet drains over
several scheduled invocations; a vendor that fails stays stale and is retried then.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
import logging
from typing import Any, Callable

from clausewatch.connectors import PageFetchClient
from clausewatch.schemas import Scorecard, parse_scorecard
from clausewatch.services.discovery import DocumentDiscovery
from clausewatch.services.extraction import ScorecardExtractor, extract_scorecard
from clausewatch.services.scorecard_diff import ScorecardDiff, diff_scorecards
from clausewatch.services.vendor_store import AuditEvent, TrackedVendor, VendorStore

logger = logging.getLogger(__name__)

BATCH_SIZE = 2
STALE_THRESHOLD = timedelta(hours=24)

EVENT_INITIAL_SCAN = "initial_scan"
EVENT_RISK_INCREASED = "risk_increased"
EVENT_RISK_DECREASED = "risk_decreased"
EVENT_NEW_FINDING = "new_finding"
EVENT_FINDING_REMOVED = "finding_removed"
EVENT_CHANGE_DETECTED = "change_detected"


@dataclass(slots=True, frozen=True)
class CycleError:
    vendor_id: str
    message: str


@dataclass(slots=True)
class MonitorCycleResult:
    scanned: int = 0
    changed: int = 0
    errors: list[CycleError] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "scanned": self.scanned,
            "changed": self.changed,
            "errors": [{"vendorId": item.vendor_id, "message": item.message} for item in self.errors],
        }


def is_material_change(diff: ScorecardDiff) -> bool:
    return bool(
        diff.overall_risk_changed or diff.category_changes or diff.new_findings or diff.removed_findings
    )


def classify_event(previous: Scorecard | None, current: Scorecard, diff: ScorecardDiff) -> str:
    if previous is None:
        return EVENT_INITIAL_SCAN
    if diff.overall_risk_changed and current.overall_risk_level > previous.overall_risk_level:
        return EVENT_RISK_INCREASED
    if diff.overall_risk_changed:
        return EVENT_RISK_DECREASED
    if diff.new_findings:
        return EVENT_NEW_FINDING
    if diff.removed_findings:
        return EVENT_FINDING_REMOVED
    # Only category levels moved.
    return EVENT_CHANGE_DETECTED


def build_event_summary(event_type: str, diff: ScorecardDiff, previous: Scorecard | None) -> str:
    current = diff.current_risk.value
    before = previous.overall_risk_level.value if previous is not None else "none"
    if event_type == EVENT_INITIAL_SCAN:
        return f"Initial scan completed. Overall risk: {current}."
    if event_type == EVENT_RISK_INCREASED:
        return f"Overall risk escalated from {before} to {current}."
    if event_type == EVENT_RISK_DECREASED:
        return f"Overall risk decreased from {before} to {current}."
    if event_type == EVENT_NEW_FINDING:
        return f"New findings detected: {', '.join(diff.new_findings)}."
    if event_type == EVENT_FINDING_REMOVED:
        return f"Findings removed: {', '.join(diff.removed_findings)}."
    changed = ", ".join(
        f"{item.category} {item.previous_risk.value if item.previous_risk else 'none'} -> {item.current_risk.value}"
        for item in diff.category_changes
    )
    return f"Change detected in vendor scorecard: {changed}." if changed else "Change detected in vendor scorecard."


class MonitorCycle:
    def __init__(
        self,
        store: VendorStore,
        page_client: PageFetchClient,
        extractor: ScorecardExtractor,
        *,
        clock: Callable[[], datetime] = datetime.utcnow,
        batch_size: int = BATCH_SIZE,
        stale_after: timedelta = STALE_THRESHOLD,
    ) -> None:
        self.store = store
        self.discovery = DocumentDiscovery(page_client)
        self.extractor = extractor
        self.clock = clock
        self.batch_size = batch_size
        self.stale_after = stale_after

    def _process_vendor(self, vendor: TrackedVendor, now: datetime) -> bool:
        """Scan one vendor and rotate its state. Returns True when an audit entry was written."""
        discovery = self.discovery.discover(vendor.url)
        current = extract_scorecard(self.extractor, discovery)
        previous = parse_scorecard(vendor.latest_scorecard) if vendor.latest_scorecard is not None else None

        diff = diff_scorecards(previous, current)
        material = is_material_change(diff)
        # Rotate before auditing so a failed rotation never leaves an orphan audit entry.
        self.store.rotate_scorecard(vendor.id, current, scanned_at=now)
        if material:
            event_type = classify_event(previous, current, diff)
            self.store.append_audit_event(
                AuditEvent(
                    vendor_id=vendor.id,
                    event_type=event_type,
                    summary=build_event_summary(event_type, diff, previous),
                    diff=diff.to_dict(),
                    scorecard_snapshot=current.to_payload(),
                    created_at=now,
                )
            )
            logger.info("Vendor %s: %s", vendor.id, event_type)
        return material

    def run(self) -> MonitorCycleResult:
        now = self.clock()
        vendors = self.store.find_stale_vendors(stale_before=now - self.stale_after, limit=self.batch_size)
        result = MonitorCycleResult()
        logger.info("Monitor cycle starting: %s stale vendors selected", len(vendors))

        for vendor in vendors[: self.batch_size]:
            try:
                if self._process_vendor(vendor, now):
                    result.changed += 1
            except Exception as exc:
                logger.exception("Monitor cycle failed for vendor %s (%s)", vendor.id, vendor.url)
                result.errors.append(CycleError(vendor_id=vendor.id, message=str(exc) or exc.__class__.__name__))
            result.scanned += 1

        logger.info(
            "Monitor cycle complete: %s scanned, %s changed, %s errors",
            result.scanned,
            result.changed,
            len(result.errors),
        )
        return result


def run_monitor_cycle(
    store: VendorStore,
    page_client: PageFetchClient,
    extractor: ScorecardExtractor,
    **kwargs: Any,
) -> MonitorCycleResult:
    return MonitorCycle(store, page_client, extractor, **kwargs).run()
