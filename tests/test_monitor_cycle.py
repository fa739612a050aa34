from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from clausewatch.errors import PersistenceError
from clausewatch.schemas import parse_scorecard
from clausewatch.services.monitor import (
    BATCH_SIZE,
    STALE_THRESHOLD,
    MonitorCycle,
    build_event_summary,
    classify_event,
    is_material_change,
    run_monitor_cycle,
)
from clausewatch.services.scorecard_diff import diff_scorecards

NOW = datetime(2026, 3, 1, 12, 0, 0)
ALPHA = "https://alpha.example"
BETA = "https://beta.example"
GAMMA = "https://gamma.example"


def _links(*roots: str) -> dict[str, list[str]]:
    return {root: [f"{root}/terms", f"{root}/privacy"] for root in roots}


def _track(store, url: str, *, scorecard=None, scanned_at=None):
    vendor = store.add_vendor(url, url.removeprefix("https://"))
    vendor.latest_scorecard = scorecard
    vendor.latest_scan_at = scanned_at
    return vendor


def _cycle(store, client, extractor) -> MonitorCycle:
    return MonitorCycle(store, client, extractor, clock=lambda: NOW)


def test_contract_constants() -> None:
    assert BATCH_SIZE == 2
    assert STALE_THRESHOLD == timedelta(hours=24)


def test_no_stale_vendors_makes_no_external_calls(memory_store, page_client_factory, extractor_factory) -> None:
    _track(memory_store, ALPHA, scanned_at=NOW - timedelta(hours=2))
    client = page_client_factory(_links(ALPHA), default_text="Body")
    extractor = extractor_factory()

    result = _cycle(memory_store, client, extractor).run()

    assert result.to_dict() == {"scanned": 0, "changed": 0, "errors": []}
    assert client.call_count == 0
    assert extractor.calls == []
    assert memory_store.stale_queries == [(NOW - timedelta(hours=24), 2)]


def test_empty_store_returns_zeros(memory_store, page_client_factory, extractor_factory) -> None:
    result = run_monitor_cycle(memory_store, page_client_factory(), extractor_factory(), clock=lambda: NOW)

    assert result.to_dict() == {"scanned": 0, "changed": 0, "errors": []}


def test_vendor_failure_does_not_abort_the_batch(
    memory_store, page_client_factory, extractor_factory, scorecard_payload
) -> None:
    alpha = _track(memory_store, ALPHA)
    beta = _track(memory_store, BETA)
    client = page_client_factory(_links(BETA), default_text="Body", fail_roots={ALPHA})
    extractor = extractor_factory(scorecard_payload("MEDIUM", vendor="beta.example"))

    result = _cycle(memory_store, client, extractor).run()

    assert result.scanned == 2
    assert len(result.errors) == 1
    assert result.errors[0].vendor_id == alpha.id
    assert "Page discovery failed" in result.errors[0].message
    assert memory_store.get_vendor(beta.id).latest_scan_at == NOW
    assert memory_store.get_vendor(beta.id).latest_scorecard["vendor"] == "beta.example"
    assert memory_store.get_vendor(alpha.id).latest_scan_at is None
    assert result.to_dict()["errors"] == [{"vendorId": alpha.id, "message": result.errors[0].message}]


def test_at_most_batch_size_vendors_per_invocation(
    memory_store, page_client_factory, extractor_factory, scorecard_payload
) -> None:
    for url in (ALPHA, BETA, GAMMA):
        _track(memory_store, url)
    client = page_client_factory(_links(ALPHA, BETA, GAMMA), default_text="Body")
    extractor = extractor_factory(scorecard_payload(), scorecard_payload())

    result = _cycle(memory_store, client, extractor).run()

    assert result.scanned == 2
    assert len(client.discover_calls) == 2
    assert len(extractor.calls) == 2
    assert sum(1 for vendor in memory_store.list_vendors() if vendor.latest_scan_at is None) == 1


def test_never_scanned_vendors_go_first(memory_store, page_client_factory, extractor_factory, scorecard_payload) -> None:
    _track(memory_store, ALPHA, scorecard=scorecard_payload(), scanned_at=NOW - timedelta(days=3))
    _track(memory_store, BETA)
    _track(memory_store, GAMMA, scorecard=scorecard_payload(), scanned_at=NOW - timedelta(days=9))
    client = page_client_factory(_links(ALPHA, BETA, GAMMA), default_text="Body")
    extractor = extractor_factory(scorecard_payload(), scorecard_payload())

    _cycle(memory_store, client, extractor).run()

    assert [root for root, _, _ in client.discover_calls] == [BETA, GAMMA]


def test_initial_scan_writes_audit_entry(memory_store, page_client_factory, extractor_factory, scorecard_payload) -> None:
    alpha = _track(memory_store, ALPHA)
    client = page_client_factory(_links(ALPHA), default_text="Body")
    extractor = extractor_factory(scorecard_payload("MEDIUM"))

    result = _cycle(memory_store, client, extractor).run()

    assert result.changed == 1
    [event] = memory_store.list_audit_events(alpha.id)
    assert event.event_type == "initial_scan"
    assert event.summary == "Initial scan completed. Overall risk: MEDIUM."
    assert event.diff["overallRiskChanged"] is True
    assert event.scorecard_snapshot["overallRiskLevel"] == "MEDIUM"
    assert event.created_at == NOW
    assert extractor.calls[0][1] == "alpha.example"
    assert "--- BEGIN TOS (source: https://alpha.example/terms) ---" in extractor.calls[0][2]


@pytest.mark.parametrize(
    ("previous", "current", "expected"),
    [
        ("LOW", "HIGH", "risk_increased"),
        ("MEDIUM", "CRITICAL", "risk_increased"),
        ("CRITICAL", "HIGH", "risk_decreased"),
        ("HIGH", "NONE", "risk_decreased"),
    ],
)
def test_overall_risk_movement_is_classified_by_severity(
    previous, current, expected, memory_store, page_client_factory, extractor_factory, scorecard_payload
) -> None:
    alpha = _track(
        memory_store, ALPHA, scorecard=scorecard_payload(previous), scanned_at=NOW - timedelta(hours=25)
    )
    client = page_client_factory(_links(ALPHA), default_text="Body")
    extractor = extractor_factory(scorecard_payload(current))

    result = _cycle(memory_store, client, extractor).run()

    assert result.changed == 1
    [event] = memory_store.list_audit_events(alpha.id)
    assert event.event_type == expected
    assert previous in event.summary and current in event.summary


def test_new_finding_without_risk_change(memory_store, page_client_factory, extractor_factory, scorecard_payload) -> None:
    alpha = _track(memory_store, ALPHA, scorecard=scorecard_payload(), scanned_at=NOW - timedelta(days=2))
    client = page_client_factory(_links(ALPHA), default_text="Body")
    extractor = extractor_factory(
        scorecard_payload(telemetry=("LOW", ["Usage logs kept 30 days", "Telemetry shared with analytics vendor"]))
    )

    _cycle(memory_store, client, extractor).run()

    [event] = memory_store.list_audit_events(alpha.id)
    assert event.event_type == "new_finding"
    assert event.summary == "New findings detected: Telemetry shared with analytics vendor."


def test_removed_finding_without_other_changes(
    memory_store, page_client_factory, extractor_factory, scorecard_payload
) -> None:
    alpha = _track(memory_store, ALPHA, scorecard=scorecard_payload(), scanned_at=NOW - timedelta(days=2))
    client = page_client_factory(_links(ALPHA), default_text="Body")
    extractor = extractor_factory(scorecard_payload(telemetry=("LOW", [])))

    _cycle(memory_store, client, extractor).run()

    [event] = memory_store.list_audit_events(alpha.id)
    assert event.event_type == "finding_removed"
    assert event.diff["removedFindings"] == ["Usage logs kept 30 days"]


def test_unchanged_scorecard_rotates_without_audit(
    memory_store, page_client_factory, extractor_factory, scorecard_payload
) -> None:
    last_scan = NOW - timedelta(days=2)
    alpha = _track(memory_store, ALPHA, scorecard=scorecard_payload(), scanned_at=last_scan)
    client = page_client_factory(_links(ALPHA), default_text="Body")
    extractor = extractor_factory(scorecard_payload())

    result = _cycle(memory_store, client, extractor).run()

    assert result.to_dict() == {"scanned": 1, "changed": 0, "errors": []}
    assert memory_store.list_audit_events(alpha.id) == []
    vendor = memory_store.get_vendor(alpha.id)
    assert vendor.previous_scan_at == last_scan
    assert vendor.previous_scorecard == scorecard_payload()
    assert vendor.latest_scan_at == NOW


def test_malformed_extraction_is_a_vendor_error(
    memory_store, page_client_factory, extractor_factory, scorecard_payload
) -> None:
    alpha = _track(memory_store, ALPHA)
    beta = _track(memory_store, BETA)
    broken = scorecard_payload()
    broken["overallRiskLevel"] = "SEVERE"
    client = page_client_factory(_links(ALPHA, BETA), default_text="Body")
    extractor = extractor_factory(broken, scorecard_payload())

    result = _cycle(memory_store, client, extractor).run()

    assert result.scanned == 2
    assert [error.vendor_id for error in result.errors] == [alpha.id]
    assert "failed validation" in result.errors[0].message
    assert memory_store.get_vendor(alpha.id).latest_scorecard is None
    assert memory_store.get_vendor(beta.id).latest_scan_at == NOW


def test_failed_rotation_leaves_no_audit_entry(
    monkeypatch, memory_store, page_client_factory, extractor_factory, scorecard_payload
) -> None:
    alpha = _track(memory_store, ALPHA)
    client = page_client_factory(_links(ALPHA), default_text="Body")
    extractor = extractor_factory(scorecard_payload(), scorecard_payload())
    rotate = memory_store.rotate_scorecard

    def _broken_rotate(vendor_id, scorecard, scanned_at):
        raise PersistenceError("database is locked")

    monkeypatch.setattr(memory_store, "rotate_scorecard", _broken_rotate)
    first = _cycle(memory_store, client, extractor).run()

    assert [error.message for error in first.errors] == ["database is locked"]
    assert memory_store.list_audit_events(alpha.id) == []
    assert memory_store.get_vendor(alpha.id).latest_scan_at is None

    monkeypatch.setattr(memory_store, "rotate_scorecard", rotate)
    second = _cycle(memory_store, client, extractor).run()

    assert second.errors == []
    assert [event.event_type for event in memory_store.list_audit_events(alpha.id)] == ["initial_scan"]


def test_corrupt_stored_scorecard_is_a_vendor_error(
    memory_store, page_client_factory, extractor_factory, scorecard_payload
) -> None:
    alpha = _track(memory_store, ALPHA, scorecard={"vendor": "alpha"}, scanned_at=NOW - timedelta(days=2))
    client = page_client_factory(_links(ALPHA), default_text="Body")
    extractor = extractor_factory(scorecard_payload())

    result = _cycle(memory_store, client, extractor).run()

    assert [error.vendor_id for error in result.errors] == [alpha.id]
    assert memory_store.get_vendor(alpha.id).latest_scorecard == {"vendor": "alpha"}


def test_category_only_change_is_generic(scorecard_payload) -> None:
    previous = parse_scorecard(scorecard_payload(sub_processors=("LOW", ["Sub-processor list disclosed"])))
    current = parse_scorecard(scorecard_payload(sub_processors=("MEDIUM", ["Sub-processor list disclosed"])))
    diff = diff_scorecards(previous, current)

    assert is_material_change(diff)
    assert classify_event(previous, current, diff) == "change_detected"
    assert build_event_summary("change_detected", diff, previous) == (
        "Change detected in vendor scorecard: subProcessors LOW -> MEDIUM."
    )


def test_identical_scorecards_are_not_material(scorecard_payload) -> None:
    card = parse_scorecard(scorecard_payload())

    assert not is_material_change(diff_scorecards(card, card))


def test_risk_change_outranks_new_findings(scorecard_payload) -> None:
    previous = parse_scorecard(scorecard_payload("LOW"))
    current = parse_scorecard(scorecard_payload("HIGH", ai_training=("HIGH", ["Trains on prompts by default"])))
    diff = diff_scorecards(previous, current)

    assert diff.new_findings == ["Trains on prompts by default"]
    assert classify_event(previous, current, diff) == "risk_increased"
    assert build_event_summary("risk_increased", diff, previous) == "Overall risk escalated from LOW to HIGH."
