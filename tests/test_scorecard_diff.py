from __future__ import annotations

from clausewatch.schemas import RiskLevel, parse_scorecard
from clausewatch.services.scorecard_diff import all_finding_titles, diff_scorecards


def test_identical_scorecards_have_no_changes(scorecard_payload) -> None:
    card = parse_scorecard(scorecard_payload("HIGH"))

    diff = diff_scorecards(card, card)

    assert diff.overall_risk_changed is False
    assert diff.category_changes == []
    assert diff.new_findings == []
    assert diff.removed_findings == []


def test_initial_scan_counts_everything_as_changed(scorecard_payload) -> None:
    card = parse_scorecard(scorecard_payload("MEDIUM"))

    diff = diff_scorecards(None, card)

    assert diff.overall_risk_changed is True
    assert diff.previous_risk is None
    assert [change.category for change in diff.category_changes] == [
        "aiTraining",
        "subProcessors",
        "telemetryRetention",
    ]
    assert all(change.previous_risk is None for change in diff.category_changes)
    assert set(diff.new_findings) == set(all_finding_titles(card))
    assert diff.removed_findings == []


def test_overall_escalation_is_reported(scorecard_payload) -> None:
    previous = parse_scorecard(scorecard_payload("LOW"))
    current = parse_scorecard(scorecard_payload("HIGH"))

    diff = diff_scorecards(previous, current)

    assert diff.overall_risk_changed is True
    assert diff.to_dict()["previousRisk"] == "LOW"
    assert diff.to_dict()["currentRisk"] == "HIGH"
    assert diff.current_risk == RiskLevel.HIGH


def test_removed_finding_is_not_new(scorecard_payload) -> None:
    previous = parse_scorecard(scorecard_payload(telemetry=("LOW", ["Usage logs kept 30 days", "Crash dumps kept"])))
    current = parse_scorecard(scorecard_payload(telemetry=("LOW", ["Usage logs kept 30 days"])))

    diff = diff_scorecards(previous, current)

    assert diff.removed_findings == ["Crash dumps kept"]
    assert "Crash dumps kept" not in diff.new_findings
    assert diff.overall_risk_changed is False
    assert diff.category_changes == []


def test_finding_moving_between_categories_is_not_a_change(scorecard_payload) -> None:
    previous = parse_scorecard(
        scorecard_payload(ai_training=("MEDIUM", ["Shared with partners"]), sub_processors=("LOW", []))
    )
    current = parse_scorecard(
        scorecard_payload(ai_training=("MEDIUM", []), sub_processors=("LOW", ["Shared with partners"]))
    )

    diff = diff_scorecards(previous, current)

    assert diff.new_findings == []
    assert diff.removed_findings == []


def test_category_change_lists_only_moved_categories(scorecard_payload) -> None:
    previous = parse_scorecard(scorecard_payload(sub_processors=("LOW", ["Sub-processor list disclosed"])))
    current = parse_scorecard(scorecard_payload(sub_processors=("HIGH", ["Sub-processor list disclosed"])))

    diff = diff_scorecards(previous, current)

    assert [change.to_dict() for change in diff.category_changes] == [
        {"category": "subProcessors", "previousRisk": "LOW", "currentRisk": "HIGH"}
    ]
    assert diff.overall_risk_changed is False


def test_diff_serializes_with_wire_keys(scorecard_payload) -> None:
    diff = diff_scorecards(None, parse_scorecard(scorecard_payload()))

    payload = diff.to_dict()

    assert set(payload) == {
        "overallRiskChanged",
        "previousRisk",
        "currentRisk",
        "categoryChanges",
        "newFindings",
        "removedFindings",
    }
    assert payload["previousRisk"] is None
