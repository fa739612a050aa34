from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from clausewatch.schemas import CATEGORY_KEYS, RiskLevel, Scorecard


@dataclass(slots=True, frozen=True)
class CategoryChange:
    category: str
    previous_risk: RiskLevel | None
    current_risk: RiskLevel

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category,
            "previousRisk": self.previous_risk.value if self.previous_risk else None,
            "currentRisk": self.current_risk.value,
        }


@dataclass(slots=True, frozen=True)
class ScorecardDiff:
    overall_risk_changed: bool
    previous_risk: RiskLevel | None
    current_risk: RiskLevel
    category_changes: list[CategoryChange] = field(default_factory=list)
    new_findings: list[str] = field(default_factory=list)
    removed_findings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "overallRiskChanged": self.overall_risk_changed,
            "previousRisk": self.previous_risk.value if self.previous_risk else None,
            "currentRisk": self.current_risk.value,
            "categoryChanges": [item.to_dict() for item in self.category_changes],
            "newFindings": list(self.new_findings),
            "removedFindings": list(self.removed_findings),
        }


def all_finding_titles(scorecard: Scorecard) -> list[str]:
    """Finding titles across every category, first occurrence order, no duplicates."""
    titles: dict[str, None] = {}
    for key in CATEGORY_KEYS:
        for finding in scorecard.categories.get(key).findings:
            titles.setdefault(finding.title, None)
    return list(titles)


def diff_scorecards(previous: Scorecard | None, current: Scorecard) -> ScorecardDiff:
    """
    Compare two scorecards. A missing previous scorecard counts as a change everywhere:
    the overall level, every category and every current finding title.
    Finding identity is the verbatim title, pooled across all categories.
    """
    overall_changed = previous is None or previous.overall_risk_level != current.overall_risk_level

    changes: list[CategoryChange] = []
    for key in CATEGORY_KEYS:
        prev_risk = previous.categories.get(key).risk_level if previous is not None else None
        curr_risk = current.categories.get(key).risk_level
        if prev_risk != curr_risk:
            changes.append(CategoryChange(category=key, previous_risk=prev_risk, current_risk=curr_risk))

    previous_titles = all_finding_titles(previous) if previous is not None else []
    current_titles = all_finding_titles(current)
    previous_set = set(previous_titles)
    current_set = set(current_titles)

    return ScorecardDiff(
        overall_risk_changed=overall_changed,
        previous_risk=previous.overall_risk_level if previous is not None else None,
        current_risk=current.overall_risk_level,
        category_changes=changes,
        new_findings=[title for title in current_titles if title not in previous_set],
        removed_findings=[title for title in previous_titles if title not in current_set],
    )
