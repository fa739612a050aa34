from .scorecard import (
    CATEGORY_KEYS,
    CategoryResult,
    DocumentCategory,
    Finding,
    RiskLevel,
    Scorecard,
    ScorecardCategories,
    parse_scorecard,
    risk_ordinal,
    scorecard_json_schema,
)

__all__ = [
    "CATEGORY_KEYS",
    "CategoryResult",
    "DocumentCategory",
    "Finding",
    "RiskLevel",
    "Scorecard",
    "ScorecardCategories",
    "parse_scorecard",
    "risk_ordinal",
    "scorecard_json_schema",
]
