"""
Scorecard shape produced by the structured-extraction service.

Stored scorecards and fresh extraction responses both cross the same boundary,
`parse_scorecard`, before any diffing or persistence happens. Wire names are
camelCase (`overallRiskLevel`, `frameworkRef`); Python attributes are snake_case.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictStr
from pydantic import ValidationError as SchemaValidationError
from pydantic.alias_generators import to_camel

from clausewatch.errors import ExtractionValidationError


class DocumentCategory(str, Enum):
    TOS = "tos"
    PRIVACY = "privacy"
    DPA = "dpa"
    SUBPROCESSOR = "subprocessor"
    OTHER = "other"


class RiskLevel(str, Enum):
    NONE = "NONE"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def ordinal(self) -> int:
        return _RISK_ORDER[self]

    # str's lexical comparisons would rank CRITICAL below HIGH.
    def __lt__(self, other):
        if not isinstance(other, RiskLevel):
            return NotImplemented
        return self.ordinal < other.ordinal

    def __le__(self, other):
        if not isinstance(other, RiskLevel):
            return NotImplemented
        return self.ordinal <= other.ordinal

    def __gt__(self, other):
        if not isinstance(other, RiskLevel):
            return NotImplemented
        return self.ordinal > other.ordinal

    def __ge__(self, other):
        if not isinstance(other, RiskLevel):
            return NotImplemented
        return self.ordinal >= other.ordinal


_RISK_ORDER: dict[RiskLevel, int] = {
    RiskLevel.NONE: 0,
    RiskLevel.LOW: 1,
    RiskLevel.MEDIUM: 2,
    RiskLevel.HIGH: 3,
    RiskLevel.CRITICAL: 4,
}


def risk_ordinal(level: RiskLevel | str) -> int:
    """Severity rank of a level; unknown labels rank below NONE."""
    try:
        return RiskLevel(level).ordinal
    except ValueError:
        return -1


CATEGORY_KEYS: tuple[str, ...] = ("aiTraining", "subProcessors", "telemetryRetention")


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class Finding(_WireModel):
    title: StrictStr = Field(description="Short title of the finding, e.g. 'AI Training on Customer Data'")
    severity: RiskLevel = Field(description="Risk severity of this specific finding")
    detected: StrictBool = Field(description="Whether this risk was detected in the documents")
    evidence: StrictStr = Field(description="Verbatim quote from the source document, never a paraphrase")
    source_document: DocumentCategory = Field(description="Which document this finding was extracted from")
    explanation: StrictStr = Field(description="Plain-English explanation of why this matters")
    framework_ref: StrictStr = Field(
        description="Compliance framework reference, e.g. 'GDPR Art. 28', 'SOC 2 CC6.1', 'NIST CSF PR.DS-5'"
    )


class CategoryResult(_WireModel):
    risk_level: RiskLevel = Field(description="Overall risk level for this category")
    findings: list[Finding] = Field(description="Individual findings in this category")


class ScorecardCategories(_WireModel):
    ai_training: CategoryResult = Field(description="AI/ML model training on customer data")
    sub_processors: CategoryResult = Field(description="Third-party AI sub-processors and data sharing")
    telemetry_retention: CategoryResult = Field(
        description="Telemetry collection, data retention and deletion policies"
    )

    def get(self, key: str) -> CategoryResult:
        """Look a category up by its wire key (`aiTraining`, ...)."""
        if key not in CATEGORY_KEYS:
            raise KeyError(key)
        return getattr(self, _CATEGORY_ATTRS[key])


_CATEGORY_ATTRS = {
    "aiTraining": "ai_training",
    "subProcessors": "sub_processors",
    "telemetryRetention": "telemetry_retention",
}


class Scorecard(_WireModel):
    vendor: StrictStr = Field(description="The vendor name or domain being analyzed")
    analyzed_at: StrictStr = Field(description="ISO 8601 timestamp of the analysis")
    overall_risk_level: RiskLevel = Field(
        description="Overall risk level across all categories. CRITICAL if any category is CRITICAL."
    )
    categories: ScorecardCategories
    summary: StrictStr = Field(
        description="2-3 sentence executive summary of the overall risk posture for a CISO audience"
    )

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


def scorecard_json_schema() -> dict[str, Any]:
    return Scorecard.model_json_schema(by_alias=True)


def parse_scorecard(payload: Mapping[str, Any] | str | bytes | Scorecard) -> Scorecard:
    """Validate a scorecard from storage or from the extraction service."""
    if isinstance(payload, Scorecard):
        return payload
    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except ValueError as exc:
            raise ExtractionValidationError(f"Scorecard is not valid JSON: {exc}") from exc
    if not isinstance(payload, Mapping):
        raise ExtractionValidationError(f"Scorecard must be an object, got {type(payload).__name__}")
    try:
        return Scorecard.model_validate(dict(payload))
    except SchemaValidationError as exc:
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ())) or "<root>"
        raise ExtractionValidationError(
            f"Scorecard failed validation at {location}: {first.get('msg', 'invalid value')}"
        ) from exc
