from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any

from clausewatch.connectors import PageFetchClient
from clausewatch.schemas import Scorecard
from clausewatch.services.discovery import DiscoveryResult, DocumentDiscovery
from clausewatch.services.extraction import ScorecardExtractor, extract_scorecard

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class VendorAnalysis:
    discovery: DiscoveryResult
    scorecard: Scorecard

    def to_dict(self) -> dict[str, Any]:
        return {
            "scorecard": self.scorecard.to_payload(),
            "discovery": self.discovery.to_dict(),
        }


def analyze_vendor(url: str, page_client: PageFetchClient, extractor: ScorecardExtractor) -> VendorAnalysis:
    """One-shot discovery plus extraction for a vendor URL. Nothing is persisted."""
    discovery = DocumentDiscovery(page_client).discover(url)
    scorecard = extract_scorecard(extractor, discovery)
    logger.info(
        "Analysis for %s: overall=%s documents=%s",
        discovery.vendor_hostname,
        scorecard.overall_risk_level.value,
        len(discovery.documents),
    )
    return VendorAnalysis(discovery=discovery, scorecard=scorecard)
