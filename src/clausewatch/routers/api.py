from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from clausewatch.connectors import PageFetchClient, sanitize_url
from clausewatch.dependencies import get_extractor, get_page_client, get_store, require_cron_secret
from clausewatch.errors import (
    DiscoveryError,
    DuplicateVendorError,
    ExtractionError,
    ExtractionValidationError,
    InvalidInputUrl,
)
from clausewatch.services.analysis import analyze_vendor
from clausewatch.services.discovery import DocumentDiscovery
from clausewatch.services.extraction import ScorecardExtractor, stream_scorecard
from clausewatch.services.monitor import run_monitor_cycle
from clausewatch.services.vendor_store import VendorStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["api"])


class AnalyzeRequest(BaseModel):
    url: str | None = None


class TrackVendorRequest(BaseModel):
    url: str | None = None
    name: str | None = None


@router.post("/analyze")
def api_analyze(
    body: AnalyzeRequest,
    page_client: PageFetchClient = Depends(get_page_client),
    extractor: ScorecardExtractor = Depends(get_extractor),
):
    try:
        analysis = analyze_vendor(body.url, page_client, extractor)
    except InvalidInputUrl as exc:
        return JSONResponse(status_code=400, content={"error": str(exc)})
    except DiscoveryError as exc:
        return JSONResponse(status_code=502, content={"error": str(exc), "hostname": exc.hostname})
    except (ExtractionError, ExtractionValidationError) as exc:
        logger.warning("Extraction failed for %s: %s", body.url, exc)
        return JSONResponse(status_code=500, content={"error": str(exc)})
    return analysis.to_dict()


@router.post("/analyze/stream")
def api_analyze_stream(
    body: AnalyzeRequest,
    page_client: PageFetchClient = Depends(get_page_client),
    extractor: ScorecardExtractor = Depends(get_extractor),
):
    """Discovery up front, then the scorecard JSON text as the extraction service produces it."""
    try:
        discovery = DocumentDiscovery(page_client).discover(body.url)
    except InvalidInputUrl as exc:
        return JSONResponse(status_code=400, content={"error": str(exc)})
    except DiscoveryError as exc:
        return JSONResponse(status_code=502, content={"error": str(exc), "hostname": exc.hostname})

    def _chunks():
        sent = 0
        try:
            for partial in stream_scorecard(extractor, discovery):
                yield partial[sent:]
                sent = len(partial)
        except (ExtractionError, ExtractionValidationError) as exc:
            # Headers are already out; end the body with a trailing error line.
            logger.warning("Streamed extraction failed for %s: %s", discovery.vendor_hostname, exc)
            yield "\n" + json.dumps({"error": str(exc)})

    return StreamingResponse(_chunks(), media_type="text/plain; charset=utf-8")


@router.get("/vendors")
def api_list_vendors(store: VendorStore = Depends(get_store)):
    return {"vendors": [vendor.to_dict() for vendor in store.list_vendors()]}


@router.post("/vendors", status_code=201)
def api_track_vendor(body: TrackVendorRequest, store: VendorStore = Depends(get_store)):
    try:
        sanitized = sanitize_url(body.url)
    except InvalidInputUrl as exc:
        return JSONResponse(status_code=400, content={"error": str(exc)})
    try:
        vendor = store.add_vendor(sanitized.url, sanitized.hostname, name=(body.name or "").strip() or None)
    except DuplicateVendorError as exc:
        return JSONResponse(status_code=409, content={"error": str(exc)})
    return vendor.to_dict()


@router.get("/vendors/{vendor_id}/audit")
def api_vendor_audit(vendor_id: str, store: VendorStore = Depends(get_store)):
    if store.get_vendor(vendor_id) is None:
        return JSONResponse(status_code=404, content={"error": "not_found"})
    return {"events": [event.to_dict() for event in store.list_audit_events(vendor_id)]}


@router.get("/cron/monitor", dependencies=[Depends(require_cron_secret)])
def api_cron_monitor(
    store: VendorStore = Depends(get_store),
    page_client: PageFetchClient = Depends(get_page_client),
    extractor: ScorecardExtractor = Depends(get_extractor),
):
    return run_monitor_cycle(store, page_client, extractor).to_dict()
