from fastapi import HTTPException, Request, status

from clausewatch.config import get_settings
from clausewatch.connectors import PageFetchClient, default_page_client
from clausewatch.errors import ConfigurationError
from clausewatch.services.extraction import ScorecardExtractor, default_extractor
from clausewatch.services.vendor_store import VendorStore


def get_store(request: Request) -> VendorStore:
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Vendor store is not open")
    return store


def get_page_client() -> PageFetchClient:
    try:
        return default_page_client()
    except ConfigurationError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc


def get_extractor() -> ScorecardExtractor:
    try:
        return default_extractor()
    except ConfigurationError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc


def require_cron_secret(request: Request) -> None:
    secret = get_settings().cron_secret
    header = request.headers.get("authorization", "")
    if not secret or header != f"Bearer {secret}":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
