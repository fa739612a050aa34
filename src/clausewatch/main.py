import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from clausewatch import get_runtime_version
from clausewatch.config import get_settings
from clausewatch.routers import api
from clausewatch.services.vendor_store import SqlVendorStore, VendorStore

logger = logging.getLogger(__name__)


def create_app(store: VendorStore | None = None) -> FastAPI:
    # Respect runtime env overrides (tests, temporary runs).
    get_settings.cache_clear()
    settings = get_settings()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        active = store if store is not None else SqlVendorStore(settings.database_url)
        active.open()
        app.state.store = active
        logger.info("Vendor store opened (%s)", active.__class__.__name__)
        try:
            yield
        finally:
            app.state.store = None
            active.close()
            logger.info("Vendor store closed")

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.include_router(api.router)

    @app.exception_handler(RequestValidationError)
    async def invalid_body(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": "Invalid request body"})

    @app.get("/healthz")
    def healthz():
        return {"status": "ok"}

    @app.get("/api/health")
    def api_health():
        return {"status": "ok", "version": get_runtime_version()}

    return app
