import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from errors import AnalyticsError, StoreError
from routes import analytics, health
from services.refresh_queue import RefreshQueue
from services.wiring import build_services
from settings import Settings, load_settings
from storage.client import build_store

logger = logging.getLogger(__name__)


def _validation_message(exc: RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error.get("loc", ())[1:])
        parts.append(f"{field}: {error.get('msg')}" if field else error.get("msg", "Invalid request"))
    return "; ".join(parts) or "Invalid request"


def register_error_handlers(app: FastAPI):
    @app.exception_handler(AnalyticsError)
    async def analytics_error_handler(request: Request, exc: AnalyticsError):
        if isinstance(exc, StoreError):
            logger.error("Store failure on %s %s: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": _validation_message(exc)})

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        detail = "Route not found" if exc.status_code == 404 and exc.detail == "Not Found" else exc.detail
        return JSONResponse(status_code=exc.status_code, content={"error": detail}, headers=exc.headers)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})


def create_app(settings: Settings = None, store=None) -> FastAPI:
    """Builds the analytics API.

    ``store`` is injected by tests; when omitted the backend named by
    STORE_BACKEND is created at startup and closed at shutdown.
    """
    settings = settings or load_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        logger.info("Starting analytics service (%s, store=%s)", settings.environment, settings.store_backend)
        app_store = store if store is not None else build_store(settings)
        refresh_queue = RefreshQueue(
            workers=settings.refresh_workers,
            maxsize=settings.refresh_queue_size,
            submit_timeout=settings.refresh_submit_timeout,
        )
        refresh_queue.start()
        app.state.services = build_services(app_store, refresh_queue)
        yield
        # Shutdown
        logger.info("Stopping analytics service")
        refresh_queue.stop(drain=True)
        if store is None:
            app_store.close()

    app = FastAPI(
        title="Music Streaming Analytics API",
        description="Play tracking, trending and listening analytics backed by Firestore",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings

    # Middleware
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    register_error_handlers(app)

    # Routers
    app.include_router(health.router,    tags=["Health"])
    app.include_router(health.router,    prefix="/api/analytics", tags=["Health"])
    app.include_router(analytics.router, prefix="/api/analytics", tags=["Analytics"])
    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run("app:app", host="0.0.0.0", port=app.state.settings.port)
