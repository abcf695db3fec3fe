"""
IoT PaaS API - FastAPI Application Entry Point.

Feature-based modular architecture:
  Each feature in app/features/ has its own router, service, and schemas.
  provisioning/ is called by devices; projects/ and devices/ by their owners.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import get_settings
from app.core.exceptions import AppBaseError, app_error_body
from app.core.logging import configure_logging, log_requests

# ── Feature Routers ──────────────────────────────────────
from app.features.projects.router import router as projects_router
from app.features.devices.router import router as devices_router
from app.features.provisioning.router import router as provisioning_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup & shutdown."""
    settings = get_settings()
    logger.info(f"🚀 {settings.APP_NAME} v{settings.APP_VERSION} starting ({settings.ENVIRONMENT})")
    logger.info(f"🔗 Supabase: {settings.SUPABASE_URL[:40]}...")
    logger.info(f"📡 MQTT broker: {settings.MQTT_BROKER_HOST}:{settings.MQTT_BROKER_PORT}")
    if not settings.EMQX_API_URL:
        logger.warning("EMQX_API_URL not set; broker accounts will not be registered")
    yield
    logger.info("👋 Shutting down...")


def register_exception_handlers(app: FastAPI) -> None:
    settings = get_settings()

    @app.exception_handler(AppBaseError)
    async def app_error_handler(request: Request, exc: AppBaseError):
        return JSONResponse(status_code=exc.status_code, content=app_error_body(exc))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        # Input values are dropped from the echo; a rejected body may hold a token
        errors = [
            {"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")}
            for e in exc.errors()
        ]
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=jsonable_encoder({"error": "Invalid request", "errors": errors}),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == status.HTTP_404_NOT_FOUND:
            return JSONResponse(
                status_code=exc.status_code,
                content={
                    "error": "Not Found",
                    "message": f"Route {request.method} {request.url.path} not found",
                },
            )
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        show_detail = settings.DEBUG and not settings.is_production
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "Internal Server Error",
                "message": str(exc) if show_detail else "An unexpected error occurred",
            },
        )


def create_app() -> FastAPI:
    """Application factory."""
    settings = get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="IoT projects, devices and device provisioning",
        lifespan=lifespan,
    )

    # ── Middleware ───────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(log_requests)

    register_exception_handlers(app)

    # ── Register Feature Routers ─────────────────────────
    app.include_router(projects_router, prefix="/api/projects", tags=["Projects"])
    app.include_router(devices_router, prefix="/api/devices", tags=["Devices"])
    app.include_router(provisioning_router, prefix="/api/provision", tags=["Provisioning"])

    # ── Health Check ─────────────────────────────────────
    @app.get("/health", tags=["System"])
    async def health_check():
        return {
            "status": "ok",
            "app": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    return app


app = create_app()
