"""
Foundation Operations Console - FastAPI entry point

Wires the permission table, MongoDB, the side-effect scheduler and the API
routers into one application.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config.settings import settings
from .api.routes import api_router
from .api.middleware import CorrelationIdMiddleware, register_error_handlers
from .engine.definitions import get_registry
from .engine.permission_table import get_permission_table, load_permission_table
from .repositories.mongo_client import create_indexes, close_connection, health_check
from .scheduler.side_effect_scheduler import scheduler_running, start_scheduler, stop_scheduler
from .utils.logger import setup_logging, get_logger

setup_logging()
logger = get_logger(__name__)

APP_NAME = "Foundation Operations Console"
APP_VERSION = "1.0.0"


# =============================================================================
# Startup / shutdown
# =============================================================================

def _startup() -> None:
    """
    A broken permission table aborts startup. Index creation and the
    scheduler are best effort: the API still serves without them.
    """
    table = load_permission_table(settings.permission_table_file)
    source = settings.permission_table_file or "built-in defaults"
    logger.info(f"Permission table for {len(table.roles())} roles loaded from {source}")
    logger.info(f"Workflow kinds: {', '.join(k.value for k in get_registry().kinds())}")

    try:
        create_indexes()
    except Exception as e:
        logger.error(f"Index creation failed, continuing without: {e}")

    if not settings.scheduler_enabled:
        logger.info("Side-effect scheduler disabled by configuration")
        return
    try:
        start_scheduler()
    except Exception as e:
        logger.error(f"Side-effect scheduler did not start: {e}")


def _shutdown() -> None:
    stop_scheduler()
    close_connection()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {APP_NAME} {APP_VERSION} ({settings.environment})")
    _startup()
    yield
    logger.info(f"Stopping {APP_NAME}")
    _shutdown()


# =============================================================================
# Application
# =============================================================================

def create_app() -> FastAPI:
    """Application with middleware, error handlers and routes; docs only in debug"""
    docs = settings.debug
    application = FastAPI(
        title=APP_NAME,
        description="Role-gated workflows, compliance checks and approval chains for foundation management",
        version=APP_VERSION,
        lifespan=lifespan,
        docs_url="/api/docs" if docs else None,
        redoc_url="/api/redoc" if docs else None,
        openapi_url="/api/openapi.json" if docs else None,
    )

    _add_middleware(application)
    register_error_handlers(application)
    application.include_router(api_router, prefix="/api/v1")
    _add_service_routes(application)
    return application


def _add_middleware(app: FastAPI) -> None:
    # Browsers reject credentials together with a wildcard origin
    wildcard = settings.cors_origins.strip() == "*"
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if wildcard else settings.cors_origins_list,
        allow_credentials=not wildcard,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Correlation-Id"],
    )
    app.add_middleware(CorrelationIdMiddleware)


def _add_service_routes(app: FastAPI) -> None:
    """Unauthenticated health and info endpoints"""

    @app.get("/health", tags=["Health"])
    async def health():
        mongo = health_check()
        return {
            "status": "healthy" if mongo["status"] == "healthy" else "degraded",
            "version": APP_VERSION,
            "environment": settings.environment,
            "mongo": mongo,
            "scheduler_running": scheduler_running(),
            "roles": len(get_permission_table().roles()),
        }

    @app.get("/", tags=["Health"])
    async def root():
        return {
            "name": APP_NAME,
            "version": APP_VERSION,
            "docs": "/api/docs" if settings.debug else None,
        }


app = create_app()
