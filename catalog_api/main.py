from contextlib import asynccontextmanager
import logging
import time

from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from catalog_api.api.errors import install_exception_handlers, unhandled_error
from catalog_api.api.metrics import router as metrics_router
from catalog_api.api.routes import api_router
from catalog_api.core.config import get_settings
from catalog_api.core.database import create_schema, dispose_engines
from catalog_api.core.telemetry import configure_opentelemetry, instrument_fastapi
from catalog_api.services.cache import build_cache_health_monitor, get_valkey_client

logger = logging.getLogger(__name__)
REQUEST_ID_HEADER = "X-Request-Id"


def _configure_logging(level: str) -> None:
    """Route application logs to stderr at the configured level."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    logging.getLogger("catalog_api").setLevel(level)


def _configure_sqlalchemy_logging(database_echo: bool) -> None:
    """
    Silence verbose SQLAlchemy logs unless echo is explicitly enabled.

    SQLAlchemy logs under several namespaces (engine + pool). We drop them to
    WARNING by default so statements and parameter dumps only show up when
    DATABASE_ECHO=true.
    """
    level = logging.INFO if database_echo else logging.WARNING
    for name in (
        "sqlalchemy",
        "sqlalchemy.engine",
        "sqlalchemy.engine.Engine",
        "sqlalchemy.pool",
        "sqlalchemy.pool.impl.AsyncAdaptedQueuePool",
    ):
        sa_logger = logging.getLogger(name)
        sa_logger.setLevel(level)
        sa_logger.propagate = database_echo


def _install_request_id_middleware(app: FastAPI) -> None:
    """Ensure each response, including unexpected 500s, carries X-Request-Id."""

    @app.middleware("http")
    async def add_request_id(request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER, str(uuid4()))
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as exc:
            response = await unhandled_error(request, exc)
        response.headers[REQUEST_ID_HEADER] = request_id
        logger.info(
            "%s %s -> %s (%.1fms) request_id=%s",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - started) * 1000,
            request_id,
        )
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan events."""
    settings = get_settings()

    configure_opentelemetry(
        service_name=settings.otel_service_name,
        service_version=settings.otel_service_version,
        otlp_endpoint=settings.otel_exporter_otlp_endpoint,
        otlp_headers=settings.otel_exporter_otlp_headers,
        enabled=settings.otel_enabled,
    )

    # The cache connects in the background; startup never waits for it.
    monitor = build_cache_health_monitor()
    monitor.start()

    if settings.database_create_schema:
        try:
            await create_schema()
            logger.info("Database schema ready")
        except (SQLAlchemyError, OSError):
            logger.exception("Database initialization failed")

    try:
        yield
    finally:
        await monitor.stop()
        await get_valkey_client().aclose()
        await dispose_engines()


def create_app() -> FastAPI:
    """Application factory for FastAPI."""
    settings = get_settings()
    app = FastAPI(
        title="Catalog Cache API",
        description="Product catalog served through a resilient cache-aside layer.",
        version="0.1.0",
        lifespan=lifespan,
    )

    _configure_logging(settings.log_level)
    _configure_sqlalchemy_logging(settings.database_echo)

    instrument_fastapi(app, enabled=settings.otel_enabled)
    _install_request_id_middleware(app)
    install_exception_handlers(app)

    allow_origins = settings.cors_allow_origins
    allow_origin_regex = settings.cors_allow_origin_regex
    if allow_origins or allow_origin_regex:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=allow_origins,
            allow_origin_regex=allow_origin_regex,
            allow_credentials=bool(allow_origins),
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.include_router(metrics_router)
    app.include_router(api_router)

    return app


app = create_app()
