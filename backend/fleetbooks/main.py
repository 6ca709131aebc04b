"""FastAPI application entry point."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from fleetbooks.api import cache_admin, health, investor_payouts, reports
from fleetbooks.core.cache import report_cache
from fleetbooks.core.config import settings
from fleetbooks.core.exceptions import ReportError
from fleetbooks.core.limiter import limiter
from fleetbooks.core.log_config import configure_logging
from fleetbooks.db.base import Base
from fleetbooks.db.redis import close_redis, get_redis
from fleetbooks.db.session import AsyncSessionLocal, engine
from fleetbooks.middleware.request_tracing import RequestTracingMiddleware
from fleetbooks.services.categories import ensure_default_categories

configure_logging()

logger = structlog.get_logger()


def _init_sentry() -> None:
    """Error tracking is optional; a broken DSN must not block startup."""
    try:
        import sentry_sdk

        sentry_sdk.init(
            dsn=settings.SENTRY_DSN,
            environment=settings.SENTRY_ENVIRONMENT,
            traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
        )
    except Exception:
        logger.exception("sentry_init_failed")
        return
    logger.info("sentry_initialized", environment=settings.SENTRY_ENVIRONMENT)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Connect the cache store, prepare the schema and seed expense categories.

    An unreachable cache store aborts startup.
    """
    logger.info("app_starting", app_name=settings.APP_NAME, version=settings.APP_VERSION)

    await get_redis()

    if settings.AUTO_CREATE_TABLES:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("database_tables_created")

    async with AsyncSessionLocal() as session:
        await ensure_default_categories(session)

    if settings.SENTRY_DSN:
        _init_sentry()

    try:
        yield
    finally:
        logger.info("app_stopping", in_flight_reports=report_cache.in_flight)
        await close_redis()
        await engine.dispose()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)  # type: ignore[arg-type]


@app.exception_handler(ReportError)
async def report_error_handler(request: Request, exc: ReportError) -> JSONResponse:
    """Render domain errors as ``{"error", "message"}``."""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log("report_error", error=exc.error, message=exc.message, status_code=exc.status_code)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {"loc": [str(part) for part in error["loc"]], "msg": error["msg"], "type": error["type"]}
        for error in exc.errors()
    ]
    logger.warning("request_validation_failed", details=details)
    return JSONResponse(
        status_code=400,
        content={
            "error": "validation_error",
            "message": "Invalid request parameters",
            "details": details,
        },
    )


# Tracing wraps everything, so it is added last
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=settings.CORS_ALLOW_METHODS,
    allow_headers=settings.CORS_ALLOW_HEADERS,
)
app.add_middleware(RequestTracingMiddleware)

app.include_router(health.router)
app.include_router(reports.router, prefix=settings.API_V1_PREFIX)
app.include_router(investor_payouts.router, prefix=settings.API_V1_PREFIX)
app.include_router(cache_admin.router, prefix=settings.API_V1_PREFIX)


@app.get("/")
async def root() -> dict[str, str]:
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "fleetbooks.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.RELOAD,
    )
