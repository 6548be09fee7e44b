"""
FastAPI Production Application

Main entry point for the Retail Back-Office Analytics API.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from backoffice.analytics.exceptions import AnalyticsError
from backoffice.analytics.ledgers import StoreDirectory
from backoffice.analytics.timezone import get_timezone_resolver
from backoffice.config import get_settings
from backoffice.config.logging import configure_logging
from backoffice.database.connection import close_database, get_session_factory, init_database
from backoffice.serving.api.middleware import RateLimitMiddleware, RequestLoggingMiddleware
from backoffice.serving.api.routes import analytics_router, expenses_router, health_router
from backoffice.serving.cache import close_redis, init_redis

settings = get_settings()
logger = structlog.get_logger(__name__)

GENERIC_ERROR_MESSAGE = "Failed to fetch analytics data"


async def load_store_timezones() -> int:
    """Merge the timezone column of the stores table into the resolver."""
    zones = await StoreDirectory(get_session_factory()).timezones()
    get_timezone_resolver().update(zones)
    return len(zones)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    configure_logging()

    logger.info("Starting Retail Back-Office Analytics API", environment=settings.app_env)

    try:
        await init_database()
        logger.info("Database initialized")
    except Exception as e:
        logger.warning("Database init failed", error=str(e))
    else:
        try:
            count = await load_store_timezones()
            logger.info("Store timezones loaded", stores=count)
        except AnalyticsError as e:
            logger.warning("Store timezones unavailable, using configured zones", error=e.message)

    try:
        await init_redis()
        logger.info("Redis initialized")
    except Exception as e:
        logger.warning("Redis init failed, dashboard cache limited to the dedup tier", error=str(e))

    yield

    logger.info("Shutting down...")
    await close_database()
    await close_redis()


app = FastAPI(
    title="Retail Back-Office Analytics API",
    description="Timezone-aware sales, expense and inventory analytics for multi-tenant point-of-sale stores",
    version=settings.version,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# CORS Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.security.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Compression
app.add_middleware(GZipMiddleware, minimum_size=1000)

# Custom middleware
app.add_middleware(RateLimitMiddleware)
app.add_middleware(RequestLoggingMiddleware)


@app.exception_handler(AnalyticsError)
async def analytics_error_handler(request: Request, exc: AnalyticsError) -> JSONResponse:
    logger.error(
        "Analytics request failed",
        path=request.url.path,
        error_code=exc.error_code,
        error=exc.message,
        details=exc.details,
    )
    return JSONResponse({"success": False, "message": GENERIC_ERROR_MESSAGE}, status_code=500)


@app.exception_handler(HTTPException)
async def http_error_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        {"success": False, "message": str(exc.detail)},
        status_code=exc.status_code,
        headers=exc.headers,
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error", path=request.url.path, error_type=type(exc).__name__)
    return JSONResponse({"success": False, "message": GENERIC_ERROR_MESSAGE}, status_code=500)


# API routes
app.include_router(health_router, prefix="/api/v1", tags=["Health"])
app.include_router(analytics_router, prefix="/api/v1/analytics", tags=["Analytics"])
app.include_router(expenses_router, prefix="/api/v1/expenses", tags=["Expenses"])


@app.get("/api/v1/info")
async def api_info():
    """API information endpoint."""
    return {
        "name": "Retail Back-Office Analytics API",
        "version": settings.version,
        "environment": settings.app_env,
        "documentation": "/docs",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
