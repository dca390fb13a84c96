"""
Place Cache API
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import uvicorn

from placecache.core.config import get_settings
from placecache.core.exceptions import (
    ConfigurationError,
    OriginError,
    OriginRateLimited,
    StoreUnavailable,
)
from placecache.api.dependencies import get_store_handle, shutdown
from placecache.api.routes import (
    health,
    places,
    cache
)

# Configure logging
logging.basicConfig(
    level=get_settings().log_level.upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


# ===========================
# Application Lifespan
# ===========================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    logger.info("Starting application...")
    await get_store_handle().get()

    yield

    logger.info("Closing store and origin connections...")
    await shutdown()


# ===========================
# Error mapping
# ===========================

def _error_body(status_code: int, message: str, errors=None, retryable: bool = False):
    return {
        "status": "error",
        "statusCode": status_code,
        "message": message,
        "errors": errors or [],
        "retryable": retryable,
    }

async def origin_rate_limited_handler(request: Request, exc: OriginRateLimited):
    headers = {"Retry-After": str(int(exc.retry_after))} if exc.retry_after else None
    return JSONResponse(
        status_code=503,
        content=_error_body(503, exc.message, exc.details, retryable=True),
        headers=headers
    )

async def origin_error_handler(request: Request, exc: OriginError):
    status_code = exc.status_code if exc.status_code >= 400 else 502
    return JSONResponse(status_code=status_code, content=_error_body(status_code, exc.message, exc.details))

async def configuration_error_handler(request: Request, exc: ConfigurationError):
    logger.error(f"Configuration error: {exc}")
    return JSONResponse(status_code=500, content=_error_body(500, str(exc)))

async def store_unavailable_handler(request: Request, exc: StoreUnavailable):
    logger.error(f"Store unavailable: {exc}")
    return JSONResponse(status_code=503, content=_error_body(503, "Cache store unavailable", [str(exc)], retryable=True))


# ===========================
# Application Setup
# ===========================

def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(
        title=settings.app_name,
        description="Tiered cache in front of the Google Places text search API",
        version=settings.version,
        lifespan=lifespan
    )

    app.add_exception_handler(OriginRateLimited, origin_rate_limited_handler)
    app.add_exception_handler(OriginError, origin_error_handler)
    app.add_exception_handler(ConfigurationError, configuration_error_handler)
    app.add_exception_handler(StoreUnavailable, store_unavailable_handler)

    app.include_router(health.router, tags=["health"])
    app.include_router(places.router, tags=["places"])
    app.include_router(cache.router, tags=["cache"])
    return app


app = create_app()


# ===========================
# Run the application
# ===========================

if __name__ == "__main__":
    uvicorn.run(
        "placecache.main:app",
        host="0.0.0.0",
        port=8080,
        reload=False,
        log_level="info"
    )
