"""
Basket Filter API - FastAPI application entry point
"""
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import Depends, FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from apps.api.dependencies import get_basket_filtering_service, shutdown_basket_filtering_service
from apps.api.routers import basket, cache, catalog, merchants
from packages.common.config import get_settings
from packages.common.database import sessionmanager
from packages.common.logging_config import configure_logging
from packages.domain.eligibility import BasketFilteringService

VERSION = "0.1.0"

settings = get_settings()
configure_logging(settings.log_level)
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan context manager"""
    logger.info("starting_basket_filter_api",
                environment=settings.environment,
                version=VERSION)

    # Initialize database connection pool
    await sessionmanager.init(settings.database_url)

    yield

    # Cleanup
    logger.info("shutting_down_basket_filter_api")
    await shutdown_basket_filtering_service()
    await sessionmanager.close()


# Create FastAPI application
app = FastAPI(
    title="Basket Filter API",
    description="Meal voucher eligibility filtering for shopping baskets",
    version=VERSION,
    lifespan=lifespan,
    docs_url="/docs" if settings.environment != "production" else None,
    redoc_url="/redoc" if settings.environment != "production" else None,
)


# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=[] if settings.environment == "production" else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Exception handlers
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle validation errors with structured logging"""
    logger.warning("validation_error",
                   path=request.url.path,
                   errors=exc.errors())
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected errors"""
    logger.error("unhandled_exception",
                 path=request.url.path,
                 error=str(exc),
                 exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "Internal server error",
            "request_id": request.headers.get("x-request-id"),
        },
    )


# Include routers
app.include_router(basket.router, prefix="/api/v1/basket", tags=["Basket"])
app.include_router(catalog.router, prefix="/api/v1/catalog", tags=["Catalog"])
app.include_router(cache.router, prefix="/api/v1/cache", tags=["Cache"])
app.include_router(merchants.router, prefix="/api/v1/merchants", tags=["Merchants"])


# Health check endpoint
@app.get("/health", tags=["System"])
async def health_check(service: BasketFilteringService = Depends(get_basket_filtering_service)):
    """Health check endpoint for Docker and monitoring"""
    try:
        await sessionmanager.ping()
        ai_healthy = await service.ai_classifier.is_healthy()

        return {
            "status": "healthy",
            "environment": settings.environment,
            "version": VERSION,
            "services": {
                "database": "connected",
                "cache": "redis" if service.cache.has_remote else "memory",
                "ai": "available" if ai_healthy else "unavailable",
                "ai_model": service.ai_classifier.model_version,
            }
        }
    except Exception as e:
        logger.error("health_check_failed", error=str(e))
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "unhealthy",
                "error": str(e),
            }
        )


# Metrics endpoint (Prometheus)
@app.get("/metrics", tags=["System"])
async def metrics():
    """Prometheus metrics endpoint"""
    if not settings.metrics_enabled:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"detail": "Metrics disabled"}
        )

    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )


# Root endpoint
@app.get("/", tags=["System"])
async def root():
    """API root endpoint"""
    return {
        "name": "Basket Filter API",
        "version": VERSION,
        "environment": settings.environment,
        "docs": "/docs" if settings.environment != "production" else None,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "apps.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.environment == "development",
        log_level=settings.log_level.lower(),
    )
