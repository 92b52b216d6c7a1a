"""
Stock Ledger FastAPI Main Application
Entry point for the stock ledger REST API
"""
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
import logging

from stockledger.api.v1.api_router import api_router
from stockledger.core.config import settings
from stockledger.core.database import check_db_connection, init_db
from stockledger.core.exceptions import (
    InsufficientStockError, InvalidStateError, LedgerException,
    NotFoundError, PersistenceError, ValidationError
)
from stockledger.core.logging import setup_logging

logger = logging.getLogger("stockledger.api")

# HTTP status per error kind
ERROR_STATUS_CODES = {
    ValidationError: 400,
    NotFoundError: 404,
    InvalidStateError: 409,
    InsufficientStockError: 409,
    PersistenceError: 500,
}

# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="""
    ## Stock Ledger API

    Multi-location inventory ledger.

    ### Key Features:
    - **Transactions**: receipts, deliveries, transfers and adjustments with a draft → completed lifecycle
    - **Stock Levels**: per item and location quantities, updated atomically on completion
    - **Low Stock Alerts**: active items at or below their minimum level
    - **Demand Forecasts**: days until shortage and reorder suggestions from completed deliveries
    """,
    docs_url=settings.DOCS_URL,
    redoc_url=settings.REDOC_URL,
    openapi_url=settings.OPENAPI_URL,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add trusted host middleware for production
if not settings.DEBUG:
    app.add_middleware(
        TrustedHostMiddleware,
        allowed_hosts=settings.ALLOWED_HOSTS
    )


# Health check endpoint
@app.get("/health", tags=["System"])
async def health_check():
    """
    Health check endpoint for monitoring and load balancers

    Returns system status and database connectivity
    """
    try:
        db_status = check_db_connection()

        return {
            "status": "healthy" if db_status else "degraded",
            "version": settings.APP_VERSION,
            "database": "connected" if db_status else "disconnected",
            "debug": settings.DEBUG
        }
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        raise HTTPException(status_code=503, detail="Service unavailable")


# System information endpoint
@app.get("/info", tags=["System"])
async def system_info():
    """Application configuration and build information"""
    return {
        "application": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "api_version": "v1",
        "docs_url": settings.DOCS_URL,
        "forecast_estimator": settings.FORECAST_ESTIMATOR,
        "atomic_completion": settings.ATOMIC_COMPLETION,
        "features": [
            "Stock Transactions",
            "Stock Levels",
            "Low Stock Alerts",
            "Demand Forecasting",
        ],
    }


# Application startup event
@app.on_event("startup")
async def startup_event():
    """
    Application startup tasks

    Configure logging, verify the database and create missing tables
    """
    setup_logging()
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    if not check_db_connection():
        logger.error("Failed to connect to database on startup")
        raise RuntimeError("Database connection failed")

    logger.info("Database connection established")
    init_db()
    logger.info("Application startup completed successfully")


# Application shutdown event
@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Shutting down application")


@app.exception_handler(LedgerException)
async def ledger_exception_handler(request: Request, exc: LedgerException):
    """
    Render ledger errors as ErrorResponse

    Insufficient stock and persistence failures carry their details.
    """
    status_code = ERROR_STATUS_CODES.get(type(exc), 400)
    content = exc.to_dict()

    if isinstance(exc, InsufficientStockError):
        content["detail"] = {
            "item_id": exc.item_id,
            "location_id": exc.location_id,
            "available": exc.available,
            "requested": exc.requested,
        }
    elif isinstance(exc, PersistenceError):
        logger.error(f"{request.method} {request.url.path}: {exc.message}")
        content["detail"] = {
            "transaction_id": exc.transaction_id,
            "applied_lines": exc.applied_lines,
        }

    return JSONResponse(status_code=status_code, content=content)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """
    Global exception handler for unhandled errors

    Args:
        request: FastAPI request object
        exc: Exception that occurred

    Returns:
        JSON error response
    """
    logger.error(f"Unhandled exception: {exc}", exc_info=True)

    return JSONResponse(
        status_code=500,
        content={
            "error": "server_error",
            "message": "Internal server error",
            "detail": str(exc) if settings.DEBUG else "An unexpected error occurred",
        }
    )


# Include API routers
app.include_router(api_router, prefix=settings.API_V1_STR)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "stockledger.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
