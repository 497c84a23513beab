"""
FastAPI application for the subscription engine.

Maps the engine's error taxonomy onto HTTP responses.
"""
from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from loguru import logger

from salonpass.api.v1.router import api_router
from salonpass.core.config import settings
from salonpass.core.exceptions import (
    ConflictError,
    DomainError,
    FatalError,
    InvalidToken,
    PaymentDeclined,
    ResourceNotFound,
    SubscriptionEngineError,
    ValidationError,
)
from salonpass.core.logging import setup_logging
from salonpass.db.session import init_models

# Create FastAPI app
app = FastAPI(
    title=settings.PROJECT_NAME,
    version="1.0.0",
    description="Subscription lifecycle and visit redemption engine for salon packages"
)

app.include_router(api_router, prefix="/api/v1")


def status_for(error: SubscriptionEngineError) -> int:
    """HTTP status for an engine error"""
    if isinstance(error, ValidationError):
        return status.HTTP_422_UNPROCESSABLE_ENTITY
    if isinstance(error, (ResourceNotFound, InvalidToken)):
        return status.HTTP_404_NOT_FOUND
    if isinstance(error, PaymentDeclined):
        return status.HTTP_402_PAYMENT_REQUIRED
    if isinstance(error, (DomainError, ConflictError)):
        return status.HTTP_409_CONFLICT
    if isinstance(error, FatalError):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@app.exception_handler(SubscriptionEngineError)
async def engine_error_handler(request: Request, exc: SubscriptionEngineError):
    code = status_for(exc)
    if code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(
        status_code=code,
        content=jsonable_encoder({
            "error": exc.code,
            "category": exc.category.value,
            "message": exc.message,
            "details": exc.details,
        }),
    )


@app.on_event("startup")
async def startup_event():
    """Startup tasks"""
    setup_logging(log_to_files=settings.ENVIRONMENT != "test")
    logger.info(f"🚀 Starting {settings.PROJECT_NAME}")
    logger.info(f"📊 Environment: {settings.ENVIRONMENT}")
    await init_models()
    logger.info("✅ Application started successfully")


@app.on_event("shutdown")
async def shutdown_event():
    """Shutdown tasks - cleanup connections"""
    from salonpass.db.session import engine

    await engine.dispose()
    logger.info("✅ Shutdown complete")


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": settings.PROJECT_NAME,
        "version": "1.0.0",
        "status": "running",
        "docs": "/docs"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
