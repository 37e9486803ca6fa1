import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.errors import (
    DeliveryError,
    InvalidStateError,
    MarketplaceError,
    NotFoundError,
    PermissionDeniedError,
    ProvisioningFailedError,
    SelfConnectionError,
    TransientStoreError,
)
from app.realtime import bus  # the package import registers the commit hooks that feed the bus
from app.routers import businesses, connection_requests, chat, notifications, realtime

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    closed = bus.close_all()
    logger.info("Shutdown: closed %d realtime subscription(s)", closed)


app = FastAPI(
    title=settings.project_name,
    version="1.0.0",
    lifespan=lifespan,
)

# Include routers
app.include_router(businesses.router, prefix=settings.api_v1_prefix)
app.include_router(connection_requests.router, prefix=settings.api_v1_prefix)
app.include_router(chat.router, prefix=settings.api_v1_prefix)
app.include_router(notifications.router, prefix=settings.api_v1_prefix)
app.include_router(realtime.router, prefix=settings.api_v1_prefix)

ERROR_STATUS = {
    SelfConnectionError: 400,
    PermissionDeniedError: 403,
    NotFoundError: 404,
    InvalidStateError: 409,
    ProvisioningFailedError: 502,
    DeliveryError: 502,
    TransientStoreError: 503,
}


def status_for(exc: MarketplaceError) -> int:
    for error_type, status_code in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return status_code
    return 500


@app.exception_handler(MarketplaceError)
async def marketplace_error_handler(request: Request, exc: MarketplaceError):
    detail = {"error": exc.code, "message": exc.message}
    # Partial failures: the decision is committed, the client resumes with /complete
    request_id = getattr(exc, "request_id", None)
    if request_id is not None:
        detail["request_id"] = str(request_id)
        detail["status"] = exc.status
    return JSONResponse(status_code=status_for(exc), content={"detail": detail})


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    return JSONResponse(status_code=400, content={"detail": {"error": "invalid_input", "message": str(exc)}})


@app.get("/")
def root():
    """Root endpoint."""
    return {
        "message": "Welcome to LocalSource Connect API",
        "version": "1.0.0",
        "docs": "/docs"
    }


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
