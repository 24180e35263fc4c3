"""
FastAPI application entry point.
"""

import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.db import close_db, init_db
from app.deps import get_request_id
from app.services.errors import PersistenceError, TeamServiceError
from app.settings import settings

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s" if settings.log_format == "text" else None,
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info(f"Starting {settings.app_name}...")
    await init_db()
    yield
    logger.info(f"Shutting down {settings.app_name}...")
    await close_db()


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    debug=settings.debug,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request ID middleware
@app.middleware("http")
async def add_request_id(request: Request, call_next):
    """Add request ID to all requests for logging."""
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# Health check endpoint
@app.get("/healthz", tags=["health"])
@app.get("/health", tags=["health"])
async def healthz():
    """Health check endpoint for load balancers."""
    return {"status": "healthy"}


# Import and include routers
from app.routers import teams

app.include_router(teams.router)


@app.exception_handler(TeamServiceError)
async def team_service_exception_handler(request: Request, exc: TeamServiceError):
    """Map service errors to JSON responses with a stable status code."""
    request_id = get_request_id(request)

    if isinstance(exc, PersistenceError):
        logger.error(
            f"[{request_id}] {exc.message} ({request.method} {request.url.path}): {exc.detail}",
            exc_info=exc,
        )
    else:
        logger.info(f"[{request_id}] {request.method} {request.url.path} -> {exc.status_code}: {exc.message}")

    for failure in exc.compensation_failures:
        logger.error(f"[{request_id}] Compensation failed while handling '{exc.message}': {failure}")

    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


# Generic exception handler for unhandled errors
@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Handle unhandled exceptions with a generic JSON error."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        {"detail": "Internal server error"},
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
