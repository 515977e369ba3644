"""
FastAPI application for the bulk ticket service.
Builds the service container on startup and tears it down on shutdown.
"""

import time
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from bulkdesk.config import settings
from bulkdesk.dependencies import build_container, close_container
from bulkdesk.infrastructure.observability.logging import get_logger, setup_logging
from bulkdesk.routes import health, profiles, socket, tickets

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown with proper resource management."""

    logger.info("Application starting", environment=settings.environment, debug=settings.debug)

    try:
        app.state.services = build_container()
    except Exception as e:
        logger.error("Failed to initialize services", error=str(e))
        raise

    logger.info(
        "All services initialized successfully",
        desk_base_url=settings.desk_base_url(),
        request_timeout_seconds=settings.ZOHO_REQUEST_TIMEOUT_SECONDS,
    )

    yield

    logger.info("Application shutting down")

    try:
        await close_container(app.state.services)
    except Exception as e:
        logger.error("Error closing services", error=str(e))
    else:
        logger.info("All services closed successfully")


app = FastAPI(
    title="Bulk Desk",
    description="Bulk Zoho Desk ticket creation with live progress over WebSocket",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router)
app.include_router(profiles.router)
app.include_router(tickets.router)
app.include_router(socket.router)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log HTTP requests with timing."""
    start_time = time.time()
    response = await call_next(request)
    process_time = (time.time() - start_time) * 1000

    logger.info(
        "HTTP request completed",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(process_time, 2),
    )
    return response


def run() -> None:
    """Console entry point."""
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)


if __name__ == "__main__":
    run()
