"""FamilyHub: FastAPI application entry point."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from familyhub.api.v1.access import router as access_router
from familyhub.api.v1.auth import router as auth_router
from familyhub.api.v1.billing import router as billing_router
from familyhub.api.v1.bills import router as bills_router
from familyhub.api.v1.cron import router as cron_router
from familyhub.api.v1.events import router as events_router
from familyhub.api.v1.households import router as households_router
from familyhub.api.v1.webhooks import router as webhooks_router
from familyhub.config import settings
from familyhub.errors import FamilyHubError, ReconciliationRequiredError

# Configure root logger so all familyhub.* loggers output to stderr (captured by Docker).
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan handler for startup and shutdown events."""
    # Startup
    yield
    # Shutdown: dispose engine connections
    from familyhub.database import engine

    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Family household organizer: shared calendar, bills, child and caregiver access, Family Pro billing.",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)


@app.exception_handler(FamilyHubError)
async def familyhub_error_handler(request: Request, exc: FamilyHubError) -> JSONResponse:
    """Render domain errors as ``{"error": ...}`` with the class's status code."""
    if isinstance(exc, ReconciliationRequiredError):
        logger.error("%s %s: %s", request.method, request.url.path, exc)
    else:
        logger.warning("%s %s -> %d %s: %s", request.method, request.url.path, exc.status_code, type(exc).__name__, exc)
    return JSONResponse(status_code=exc.status_code, content=exc.payload())


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(auth_router)
app.include_router(households_router)
app.include_router(access_router)
app.include_router(billing_router)
app.include_router(bills_router)
app.include_router(events_router)
app.include_router(webhooks_router)
app.include_router(cron_router)


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy", "service": settings.app_name}


@app.get("/", tags=["root"])
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
    }
