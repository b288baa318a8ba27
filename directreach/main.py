"""
DirectReach Rooms API - FastAPI Application
Settings resolution, lead scoring, templates and email tracking.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from directreach.config import settings
from directreach.core.exceptions import DirectReachException, RateLimitExceeded
from directreach.database import init_db
from directreach.schemas.common import ErrorResponse, HealthResponse

from directreach.api import settings as settings_api, scoring, templates, emails
from directreach.api.deps import draft_writer

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    await init_db()
    yield
    # Persist any settings drafts still waiting for their quiet period
    await draft_writer.close(flush=True)


app = FastAPI(
    title="DirectReach Rooms API",
    description="Settings resolution, lead scoring and email tracking for the DirectReach rooms pipeline",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DirectReachException)
async def directreach_exception_handler(request: Request, exc: DirectReachException):
    """Map domain exceptions to HTTP responses."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    headers = None
    if isinstance(exc, RateLimitExceeded) and exc.retry_after:
        headers = {"Retry-After": str(int(exc.retry_after) + 1)}
    return JSONResponse(status_code=exc.status_code, content=ErrorResponse(detail=exc.message).model_dump(), headers=headers)


app.include_router(settings_api.router)
app.include_router(scoring.router)
app.include_router(templates.router)
app.include_router(emails.router)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "message": "DirectReach Rooms API is running",
        "version": "1.0.0",
        "docs": "/docs"
    }


@app.get("/health", response_model=HealthResponse)
async def health():
    """Detailed health check."""
    return HealthResponse()
