"""FastAPI application entry point."""
import logging
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from recruiter_pipeline.config import settings
from recruiter_pipeline.database import Database
from recruiter_pipeline.errors import (
    PipelineError,
    pipeline_error_handler,
    request_validation_error_handler,
)
from recruiter_pipeline.routers import candidates, pipelines


logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    await Database.connect()
    logger.info("%s %s started", settings.app_name, settings.app_version)
    yield
    # Shutdown
    await Database.disconnect()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    debug=settings.debug,
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Error envelope
app.add_exception_handler(PipelineError, pipeline_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_error_handler)

# Include routers
app.include_router(pipelines.router)
app.include_router(candidates.router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Recruiter Pipeline API",
        "version": settings.app_version,
        "docs": "/docs"
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
