"""
Template Fulfillment API - Main Application.

FastAPI application exposing template sale fulfillment, the operator GitHub
override and download authorization.

Run locally:
    uvicorn api.main:app --reload
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api import __version__
from config import configure_logging, get_settings
from domain.errors import DownloadDeniedError, FulfillmentError

configure_logging(get_settings())
logger = logging.getLogger(__name__)

# Create FastAPI application
app = FastAPI(
    title="Template Fulfillment API",
    description="REST API for delivering purchased SaaS starter templates",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# Exception Handlers
# ============================================================================

@app.exception_handler(FulfillmentError)
async def handle_fulfillment_error(request: Request, exc: FulfillmentError):
    """Map the fulfillment error taxonomy onto HTTP status codes."""
    if exc.status_code >= 500:
        logger.error(f"Fulfillment error on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(DownloadDeniedError)
async def handle_download_denied(request: Request, exc: DownloadDeniedError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.reason, "code": exc.audit_status},
    )


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception):
    """Unclassified failures (after any rollback) surface as 500."""
    logger.exception(f"Unexpected error on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"error": "An unexpected error occurred", "code": "INTERNAL_ERROR"},
    )


@app.get("/health", tags=["Health"])
def health_check():
    """
    Health check endpoint.

    Returns the API status and version.
    """
    return {
        "status": "healthy",
        "version": __version__,
        "service": "template-fulfillment-api"
    }


@app.get("/", tags=["Root"])
def root():
    """
    Root endpoint with API information.
    """
    return {
        "message": "Template Fulfillment API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health"
    }


# Import and include routers
from api.routers import downloads, template_sales

app.include_router(template_sales.router, prefix="/api/v1", tags=["Template Sales"])
# Unprefixed: download links in delivery emails point straight at this path.
app.include_router(downloads.router, tags=["Downloads"])
