"""
FastAPI Application Entry Point
--------------------------------
ICS calendar proxy: fetches an iCalendar feed and serves its events
as Google Calendar-like JSON.

WHAT THIS FILE DOES:
1. Creates the FastAPI app instance
2. Sets up middleware (CORS)
3. Registers the calendar routes
4. Provides health check endpoint
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging

from app.config import settings

# Import API routes
from app.api import calendar


# ============================================================================
# LOGGING SETUP
# ============================================================================
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


# ============================================================================
# LIFESPAN EVENTS (Startup / Shutdown)
# ============================================================================
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Code that runs when the app starts and stops.
    """
    # STARTUP
    logger.info("🚀 Starting ICS Proxy API...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    if settings.ICS_URL is None:
        logger.warning("⚠️  ICS_URL is not set: requests must pass ?ics=<url>")

    yield  # Application runs here

    # SHUTDOWN
    logger.info("👋 Shutting down ICS Proxy API...")


# ============================================================================
# CREATE FASTAPI APP
# ============================================================================
app = FastAPI(
    title="ICS Proxy API",
    description="iCalendar feed to Google Calendar-like JSON",
    version="0.1.0",
    docs_url="/docs",          # Swagger UI at http://localhost:8000/docs
    redoc_url="/redoc",        # ReDoc at http://localhost:8000/redoc
    lifespan=lifespan
)


# ============================================================================
# MIDDLEWARE
# ============================================================================

# CORS Middleware (answers preflight requests; /api/ics sets its own
# Access-Control-Allow-Origin header on success)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_methods=["GET"],
    allow_headers=["*"],
)


# ============================================================================
# HEALTH CHECK ENDPOINT
# ============================================================================
@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint for monitoring.

    TEST IT:
    curl http://localhost:8000/health
    """
    return JSONResponse(
        status_code=200,
        content={
            "status": "healthy",
            "environment": settings.ENVIRONMENT,
            "version": "0.1.0"
        }
    )


# ============================================================================
# ROOT ENDPOINT
# ============================================================================
@app.get("/", tags=["Root"])
async def root():
    """
    API root endpoint with welcome message.
    """
    return {
        "message": "Welcome to ICS Proxy API",
        "docs": "/docs",
        "health": "/health",
        "events": "/api/ics",
        "version": "0.1.0"
    }


# ============================================================================
# REGISTER ROUTES
# ============================================================================
app.include_router(calendar.router, prefix="/api", tags=["Calendar"])


# ============================================================================
# ERROR HANDLERS
# ============================================================================
@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """
    Catch all unhandled exceptions.

    The calendar route converts its own errors; this only fires for
    failures outside of it.
    """
    logger.error(f"Unhandled exception: {exc}", exc_info=True)

    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            # In production, DON'T expose error details to users
            "detail": str(exc) if not settings.is_production else None
        }
    )


# ============================================================================
# RUN APPLICATION (for development)
# ============================================================================
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.BACKEND_HOST,
        port=settings.BACKEND_PORT,
        reload=settings.BACKEND_RELOAD,  # Auto-reload on code changes
        log_level=settings.LOG_LEVEL.lower()
    )
