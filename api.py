"""
Geuttae FastAPI Application

Main entry point for the Geuttae circles API.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Common library imports
from common.database import MongoDB, set_main_database
from common.utils import APIException, error_response, success_response

# App-specific imports
from geuttae import __version__
from geuttae.config import settings
from geuttae.dependencies import get_gateway, init_all_services
from geuttae.routers import circles_router, meetups_router, pieces_router

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# =============================================================================
# Database Instance
# =============================================================================
main_db = MongoDB()


# =============================================================================
# Application Lifespan
# =============================================================================
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    Handles startup and shutdown tasks like database connections
    and service initialization.
    """
    # Startup
    logger.info("Starting Geuttae API...")
    settings.validate_required()

    await main_db.connect(
        uri=settings.MONGODB_URI,
        database_name=settings.MONGODB_DATABASE,
    )
    set_main_database(main_db)
    logger.info(f"Connected to database: {settings.MONGODB_DATABASE}")

    init_all_services(db=main_db.db, settings=settings)
    await get_gateway().ensure_indexes()
    logger.info("Geuttae API started successfully")

    yield

    # Shutdown
    logger.info("Shutting down Geuttae API...")
    await main_db.disconnect()


# =============================================================================
# FastAPI Application
# =============================================================================
app = FastAPI(
    title="Geuttae API",
    description="Circles, memory pieces and meetups",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs" if settings.is_development() else None,
    redoc_url="/redoc" if settings.is_development() else None,
)

# =============================================================================
# CORS Middleware
# =============================================================================
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Error Responses
# =============================================================================
@app.exception_handler(APIException)
async def api_exception_handler(request: Request, exc: APIException):
    """Render tagged exceptions in the standard error envelope."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    details = exc.detail.get("details") if isinstance(exc.detail, dict) else None
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(exc.message, exc.code, exc.kind.value, details),
        headers=exc.headers,
    )


# =============================================================================
# Include Routers (all under the API prefix)
# =============================================================================
app.include_router(circles_router, prefix=settings.API_PREFIX, tags=["Circles"])
app.include_router(meetups_router, prefix=settings.API_PREFIX, tags=["Meetups"])
app.include_router(pieces_router, prefix=settings.API_PREFIX, tags=["Pieces"])


# =============================================================================
# Health Check Endpoint
# =============================================================================
@app.get("/health", tags=["Health"])
async def health():
    """Health check endpoint."""
    return success_response({
        "status": "ok",
        "version": __version__,
        "database": main_db.is_connected,
    })


# =============================================================================
# Run with Uvicorn
# =============================================================================
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.is_development(),
    )
