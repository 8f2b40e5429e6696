#!/usr/bin/env python3
"""
SMILE Learning Activities
Main application entry point
"""

import logging
import sys
import time
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from .backend.app import create_app
from .backend.database.connection import (
    check_database_health, close_database_connections, init_database
)
from .backend.utils.helpers import setup_logging
from .config import get_settings

# Configure logging
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Mounted sub-applications do not run their own lifespan"""

    logger.info("🚀 Starting SMILE Learning Activities...")
    await init_database()
    logger.info("🎉 Application startup complete!")

    yield

    logger.info("🛑 Shutting down application...")
    await close_database_connections()
    logger.info("✅ Application shutdown complete")


def create_main_app() -> FastAPI:
    """Create the top-level application with the API mounted under /api"""

    settings = get_settings()

    main_app = FastAPI(
        title=settings.APP_NAME,
        description="Educational activities: open, exam, inquiry and case modes with groups, certificates and gamification",
        version=settings.APP_VERSION,
        docs_url="/api/docs" if settings.DEBUG else None,
        redoc_url="/api/redoc" if settings.DEBUG else None,
        openapi_url="/api/openapi.json" if settings.DEBUG else None,
        lifespan=lifespan
    )

    main_app.mount("/api", create_app(with_lifespan=False))

    @main_app.get("/health")
    async def health_check():
        """Application health check endpoint"""
        database = await check_database_health()
        return {
            "status": database["status"],
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
            "database": database["database"],
            "timestamp": time.time(),
        }

    return main_app


def main():
    """Run the server with uvicorn"""
    setup_logging()

    settings = get_settings()
    logger.info(f"Starting application in {settings.ENVIRONMENT} mode")

    try:
        uvicorn.run(
            "smile.main:app",
            host=settings.HOST,
            port=settings.PORT,
            reload=settings.DEBUG,
            workers=1 if settings.DEBUG else settings.WORKERS,
            log_level=settings.LOG_LEVEL.lower(),
            access_log=settings.DEBUG
        )
    except KeyboardInterrupt:
        logger.info("Application stopped by user")
    except Exception as e:
        logger.error(f"Application failed to start: {e}")
        sys.exit(1)


# App instance for uvicorn
app = create_main_app()

if __name__ == "__main__":
    main()
