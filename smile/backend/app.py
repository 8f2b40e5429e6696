"""
SMILE Learning Activities Backend
FastAPI application factory and configuration
"""

import logging
import time
import traceback
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

# Import API routers
from .api import (
    activities,
    case,
    certificates,
    exam,
    gamification,
    groups,
    inquiry,
    questions,
    users
)
from .database.connection import check_database_health, close_database_connections, init_database
from .exceptions import AppException
from ..config import get_settings

# Configure logging
logger = logging.getLogger(__name__)


class RequestContextMiddleware:
    """Middleware to add request id and timing headers"""

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start_time = time.time()
        request_id = uuid.uuid4().hex

        async def send_wrapper(message):
            if message["type"] == "http.response.start":
                process_time = time.time() - start_time
                message["headers"] = list(message.get("headers", []))
                message["headers"].append((b"x-process-time", f"{process_time:.6f}".encode()))
                message["headers"].append((b"x-request-id", request_id.encode()))
                if get_settings().ENABLE_REQUEST_LOGGING:
                    logger.info(
                        f"{scope['method']} {scope['path']} -> {message['status']} "
                        f"({process_time * 1000:.1f}ms) [{request_id}]"
                    )
            await send(message)

        await self.app(scope, receive, send_wrapper)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Database setup and teardown for the standalone API app"""
    logger.info("🚀 SMILE API starting up...")
    await init_database()
    yield
    await close_database_connections()
    logger.info("🛑 SMILE API shut down")


def error_body(error: str, message: str, details=None) -> dict:
    return {
        "error": error,
        "message": message,
        "details": details if details is not None else {},
        "timestamp": time.time()
    }


def create_app(with_lifespan: bool = True) -> FastAPI:
    """Create and configure the FastAPI application"""

    settings = get_settings()

    app = FastAPI(
        title=f"{settings.APP_NAME} API",
        description="Groups, activities, attempts, certificates and gamification for SMILE",
        version=settings.APP_VERSION,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
        openapi_url="/openapi.json" if settings.DEBUG else None,
        default_response_class=JSONResponse,
        lifespan=lifespan if with_lifespan else None
    )

    # Add custom middleware
    app.add_middleware(RequestContextMiddleware)

    # Add security middleware
    if not settings.DEBUG:
        app.add_middleware(
            TrustedHostMiddleware,
            allowed_hosts=settings.allowed_hosts
        )

    # Add compression middleware
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["x-process-time", "x-request-id"]
    )

    # Exception handlers
    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException):
        """Handle custom application exceptions"""
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path}: {exc.message}")
        else:
            logger.warning(f"{request.method} {request.url.path} rejected: {exc.error_code} {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.error_code, exc.message, exc.details)
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle request validation errors"""
        errors = [
            {"loc": list(error.get("loc", [])), "msg": error.get("msg"), "type": error.get("type")}
            for error in exc.errors()
        ]
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=error_body("VALIDATION_ERROR", "Request validation failed", {"errors": errors})
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Handle HTTP exceptions"""
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body("HTTP_ERROR", str(exc.detail))
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions"""
        logger.exception(f"Unexpected error: {exc}")

        if settings.DEBUG:
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content=error_body("INTERNAL_ERROR", str(exc), {"traceback": traceback.format_exc()})
            )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_body("INTERNAL_ERROR", "An internal server error occurred")
        )

    # Health check endpoint
    @app.get("/health", tags=["System"])
    async def health_check():
        """API health check endpoint"""
        database = await check_database_health()
        return {
            "status": database["status"],
            "api_version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
            "database": database["database"],
            "timestamp": time.time(),
            "features": {
                "gamification": settings.ENABLE_GAMIFICATION,
            }
        }

    # Include API routers
    app.include_router(users.router, prefix="/users", tags=["Users"])
    app.include_router(groups.router, prefix="/groups", tags=["Groups"])
    app.include_router(activities.router, prefix="/activities", tags=["Activities"])
    app.include_router(questions.router, prefix="/questions", tags=["Questions"])
    app.include_router(exam.router, prefix="/exam", tags=["Exam Mode"])
    app.include_router(inquiry.router, prefix="/inquiry", tags=["Inquiry Mode"])
    app.include_router(case.router, prefix="/case", tags=["Case Mode"])
    app.include_router(certificates.router, prefix="/certificates", tags=["Certificates"])
    app.include_router(gamification.router, prefix="/gamification", tags=["Gamification"])

    logger.info("✅ Backend API configured successfully")
    return app


# Export the app factory
__all__ = ["create_app"]
