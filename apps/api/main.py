# FastAPI entrypoint with all routes, middleware and error handlers

from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.gzip import GZipMiddleware

from auth.auth_routes import admin_router
from auth.auth_routes import router as auth_router
from auth.security_middleware import (
    CORSHardeningMiddleware,
    ErrorCatchingMiddleware,
    RateLimitMiddleware,
    RequestLoggingMiddleware,
    SecurityHeadersMiddleware,
    UploadLimitMiddleware,
)
from core.config import Settings
from core.context import AppContext, build_context
from core.errors import AppError
from core.logging import configure_logging
from documents.doc_routes import router as document_router
from practice.practice_routes import router as practice_router

SERVICE_NAME = "lawease-api"


# ==================== ERROR HANDLERS ====================

def error_response(status_code: int, message: str, headers: Optional[dict] = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message}, headers=headers)


async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.opt(exception=exc).error(f"{request.method} {request.url.path} failed: {exc.message}")
        return error_response(500, "Internal server error")
    return error_response(exc.status_code, exc.message)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    logger.debug(f"Rejected payload for {request.method} {request.url.path}: {exc.errors()}")
    return error_response(400, "Invalid request payload")


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return error_response(exc.status_code, str(exc.detail), getattr(exc, "headers", None))


# Last resort for failures raised by the middleware stack itself.
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.opt(exception=exc).error(f"Unhandled error on {request.method} {request.url.path}")
    return error_response(500, "Internal server error")


# ==================== APP FACTORY ====================

def create_app(settings: Optional[Settings] = None, context: Optional[AppContext] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    settings.validate()
    context = context or build_context(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"{SERVICE_NAME} started ({settings.environment})")
        yield
        context.close()
        logger.info(f"{SERVICE_NAME} stopped")

    app = FastAPI(
        title="LawEase API",
        description="Practice management for small law offices",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.context = context

    # ==================== MIDDLEWARE STACK ====================
    # Last added runs first: logging -> headers -> CORS -> rate limit -> errors -> upload cap -> routes

    app.add_middleware(UploadLimitMiddleware, max_file_bytes=settings.upload_max_bytes)
    app.add_middleware(ErrorCatchingMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        cache=context.rate_limits,
        auth_limit=settings.auth_rate_limit,
        api_limit=settings.api_rate_limit,
        window_seconds=settings.rate_limit_window_seconds,
        trust_proxy=settings.trust_proxy,
    )
    app.add_middleware(CORSHardeningMiddleware, allowed_origins=settings.allowed_origins)
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(SecurityHeadersMiddleware, hsts=settings.is_production)
    app.add_middleware(RequestLoggingMiddleware, trust_proxy=settings.trust_proxy)

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # ==================== ROUTERS ====================

    api = APIRouter(prefix="/api")

    @api.get("/health")
    async def health_check():
        store = context.store
        return {"ok": store.health_check(), "service": SERVICE_NAME, "store": store.backend}

    api.include_router(auth_router)
    api.include_router(admin_router)
    api.include_router(practice_router)
    api.include_router(document_router)
    app.include_router(api)

    return app


def main():
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
