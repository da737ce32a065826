# sso/main.py
import datetime as dt
import logging
import sys

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from sso.config import ConfigError, Settings, load_settings
from sso.core.db import close_db, init_db
from sso.core.errors import AppError
from sso.core.middleware import RateLimitMiddleware, SecurityHeadersMiddleware
from sso.core.security import TokenService
from sso.api.routers import auth, storage
from sso.services.blob_store import BlobStore, SupabaseBlobStore
from sso.services.turnstile import TurnstileVerifier

logger = logging.getLogger("uvicorn.error")


async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(exc.to_body(), status_code=exc.status_code)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    logger.info("[http] invalid body on %s %s: %s", request.method, request.url.path, exc.errors())
    return JSONResponse({"error": "Invalid request body"}, status_code=400)


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    # Keep the flat {"error": ...} shape for framework errors (404 route, 405 method, ...)
    return JSONResponse({"error": str(exc.detail)}, status_code=exc.status_code, headers=getattr(exc, "headers", None))


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("[http] unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse({"error": "Internal server error"}, status_code=500)


def create_app(
    settings: Settings | None = None,
    *,
    blob_store: BlobStore | None = None,
    turnstile: TurnstileVerifier | None = None,
) -> FastAPI:
    """
    Application factory.

    Settings are loaded once here (fail fast on missing configuration) and
    shared with every component through ``app.state``.
    """
    settings = settings or load_settings()

    app = FastAPI(title=settings.APP_NAME)
    app.state.settings = settings
    app.state.tokens = TokenService(settings.jwt_secret, dt.timedelta(hours=settings.token_ttl_hours))
    app.state.blob_store = blob_store or SupabaseBlobStore(
        settings.storage_url,
        settings.storage_service_key,
        settings.storage_bucket,
    )
    app.state.turnstile = turnstile or TurnstileVerifier(
        settings.turnstile_secret_key,
        verify_url=settings.turnstile_verify_url,
    )

    # Middleware: last added runs first, so CORS wraps the security headers,
    # which wrap the rate limiter (429s carry the headers too)
    app.add_middleware(
        RateLimitMiddleware,
        limit=settings.rate_limit_max,
        window_seconds=settings.rate_limit_window_seconds,
    )
    app.add_middleware(SecurityHeadersMiddleware)
    # CORS (with Cookie)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    @app.on_event("startup")
    async def on_startup():
        await init_db(settings.database_url)

    @app.on_event("shutdown")
    async def on_shutdown():
        await close_db()

    app.include_router(auth.router)
    app.include_router(storage.router)

    @app.get("/health")
    def health():
        return {"status": "SSO Server running"}

    return app


def run() -> None:
    """Console entry point: load settings, then serve with uvicorn."""
    import uvicorn

    try:
        settings = load_settings()
    except ConfigError as e:
        logger.error("[startup] %s", e)
        sys.exit(1)

    logger.info("[startup] MateGroup SSO server starting on port %s", settings.port)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
