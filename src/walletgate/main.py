# src/walletgate/main.py
"""Main entry point for the walletgate application."""

from __future__ import annotations

import logging
import uuid

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from walletgate.api.v1 import auth_router, downloads_router
from walletgate.core.settings import settings
from walletgate.db.session import SessionLocal
from walletgate.schemas import ErrorBody, ErrorResponse
from walletgate.services.background import BackgroundTaskRunner, NonceSweeper
from walletgate.services.errors import AuthError, AuthErrorCode
from walletgate.services.nonce_store import ChallengeStore
from walletgate.services.resilience import CircuitBreaker

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-Id"


def _new_request_id() -> str:
    return f"req_{uuid.uuid4().hex[:12]}"


def _error_response(status_code: int, code: str, message: str) -> JSONResponse:
    body = ErrorResponse(error=ErrorBody(code=code, message=message))
    return JSONResponse(status_code=status_code, content=body.model_dump())


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request body"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = str(first.get("msg", "Invalid value"))
    return f"{location}: {message}" if location else message


def create_app() -> FastAPI:
    """Build the FastAPI application with its middleware, routers and shared state."""
    app = FastAPI(
        title="Walletgate API",
        description="Wallet-signature authentication for gated downloads and sign-in",
        version=settings.app_version,
    )

    app.state.challenge_store = ChallengeStore(ttl_seconds=settings.siws_nonce_ttl_seconds)
    app.state.task_runner = BackgroundTaskRunner()
    app.state.das_circuit_breaker = CircuitBreaker(name="das")
    app.state.identity_circuit_breaker = CircuitBreaker(name="privy")
    app.state.session_factory = SessionLocal
    app.state.http_client = None
    app.state.nonce_sweeper = None

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
        expose_headers=[REQUEST_ID_HEADER],
    )

    # Add GZip middleware for compression
    app.add_middleware(GZipMiddleware)

    @app.middleware("http")
    async def request_context(request: Request, call_next):  # type: ignore[no-untyped-def]
        request_id = _new_request_id()
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["Cache-Control"] = "no-store"
        return response

    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
        return _error_response(exc.http_status, exc.code.value, exc.message)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return _error_response(
            400, AuthErrorCode.VALIDATION_ERROR.value, _validation_message(exc)
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        response = _error_response(
            500, AuthErrorCode.INTERNAL_ERROR.value, "Internal server error"
        )
        # Rendered outside the request_context middleware, so set its headers here.
        response.headers[REQUEST_ID_HEADER] = getattr(
            request.state, "request_id", None
        ) or _new_request_id()
        response.headers["Cache-Control"] = "no-store"
        return response

    # Include API routers
    app.include_router(auth_router, prefix="/api/v1")
    app.include_router(downloads_router, prefix="/api/v1")

    @app.on_event("startup")
    async def on_startup() -> None:
        logging.basicConfig(level=settings.log_level.upper())
        app.state.http_client = httpx.AsyncClient()
        sweeper = NonceSweeper(app.state.challenge_store, app.state.session_factory)
        await sweeper.start()
        app.state.nonce_sweeper = sweeper

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        sweeper: NonceSweeper | None = app.state.nonce_sweeper
        if sweeper:
            await sweeper.stop()
            app.state.nonce_sweeper = None
        await app.state.task_runner.cancel_all()
        client: httpx.AsyncClient | None = app.state.http_client
        if client is not None:
            await client.aclose()
            app.state.http_client = None

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint to verify the service is running."""
        return {"status": "ok"}

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("walletgate.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
