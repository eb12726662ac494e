"""FastAPI app entrypoint for the agent orchestration API."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from time import perf_counter
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError

from .. import __version__
from ..config import Settings, load_settings
from ..engine.coordinator import RunCoordinator
from ..engine.errors import ApprovalNotFoundError
from ..observability import configure_logging
from .api.v1.router import api_v1_router
from .errors import (
    APIError,
    api_error_handler,
    approval_not_found_handler,
    error_response,
    validation_error_handler,
)

logger = logging.getLogger("reelsmith.web.api")


def create_app(
    settings: Optional[Settings] = None,
    coordinator: Optional[RunCoordinator] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or load_settings()
    configure_logging(settings.log_level)
    auth_mode = settings.auth_mode

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "coordinator", None) is None:
            app.state.coordinator = RunCoordinator.from_settings(settings)
        try:
            yield
        finally:
            await app.state.coordinator.shutdown()

    app = FastAPI(title="Reelsmith Agent API", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.coordinator = coordinator
    app.include_router(api_v1_router)

    @app.middleware("http")
    async def auth_middleware(request: Request, call_next):
        if not request.url.path.startswith("/api/v1"):
            return await call_next(request)

        user_id = (request.headers.get("X-User-ID") or "").strip()
        if auth_mode == "token":
            auth_header = (request.headers.get("Authorization") or "").strip()
            if not auth_header.startswith("Bearer ") or not auth_header[len("Bearer ") :].strip():
                return error_response(401, "UNAUTHORIZED", "Missing bearer token")
            if not user_id:
                return error_response(400, "BAD_REQUEST", "X-User-ID header is required")

        request.state.user_id = user_id or None
        return await call_next(request)

    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next):
        start = perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            duration_ms = (perf_counter() - start) * 1000
            logger.info(
                "api_request method=%s path=%s status=%s duration_ms=%.2f provider=%s model=%s",
                request.method,
                request.url.path,
                500,
                duration_ms,
                settings.provider,
                settings.model,
            )
            raise

        duration_ms = (perf_counter() - start) * 1000
        logger.info(
            "api_request method=%s path=%s status=%s duration_ms=%.2f provider=%s model=%s",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            settings.provider,
            settings.model,
        )
        return response

    @app.get("/healthz", tags=["system"])
    async def healthz() -> dict:
        active = len(app.state.coordinator.active_runs) if app.state.coordinator else 0
        return {"status": "ok", "active_runs": active}

    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(ApprovalNotFoundError, approval_not_found_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    return app


def main() -> None:
    """Run development API server."""
    import uvicorn
    from dotenv import find_dotenv, load_dotenv

    # Load REELSMITH_* and provider keys from a local .env file
    load_dotenv(find_dotenv(usecwd=True))

    uvicorn.run("reelsmith.web.app:create_app", factory=True, host="127.0.0.1", port=8000)
