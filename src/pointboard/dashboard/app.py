"""FastAPI backend for the task board and points API."""

from __future__ import annotations

import logging
import os

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware

from pointboard.errors import AppError, ErrorKind

_logger = logging.getLogger(__name__)


def create_app(tracker) -> FastAPI:
    """Build the API app around an initialised :class:`pointboard.main.Tracker`."""
    app = FastAPI(
        title="pointboard",
        description="Team task board with points and a leaderboard.",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    cors_origins = [
        origin.strip()
        for origin in os.environ.get(
            "CORS_ORIGINS", "http://localhost:8420,http://localhost:3000"
        ).split(",")
        if origin.strip()
    ]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "Accept", "X-User-Id"],
    )

    if not tracker.auth.enabled:
        _logger.info("API authentication is disabled; callers are identified by X-User-Id")

    # ------------------------------------------------------------------
    # Error mapping
    # ------------------------------------------------------------------

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        match exc.kind:
            case ErrorKind.FATAL:
                _logger.error(
                    "%s %s failed: %s", request.method, request.url.path, exc.message,
                    extra={"details": exc.details},
                )
            case ErrorKind.TRANSIENT:
                _logger.warning("%s %s transient failure: %s", request.method, request.url.path, exc.message)
            case _:
                _logger.debug("%s %s rejected: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.http_status, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={
                "error": ErrorKind.VALIDATION.value,
                "message": "Invalid request body",
                "details": {"errors": jsonable_errors(exc)},
            },
        )

    # ------------------------------------------------------------------
    # Routers
    # ------------------------------------------------------------------
    from pointboard.dashboard.routers._deps import set_tracker
    from pointboard.dashboard.routers.lists import router as lists_router
    from pointboard.dashboard.routers.points import router as points_router
    from pointboard.dashboard.routers.shop import router as shop_router
    from pointboard.dashboard.routers.tasks import router as tasks_router

    set_tracker(tracker)

    app.include_router(tasks_router, tags=["Tasks"])
    app.include_router(lists_router, tags=["Lists"])
    app.include_router(points_router, tags=["Points"])
    app.include_router(shop_router, tags=["Shop"])

    return app


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    """Reduce pydantic error entries to JSON-safe location/message pairs."""
    return [
        {"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg", "")}
        for err in exc.errors()
    ]
