"""FastAPI application factory.

Lifespan
--------
Startup runs ``init_db`` against ``settings.db_path`` and records the path in
``app.state.db_path``.  Each request then opens its own connection through
:func:`familytree.api.dependencies.get_db`.

Routers
-------
    /trees   — tree read, whole-tree sync, tree creation, single-node delete
    /health  — liveness probe

Errors
------
Every failure is answered as ``{"success": false, "message": ...}``.
:class:`~familytree.errors.TreeError` subclasses carry their own status code;
request-shape errors are reported as 400; anything else is logged and
reported as an opaque 500.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from familytree.api.routers import trees as trees_router
from familytree.config import configure_logging, settings
from familytree.db import get_connection, init_db
from familytree.errors import StorageFailure, TreeError, ValidationFailed

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Bring the schema up to date before serving requests."""
    conn = get_connection()
    try:
        init_db(conn)
    finally:
        conn.close()
    app.state.db_path = settings.db_path
    yield


def _failure(status_code: int, message: str, errors: Any = None) -> JSONResponse:
    content: dict[str, Any] = {"success": False, "message": message}
    if errors:
        content["errors"] = errors
    return JSONResponse(status_code=status_code, content=content)


async def _tree_error_handler(request: Request, exc: TreeError) -> JSONResponse:
    if isinstance(exc, StorageFailure):
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s rejected (%d): %s", request.method, request.url.path, exc.status_code, exc.message)
    errors = exc.errors if isinstance(exc, ValidationFailed) else None
    return _failure(exc.status_code, exc.message, errors)


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]
    logger.info("%s %s rejected (400): %d validation error(s)", request.method, request.url.path, len(errors))
    return _failure(400, ValidationFailed.default_message, errors)


async def _http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _failure(exc.status_code, str(exc.detail))


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("%s %s crashed", request.method, request.url.path)
    return _failure(500, StorageFailure.default_message)


def create_app() -> FastAPI:
    """Return a fully-configured FastAPI application instance."""
    configure_logging()
    app = FastAPI(
        title="Family Tree API",
        description=(
            "Per-family genealogy graphs: read a whole tree, replace it with a "
            "full submitted state, create trees and remove single nodes."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )

    # Allow browser frontends on any origin (tighten for production).
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(TreeError, _tree_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _request_validation_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _unhandled_error_handler)

    app.include_router(trees_router.router, prefix="/trees", tags=["trees"])

    @app.get("/health", tags=["health"])
    def health() -> dict[str, str]:
        return {"status": "healthy"}

    return app


# Module-level instance used by uvicorn:
#   uvicorn familytree.api.app:app --reload
app = create_app()
