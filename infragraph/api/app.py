"""FastAPI application factory for infragraph.

Usage::

    from infragraph.api.app import create_app
    from infragraph.app import InfraGraphApp

    api = create_app(InfraGraphApp())

The factory is used by both ``infragraph serve`` and unit tests.
"""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from infragraph.api.routes import router
from infragraph.api.schemas import ErrorResponse
from infragraph.app import InfraGraphApp
from infragraph.errors import (
    GraphError,
    InfraGraphError,
    MissingParameterError,
    ParameterError,
    StateError,
    UnknownParameterError,
)

_log = structlog.get_logger(component="api.app")

_API_PREFIX = "/api/v1"


def create_app(infragraph_app: InfraGraphApp) -> FastAPI:
    """Create and configure the infragraph FastAPI application.

    Starts *infragraph_app* eagerly so configuration and state errors
    surface at boot rather than on the first request.
    """
    from infragraph import __version__

    infragraph_app.start()

    app = FastAPI(
        title="infragraph",
        summary="Declarative resource graph planner",
        version=__version__,
        docs_url="/api/v1/docs",
        redoc_url="/api/v1/redoc",
        openapi_url="/api/v1/openapi.json",
    )
    app.state.infragraph = infragraph_app
    app.include_router(router, prefix=_API_PREFIX)

    @app.get("/metrics", include_in_schema=False)
    async def metrics() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # -----------------------------------------------------------------------
    # Exception handlers
    # -----------------------------------------------------------------------

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        _request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        errors = exc.errors()
        first_msg = str(errors[0].get("msg", "")) if errors else ""
        return JSONResponse(
            status_code=400,
            content=ErrorResponse(error="INVALID_REQUEST", detail=first_msg).model_dump(),
        )

    @app.exception_handler(InfraGraphError)
    async def infragraph_exception_handler(
        request: Request,
        exc: InfraGraphError,
    ) -> JSONResponse:
        status_code, code = _classify(exc)
        _log.warning("request_rejected", path=str(request.url.path), error=code, detail=str(exc))
        return JSONResponse(
            status_code=status_code,
            content=ErrorResponse(error=code, detail=str(exc)).model_dump(),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        """Catch-all for unhandled exceptions; never expose stack traces."""
        _log.error(
            "unhandled_exception",
            path=str(request.url.path),
            method=request.method,
            error=str(exc),
        )
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="INTERNAL_ERROR",
                detail="An unexpected error occurred.",
            ).model_dump(),
        )

    return app


def _classify(exc: InfraGraphError) -> tuple[int, str]:
    if isinstance(exc, MissingParameterError):
        return 422, "MISSING_PARAMETER"
    if isinstance(exc, UnknownParameterError):
        return 422, "UNKNOWN_PARAMETER"
    if isinstance(exc, ParameterError):
        return 422, "INVALID_PARAMETER"
    if isinstance(exc, GraphError):
        return 409, "INVALID_GRAPH"
    if isinstance(exc, StateError):
        return 409, "STATE_CONFLICT"
    return 400, exc.category.upper()
