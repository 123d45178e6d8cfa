"""Global error handler — consistent JSON error responses."""

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from hml.errors import HMLError

logger = structlog.get_logger()


def setup_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    @app.exception_handler(HMLError)
    async def domain_exception_handler(request: Request, exc: HMLError) -> JSONResponse:
        """Render domain errors raised by the service layer."""
        if exc.status_code >= 500:
            logger.warning("upstream_error", path=request.url.path, error=exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_content())

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """Handle HTTP exceptions with consistent JSON format."""
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
        """Bad input shape is a 400 naming the first offending field."""
        errors = jsonable_errors(exc)
        return JSONResponse(
            status_code=400,
            content={"detail": first_error_detail(errors), "errors": errors},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unhandled exceptions — always return JSON."""
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, object]]:
    """Drop the non-serialisable ``ctx`` entries pydantic attaches to value errors."""
    return [{k: v for k, v in err.items() if k != "ctx"} for err in exc.errors()]


# Request part FastAPI puts first in every ``loc``
_LOC_SOURCES = frozenset({"body", "query", "path", "header", "cookie"})


def first_error_detail(errors: list[dict[str, object]]) -> str:
    """``"<field>: <message>"`` for the first error, or just the message for model-level errors."""
    if not errors:
        return "Validation error"
    err = errors[0]
    msg = str(err.get("msg", "Invalid value")).removeprefix("Value error, ")
    loc = [str(part) for part in err.get("loc", ())]
    if loc and loc[0] in _LOC_SOURCES:
        loc = loc[1:]
    return f"{'.'.join(loc)}: {msg}" if loc else msg
