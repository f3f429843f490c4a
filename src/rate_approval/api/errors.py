"""Exception handlers translating domain errors into the response envelope.

Every ``RateCardError`` carries its own HTTP status.  Request parsing failures
(malformed JSON, bad query parameters, invalid bodies) become 400.  Anything
else is logged and reported as a bare 500 without internals.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from rate_approval.api.envelope import fail
from rate_approval.domain.errors import (
    AlreadyProcessedError,
    RateCardError,
    RateCardValidationError,
)

logger = structlog.get_logger()


def _validation_summary(errors: list[dict[str, Any]]) -> str:
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "invalid value")
    return f"{location}: {message}" if location else message


def _jsonable_errors(errors: Any) -> list[dict[str, Any]]:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in errors
    ]


async def handle_rate_card_error(request: Request, exc: RateCardError) -> JSONResponse:
    """Translate a ``RateCardError`` into its status code and envelope."""
    extra: dict[str, Any] = {}
    if isinstance(exc, RateCardValidationError) and exc.errors:
        extra["details"] = _jsonable_errors(exc.errors)
    if isinstance(exc, AlreadyProcessedError):
        extra["currentStatus"] = str(exc.current_status)
    if exc.status_code >= 500:
        logger.error("Request failed", path=request.url.path, error=exc.message)
    else:
        logger.info(
            "Request rejected",
            path=request.url.path,
            status_code=exc.status_code,
            error=exc.message,
        )
    return JSONResponse(status_code=exc.status_code, content=fail(exc.message, **extra))


async def handle_request_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report malformed bodies and bad query parameters as 400."""
    errors = _jsonable_errors(exc.errors())
    logger.info("Request validation failed", path=request.url.path, errors=errors)
    return JSONResponse(
        status_code=400,
        content=fail(_validation_summary(errors), details=errors),
    )


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    """Log an unhandled exception and answer 500 without internals."""
    logger.exception("Unhandled error", path=request.url.path)
    return JSONResponse(status_code=500, content=fail("Internal server error"))


def register_exception_handlers(app: FastAPI) -> None:
    """Install the envelope exception handlers on *app*."""
    app.add_exception_handler(RateCardError, handle_rate_card_error)  # type: ignore[arg-type]
    app.add_exception_handler(
        RequestValidationError, handle_request_validation_error  # type: ignore[arg-type]
    )
    app.add_exception_handler(Exception, handle_unexpected_error)
