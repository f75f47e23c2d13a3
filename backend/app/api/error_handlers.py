"""Error Handlers — global exception handlers for the PasaTanda API.

Invariants:
    - PasaTandaError → its own http_status and to_response() envelope
    - RequestValidationError → 400 carrying both the webhook ack shape
      ({success: false, message}) and a field-level error list
    - Exception (catch-all) → opaque 500, never leaks internal details

Design Decisions:
    - Retryable (WARNING/INFO) domain errors log at warning, the rest at error
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.core.errors import ErrorSeverity, PasaTandaError

logger = logging.getLogger(__name__)

INVALID_WEBHOOK_MESSAGE = "Missing required fields: phone and verified"


def register_error_handlers(app: FastAPI) -> None:
    """Register all global error handlers on the FastAPI app."""
    app.add_exception_handler(PasaTandaError, handle_domain_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)


async def handle_domain_error(request: Request, exc: PasaTandaError) -> JSONResponse:
    log = logger.warning if exc.retryable else logger.error
    log(
        f"{exc.code}: {exc.message}",
        extra={
            "error_code": exc.code,
            "path": request.url.path,
            "order_id": exc.context.order_id,
            "phone": exc.context.phone,
        },
    )
    return JSONResponse(status_code=exc.http_status, content=exc.to_response())


async def handle_validation_error(
    request: Request, exc: RequestValidationError,
) -> JSONResponse:
    fields = [
        {
            "field": ".".join(str(part) for part in err["loc"]),
            "message": err["msg"],
            "type": err["type"],
        }
        for err in exc.errors()
    ]
    logger.warning(
        f"Rejected request body: {[f['field'] for f in fields]}",
        extra={"path": request.url.path, "error_code": "VALIDATION_ERROR"},
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "success": False,
            "message": INVALID_WEBHOOK_MESSAGE,
            "error": {
                "code": "VALIDATION_ERROR",
                "message": "Invalid request data",
                "category": "validation",
                "severity": ErrorSeverity.ERROR.value,
                "details": fields,
            },
        },
    )


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        f"Unhandled {type(exc).__name__} on {request.url.path}",
        exc_info=exc,
        extra={"path": request.url.path},
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "Internal server error",
                "category": "internal",
                "severity": ErrorSeverity.CRITICAL.value,
            },
        },
    )
