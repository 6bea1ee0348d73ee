"""Global exception handling."""

import structlog
from fastapi import Request
from fastapi.responses import JSONResponse

from src.domains.aml.errors import IsolationError

logger = structlog.get_logger()


async def isolation_exception_handler(request: Request, exc: IsolationError) -> JSONResponse:
    request_id = getattr(request.state, "request_id", "unknown")
    logger.warning(
        "isolation_denied",
        request_id=request_id,
        entity_id=exc.entity_id,
        reason=exc.reason,
    )
    return JSONResponse(
        status_code=403,
        content={
            "error": "isolation_failed",
            "message": "Transaction isolation could not be enforced",
            "request_id": request_id,
        },
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    request_id = getattr(request.state, "request_id", "unknown")

    if isinstance(exc, ValueError):
        logger.warning("bad_request", request_id=request_id, error=str(exc))
        return JSONResponse(
            status_code=400,
            content={"error": "bad_request", "message": str(exc), "request_id": request_id},
        )

    logger.exception("unhandled_exception", request_id=request_id, error=str(exc))
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": "An unexpected error occurred",
            "request_id": request_id,
        },
    )
