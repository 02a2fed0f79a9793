from typing import Dict, Optional

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from gitgate.core.exceptions import BaseAPIException, ErrorResponse
from gitgate.infrastructure.logging import get_logger
from gitgate.infrastructure.middleware.correlation import get_correlation_id

logger = get_logger(__name__)

STATUS_CODES = {
    400: "GGT-400",
    401: "GGT-401",
    403: "GGT-403",
    404: "GGT-404",
    405: "GGT-405",
    409: "GGT-409",
    413: "GGT-413",
    500: "GGT-500",
}


def _response_headers(
    correlation_id: Optional[str], extra: Optional[Dict[str, str]] = None
) -> Dict[str, str]:
    headers = dict(extra or {})
    if correlation_id:
        headers["X-Correlation-ID"] = correlation_id
    return headers


async def base_api_exception_handler(
    request: Request, exc: BaseAPIException
) -> JSONResponse:
    correlation_id = get_correlation_id()

    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "api_exception",
        code=exc.code,
        message=exc.message,
        status_code=exc.status_code,
        details=exc.details,
        correlation_id=correlation_id,
        path=request.url.path,
    )

    error_response = exc.to_error_response(correlation_id=correlation_id)

    return JSONResponse(
        status_code=exc.status_code,
        content=error_response.model_dump(exclude_none=True),
        headers=_response_headers(correlation_id, exc.headers),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    correlation_id = get_correlation_id()

    errors = [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]

    logger.warning(
        "validation_error",
        errors=errors,
        correlation_id=correlation_id,
        path=request.url.path,
    )

    error_response = ErrorResponse(
        code="GGT-400",
        message="Request validation failed",
        details={"errors": errors},
        correlation_id=correlation_id,
    )

    return JSONResponse(
        status_code=400,
        content=error_response.model_dump(exclude_none=True),
        headers=_response_headers(correlation_id),
    )


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    correlation_id = get_correlation_id()

    logger.warning(
        "http_exception",
        status_code=exc.status_code,
        detail=exc.detail,
        correlation_id=correlation_id,
        path=request.url.path,
    )

    error_response = ErrorResponse(
        code=STATUS_CODES.get(exc.status_code, "GGT-500"),
        message=str(exc.detail),
        correlation_id=correlation_id,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=error_response.model_dump(exclude_none=True),
        headers=_response_headers(correlation_id, getattr(exc, "headers", None)),
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    correlation_id = get_correlation_id()

    logger.error(
        "unhandled_exception",
        error=str(exc),
        error_type=type(exc).__name__,
        correlation_id=correlation_id,
        path=request.url.path,
        exc_info=True,
    )

    settings = getattr(request.app.state, "settings", None)
    error_response = ErrorResponse(
        code="GGT-500",
        message="An unexpected error occurred",
        details=(
            {"error_type": type(exc).__name__}
            if settings is not None and not settings.is_production
            else None
        ),
        correlation_id=correlation_id,
    )

    return JSONResponse(
        status_code=500,
        content=error_response.model_dump(exclude_none=True),
        headers=_response_headers(correlation_id),
    )
