"""Response envelopes and the exception handlers that produce error envelopes.

    {"data": ...}
    {"error": {"code": "E_...", "message": "...", "request_id": "..."}}

Messages are always safe to show; provider bodies, blob keys and stack
traces stay in the logs.
"""

from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

from bananapod.errors import ApiError, ApiErrorCode
from bananapod.logging import get_logger, get_request_id
from bananapod.services.genai.errors import UpstreamError, UpstreamErrorClass
from bananapod.storage.client import StorageError

logger = get_logger(__name__)


def success_response(data: Any) -> dict[str, Any]:
    return {"data": data}


def error_response(
    code: ApiErrorCode, message: str, request_id: str | None = None
) -> dict[str, Any]:
    """Build an error envelope, stamped with the current request ID by default."""
    error = {"code": code.value, "message": message}
    request_id = request_id or get_request_id()
    if request_id:
        error["request_id"] = request_id
    return {"error": error}


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(exc.code, exc.message),
    )


def upstream_error_to_api_error(exc: UpstreamError) -> ApiError:
    """Map a classified provider failure onto the API taxonomy."""
    if exc.error_class == UpstreamErrorClass.TIMEOUT:
        return ApiError(ApiErrorCode.E_UPSTREAM_TIMEOUT, exc.message)
    return ApiError(ApiErrorCode.E_UPSTREAM_FAILURE, exc.message)


async def upstream_error_handler(request: Request, exc: UpstreamError) -> JSONResponse:
    """Handle provider failures (502/504). The gateway never retries."""
    logger.warning(
        "upstream_failure",
        error_class=exc.error_class.value,
        status_code=exc.status_code,
    )
    api_error = upstream_error_to_api_error(exc)
    return JSONResponse(
        status_code=api_error.status_code,
        content=error_response(api_error.code, api_error.message),
    )


async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    """Handle blob store failures as a generic server error."""
    logger.error("storage_failure", storage_code=exc.code, error=exc.message)
    return JSONResponse(
        status_code=500,
        content=error_response(ApiErrorCode.E_STORAGE_ERROR, "Storage error"),
    )


async def http_exception_handler(request: Request, exc: Any) -> JSONResponse:
    """Handle Starlette HTTPException (unknown routes, bad methods)."""
    status_to_code = {
        400: ApiErrorCode.E_INVALID_REQUEST,
        401: ApiErrorCode.E_UNAUTHENTICATED,
        404: ApiErrorCode.E_NOT_FOUND,
        405: ApiErrorCode.E_NOT_FOUND,
        422: ApiErrorCode.E_INVALID_REQUEST,
    }
    code = status_to_code.get(exc.status_code, ApiErrorCode.E_INTERNAL)
    message = str(exc.detail) if exc.detail else "An error occurred"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(code, message),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort handler: log the traceback, answer a bare 500."""
    logger.exception("unhandled_exception", error_type=type(exc).__name__)
    return JSONResponse(
        status_code=500,
        content=error_response(ApiErrorCode.E_INTERNAL, "Internal server error"),
    )
