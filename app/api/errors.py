import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.models.schemas import ErrorResponse
from app.services.exceptions import QueryServiceError
from app.utils.helpers import utc_timestamp

logger = logging.getLogger(__name__)


def get_request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or "unknown"


def error_response(request: Request, status_code: int, error: str, message: str, details=None, headers=None) -> JSONResponse:
    body = ErrorResponse(
        error=error,
        message=message,
        details=details or None,
        timestamp=utc_timestamp(),
        request_id=get_request_id(request),
    )
    # 500s bypass the request-id middleware, so the header is set here too
    headers = {**(headers or {}), "X-Request-ID": body.request_id}
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(exclude_none=True),
        headers=headers,
    )


async def handle_service_error(request: Request, exc: QueryServiceError):
    """Handler for the application's own error hierarchy"""
    log = logger.warning if exc.http_status < 500 else logger.error
    log(f"[{get_request_id(request)}] {exc.error}: {exc.message}")
    return error_response(request, exc.http_status, exc.error, exc.message, exc.details)


async def handle_http_error(request: Request, exc: StarletteHTTPException):
    """Handler for HTTPException (401, 404, 405, ...)"""
    logger.warning(f"[{get_request_id(request)}] HTTP {exc.status_code} on {request.url.path}: {exc.detail}")

    if exc.status_code == status.HTTP_404_NOT_FOUND:
        error = "Not Found"
    elif exc.status_code == status.HTTP_401_UNAUTHORIZED:
        error = "Authentication failed"
    else:
        error = "HTTP Error"

    return error_response(request, exc.status_code, error, str(exc.detail), headers=getattr(exc, "headers", None))


async def handle_unknown_error(request: Request, exc: Exception):
    """Handler for anything unclassified (500)"""
    logger.exception(f"[{get_request_id(request)}] Unexpected error on {request.url.path}: {type(exc).__name__}")
    return error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "Internal Server Error",
        "An unexpected error occurred",
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(QueryServiceError, handle_service_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_error)
    app.add_exception_handler(Exception, handle_unknown_error)
