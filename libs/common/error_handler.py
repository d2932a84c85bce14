"""Global exception handlers for consistent error responses."""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from libs.common.errors import ServiceError
from libs.common.logging import get_logger, get_request_id

logger = get_logger(__name__)


def _error_response(status_code: int, code: str, detail) -> JSONResponse:
    content = {"success": False, "code": code, "detail": detail}
    request_id = get_request_id()
    if request_id:
        content["request_id"] = request_id
    return JSONResponse(status_code=status_code, content=content)


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    logger.info(
        "Service error on %s %s: %s (%s)",
        request.method,
        request.url.path,
        exc.code,
        exc.detail,
    )
    return _error_response(exc.status_code, exc.code, exc.detail)


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    response = _error_response(exc.status_code, "HTTP_ERROR", exc.detail)
    if getattr(exc, "headers", None):
        response.headers.update(exc.headers)
    return response


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = [
        {"loc": list(err.get("loc", [])), "msg": err.get("msg")}
        for err in exc.errors()
    ]
    return _error_response(400, "VALIDATION_ERROR", errors)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Never leak internals to the caller
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error_response(500, "INTERNAL_ERROR", "Internal server error")


def add_exception_handlers(app: FastAPI) -> None:
    """Register the shared exception handlers on an app."""
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
