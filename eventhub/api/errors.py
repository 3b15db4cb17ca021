import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from eventhub.services.error_codes import ErrorCode
from eventhub.services.exceptions import (
    ForbiddenError,
    MembershipError,
    NotFoundError,
    ServiceError,
    ValidationError,
)

logger = structlog.get_logger(__name__)


def http_error_from_service(err: ServiceError) -> HTTPException:
    if isinstance(err, NotFoundError):
        status = 404
    elif isinstance(err, ForbiddenError):
        # Non-creators get 401, matching the public API clients already rely on.
        status = 401
    elif isinstance(err, MembershipError):
        status = 400
    elif isinstance(err, ValidationError):
        status = 422
    else:
        status = 500

    if status == 500:
        return HTTPException(
            status_code=status,
            detail={"code": ErrorCode.SERVER_ERROR.value, "message": "Server error"},
        )
    return HTTPException(
        status_code=status,
        detail={"code": err.code, "message": err.message},
    )


async def _service_error_handler(request: Request, err: ServiceError) -> JSONResponse:
    http_err = http_error_from_service(err)
    if http_err.status_code >= 500:
        logger.error(
            "service_error",
            code=err.code,
            error=err.message,
            method=request.method,
            path=request.url.path,
            exc_info=err,
        )
    return JSONResponse(status_code=http_err.status_code, content={"detail": http_err.detail})


async def _unhandled_error_handler(request: Request, err: Exception) -> JSONResponse:
    logger.error(
        "unhandled_error",
        method=request.method,
        path=request.url.path,
        exc_info=err,
    )
    return JSONResponse(
        status_code=500,
        content={"detail": {"code": ErrorCode.SERVER_ERROR.value, "message": "Server error"}},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, _service_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
