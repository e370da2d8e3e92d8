# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

from fastapi import HTTPException, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class RealtimeError(Exception):
    """Base class for errors raised by the realtime services."""

    code = "error"

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ForbiddenError(RealtimeError):
    """Action attempted without an accepted pairing."""

    code = "forbidden"


class NotFoundError(RealtimeError):
    """Referenced call, connection or message does not exist."""

    code = "not_found"


class PersistenceError(RealtimeError):
    """A store failed to read or write."""

    code = "persistence_error"


_REALTIME_STATUS = {
    ForbiddenError: status.HTTP_403_FORBIDDEN,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    PersistenceError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


async def http_exception_handler(request, exc: HTTPException):
    """HTTP exception handler"""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": getattr(exc, "error_code", None) or exc.status_code,
            "detail": exc.detail,
        },
        headers=getattr(exc, "headers", None),
    )


async def realtime_exception_handler(request, exc: RealtimeError):
    """Domain error handler"""
    status_code = _REALTIME_STATUS.get(
        type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR
    )
    return JSONResponse(
        status_code=status_code,
        content={"error_code": status_code, "detail": exc.detail},
    )


async def validation_exception_handler(request, exc: RequestValidationError):
    """Request validation exception handler"""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error_code": status.HTTP_422_UNPROCESSABLE_ENTITY,
            "detail": "Request parameter validation failed",
            "errors": exc.errors(),
        },
    )


async def python_exception_handler(request, exc: Exception):
    """Python exception handler"""
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": status.HTTP_500_INTERNAL_SERVER_ERROR,
            "detail": "Internal server error",
        },
    )
