# Copyright (C) 2024 Skyrden Portal Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Portal error taxonomy and the FastAPI handlers that render it as JSON."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class PortalError(Exception):
    """Base exception for errors returned to the client as structured JSON."""

    status_code = 500
    error_code = "INTERNAL_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class AuthenticationRequired(PortalError):
    status_code = 401
    error_code = "AUTHENTICATION_REQUIRED"

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)


class AuthorizationDenied(PortalError):
    status_code = 403
    error_code = "ADMIN_REQUIRED"

    def __init__(self, message: str = "Admin access required"):
        super().__init__(message)


class ValidationError(PortalError):
    status_code = 400
    error_code = "VALIDATION_ERROR"


class NotFound(PortalError):
    status_code = 404
    error_code = "NOT_FOUND"


class Conflict(PortalError):
    status_code = 409
    error_code = "CONFLICT"


class UpstreamProviderError(PortalError):
    """OAuth exchange or Discord delivery failed."""

    status_code = 502
    error_code = "UPSTREAM_ERROR"


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(PortalError)
    async def portal_error_handler(request: Request, exc: PortalError):
        if exc.status_code >= 500:
            logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, "error": exc.error_code},
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        problems = []
        for err in exc.errors():
            loc = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
            problems.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
        return JSONResponse(
            status_code=ValidationError.status_code,
            content={"detail": "; ".join(problems), "error": ValidationError.error_code},
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})
