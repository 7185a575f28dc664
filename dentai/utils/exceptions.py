import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from dentai.utils.response import error_response

logger = logging.getLogger(__name__)


class AppException(Exception):
    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class InvalidInputError(AppException):
    """Malformed image or missing required field."""

    def __init__(self, message: str):
        super().__init__(message, status_code=422)


class NotFoundError(AppException):
    """A referenced record id does not exist."""

    def __init__(self, kind: str, record_id: str):
        super().__init__(f"{kind} not found: {record_id}", status_code=404)
        self.kind = kind
        self.record_id = record_id


class InvalidStateError(AppException):
    """The record's current state forbids the requested transition."""

    def __init__(self, message: str, current: str | None = None):
        super().__init__(message, status_code=409)
        self.current = current


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=error_response(exc.message),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content=error_response("Internal server error"),
        )
