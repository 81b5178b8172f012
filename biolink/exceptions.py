"""Domain errors and their HTTP mapping.

A resolution miss is never an exception: resolvers return ``None`` and the
caller falls through to the next route handler. Only genuine failures live here.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

__all__ = ["InvalidIdentifierError", "ConflictError", "add_exception_handlers"]

logger = logging.getLogger("biolink")


class InvalidIdentifierError(ValueError):
    """An identifier or username failed sanitization or validation."""


class ConflictError(ValueError):
    """A unique column rejected a write."""

    def __init__(self, field: str, value: str | None = None):
        self.field = field
        self.value = value
        if value is None:
            message = f"{field} is already taken"
        else:
            message = f"{field} '{value}' is already taken"
        super().__init__(message)


def add_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(InvalidIdentifierError)
    async def invalid_identifier_handler(request: Request, exc: InvalidIdentifierError):
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})

    @app.exception_handler(ConflictError)
    async def conflict_handler(request: Request, exc: ConflictError):
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={"detail": str(exc), "field": exc.field},
        )

    @app.exception_handler(SQLAlchemyError)
    async def store_error_handler(request: Request, exc: SQLAlchemyError):
        logger.exception(f"Store failure on {request.method} {request.url.path}: {exc}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error"},
        )
