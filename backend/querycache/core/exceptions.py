"""Engine error taxonomy and FastAPI exception handlers."""

from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from loguru import logger


class SearchEngineError(Exception):
    """Base error carrying a stable kind identifier.

    The request-handling layer maps ``kind`` (and ``status_code``) to a
    response without inspecting the message text.
    """

    kind = "engine_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.kind

    def to_dict(self) -> dict:
        return {"kind": self.kind, "code": self.code, "message": self.message}


class InvalidArgument(SearchEngineError):
    """Caller input problem: empty query, malformed filters, bad range."""

    kind = "invalid_argument"
    status_code = status.HTTP_400_BAD_REQUEST


class NotFound(SearchEngineError):
    """Item absent, or not owned by the requester."""

    kind = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class UpstreamError(SearchEngineError):
    """Provider call failed or timed out."""

    kind = "upstream_error"
    status_code = status.HTTP_502_BAD_GATEWAY


class StoreUnavailable(SearchEngineError):
    """Cache or ledger backing store is unreachable."""

    kind = "store_unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


async def engine_error_handler(request: Request, exc: SearchEngineError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{exc.kind} on {request.url.path}: {exc.message}")
    else:
        logger.info(f"{exc.kind} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the engine error handler to the application."""
    app.add_exception_handler(SearchEngineError, engine_error_handler)
