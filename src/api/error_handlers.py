"""Error payloads and exception handlers for the API.

Every failure leaves the service as ``{"error": CODE, "message": ...}``
with an optional ``details`` object.
"""

from dataclasses import dataclass
from typing import Any

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.database.store import StoreError
from src.utils.logger import StructuredLogger

logger = StructuredLogger("ErrorHandlers")


class ErrorCode:
    UNAUTHORIZED = "UNAUTHORIZED"
    ASSET_NOT_FOUND = "ASSET_NOT_FOUND"
    NOT_FOUND = "NOT_FOUND"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# Codes for HTTPExceptions raised by the framework itself
_CODE_BY_STATUS = {
    status.HTTP_401_UNAUTHORIZED: ErrorCode.UNAUTHORIZED,
    status.HTTP_404_NOT_FOUND: ErrorCode.NOT_FOUND,
    422: ErrorCode.VALIDATION_ERROR,
}


@dataclass(frozen=True)
class ErrorResponse:
    """One API error: code, message, HTTP status and optional details."""

    error_code: str
    message: str
    status_code: int = status.HTTP_400_BAD_REQUEST
    details: dict[str, Any] | None = None
    headers: dict[str, str] | None = None

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.error_code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body

    def to_http_exception(self) -> HTTPException:
        """Raise from a route; :func:`http_exception_handler` renders it."""
        return HTTPException(self.status_code, detail=self.to_dict(), headers=self.headers)

    def to_response(self) -> JSONResponse:
        return JSONResponse(self.to_dict(), status_code=self.status_code, headers=self.headers)


def create_unauthorized_error() -> ErrorResponse:
    """Collector trigger called without a valid secret."""
    return ErrorResponse(
        ErrorCode.UNAUTHORIZED,
        "Unauthorized",
        status.HTTP_401_UNAUTHORIZED,
        headers={"WWW-Authenticate": "Bearer"},
    )


def create_asset_not_found_error(asset_id: str, message: str | None = None) -> ErrorResponse:
    return ErrorResponse(
        ErrorCode.ASSET_NOT_FOUND,
        message or f"Unknown asset: {asset_id}",
        status.HTTP_404_NOT_FOUND,
        details={"asset_id": asset_id},
    )


def create_store_error(message: str = "Market data store is unavailable") -> ErrorResponse:
    return ErrorResponse(
        ErrorCode.STORE_UNAVAILABLE, message, status.HTTP_500_INTERNAL_SERVER_ERROR
    )


def create_internal_error(message: str = "Unexpected server error") -> ErrorResponse:
    """Generic 500; the message never carries exception text."""
    return ErrorResponse(ErrorCode.INTERNAL_ERROR, message, status.HTTP_500_INTERNAL_SERVER_ERROR)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """
    Render HTTPExceptions in the API error format.

    Details built by :class:`ErrorResponse` pass through unchanged; plain
    framework errors such as unknown routes get a code from their status.
    """
    headers = getattr(exc, "headers", None)
    if isinstance(exc.detail, dict) and "error" in exc.detail:
        return JSONResponse(exc.detail, status_code=exc.status_code, headers=headers)

    return ErrorResponse(
        _CODE_BY_STATUS.get(exc.status_code, ErrorCode.INTERNAL_ERROR),
        str(exc.detail),
        exc.status_code,
        headers=headers,
    ).to_response()


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Invalid query or path parameters, keyed by dotted location."""
    problems = {".".join(map(str, err["loc"])): err["msg"] for err in exc.errors()}
    return ErrorResponse(
        ErrorCode.VALIDATION_ERROR,
        "Invalid request parameters",
        422,
        details=problems,
    ).to_response()


async def store_exception_handler(request: Request, exc: StoreError) -> JSONResponse:
    logger.error(
        "Store failure while handling request",
        context={"path": request.url.path},
        exception=exc,
    )
    return create_store_error().to_response()


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StoreError, store_exception_handler)
