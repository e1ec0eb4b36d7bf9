# manion/errors.py
from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

log = logging.getLogger(__name__)


class ApiError(HTTPException):
    status = 500
    default_message = "Internal server error"

    def __init__(self, message: str = "") -> None:
        super().__init__(status_code=self.status, detail=message or self.default_message)


class ValidationError(ApiError):
    status = 400
    default_message = "Invalid request"


class AuthRequired(ApiError):
    status = 401
    default_message = "Authentication required"


class AuthForbidden(ApiError):
    status = 403
    default_message = "Forbidden"


class NotFound(ApiError):
    status = 404
    default_message = "Not found"


class UpstreamFailure(ApiError):
    status = 500
    default_message = "Internal server error"


class UpstreamError(Exception):
    """Supabase(Auth/Storage) 호출 실패. status는 업스트림 HTTP 상태(없으면 None)."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status


def _first_validation_message(exc: RequestValidationError) -> str:
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path"))
        msg = str(err.get("msg", "invalid value"))
        # pydantic: "Value error, title is required" → "title is required"
        msg = msg.removeprefix("Value error, ")
        return f"{loc}: {msg}" if loc else msg
    return "Invalid request"


def install_error_handlers(app: FastAPI) -> None:
    """모든 에러 응답을 {"error": "..."} 형태로 통일"""

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException):
        return JSONResponse({"error": str(exc.detail)}, status_code=exc.status_code, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse({"error": _first_validation_message(exc)}, status_code=400)

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception):
        log.exception("unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse({"error": "Internal server error"}, status_code=500)
