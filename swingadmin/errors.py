"""Error type and response rendering for the JSON API."""

from __future__ import annotations

from typing import Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException


class ApiError(Exception):
    """An API failure carrying the HTTP status and the message shown to the caller."""

    def __init__(
        self,
        status_code: int,
        message: str,
        *,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.headers = headers


def error_response(
    status_code: int, message: str, *, headers: Optional[Dict[str, str]] = None
) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message}, headers=headers)


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return error_response(exc.status_code, exc.message, headers=exc.headers)


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render routing failures (unknown path, unmatched method) in the API error shape."""
    return error_response(exc.status_code, str(exc.detail), headers=exc.headers)


__all__ = ["ApiError", "api_error_handler", "error_response", "http_error_handler"]
