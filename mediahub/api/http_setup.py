"""HTTP middleware and exception handler wiring for FastAPI apps."""

from __future__ import annotations

import uuid
from typing import Any

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from mediahub.api.contracts import ApiErrorResponse
from mediahub.api.errors import ApiErrorCode, to_error_payload
from mediahub.core.config import AppConfig
from mediahub.core.logging import set_correlation_id


def _error_response(payload: dict[str, Any]) -> JSONResponse:
    body = ApiErrorResponse(**payload).model_dump(by_alias=True)
    return JSONResponse(status_code=payload["status_code"], content=jsonable_encoder(body))


def register_http_middleware(app: FastAPI, *, config: AppConfig, logger: Any) -> None:
    """Attach common security and observability middleware to an app."""

    @app.middleware("http")
    async def request_size_limit_middleware(request: Request, call_next):
        content_length = request.headers.get("content-length")
        if content_length:
            try:
                parsed_length = int(content_length)
            except ValueError:
                parsed_length = 0
            limit = max(config.security.request_max_bytes, config.security.upload_max_bytes)
            if parsed_length > limit:
                return _error_response(
                    {
                        "status_code": 413,
                        "error_code": ApiErrorCode.REQUEST_TOO_LARGE,
                        "message": f"Request size exceeds configured limit ({limit} bytes).",
                    }
                )
        return await call_next(request)

    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next):
        correlation_id = (
            request.headers.get("x-request-id")
            or request.headers.get("x-correlation-id")
            or uuid.uuid4().hex
        )
        set_correlation_id(correlation_id)
        response = await call_next(request)
        response.headers["X-Request-ID"] = correlation_id
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        logger.info(
            "request_completed",
            extra={
                "path": request.url.path,
                "method": request.method,
                "status_code": response.status_code,
            },
        )
        return response


def register_exception_handlers(app: FastAPI, *, logger: Any) -> None:
    """Map every failure onto the error envelope at a single boundary."""

    # Starlette raises its own HTTPException for unmatched routes and methods.
    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        logger.warning(
            "http_exception",
            extra={
                "path": request.url.path,
                "method": request.method,
                "status_code": exc.status_code,
            },
        )
        response = _error_response(to_error_payload(exc.detail, exc.status_code))
        if exc.headers:
            response.headers.update(exc.headers)
        return response

    @app.exception_handler(RequestValidationError)
    async def handle_validation_exception(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        logger.warning(
            "validation_exception",
            extra={
                "path": request.url.path,
                "method": request.method,
                "status_code": 400,
            },
        )
        errors = [
            {
                "field": ".".join(str(part) for part in error.get("loc", ())),
                "message": str(error.get("msg", "")),
            }
            for error in exc.errors()
        ]
        return _error_response(
            {
                "status_code": 400,
                "error_code": ApiErrorCode.VALIDATION_ERROR,
                "message": "Request validation failed",
                "errors": errors,
            }
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_exception(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        logger.exception(
            "unexpected_exception",
            extra={
                "path": request.url.path,
                "method": request.method,
                "status_code": 500,
            },
        )
        return _error_response(
            {
                "status_code": 500,
                "error_code": ApiErrorCode.INTERNAL_SERVER_ERROR,
                "message": "Internal server error",
            }
        )
