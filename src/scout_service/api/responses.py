"""Standard response envelope and exception handlers.

Every REST response is ``{success, data | error, timestamp, requestId}`` and
uses only 200, 400, 401, 404 and 500. The single exception is the x402
payment challenge, which is answered with 402 and the protocol's own body.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from scout_service.api.middleware import REQUEST_ID_HEADER, get_request_id
from scout_service.errors import ScoutServiceError
from scout_service.payments.gate import PAYMENT_RESPONSE_HEADER
from scout_service.payments.paywall import PaymentRequiredError

logger = logging.getLogger(__name__)

VALIDATION_ERROR = "VALIDATION_ERROR"
UNAUTHORIZED = "UNAUTHORIZED"
RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
INTERNAL_ERROR = "INTERNAL_ERROR"


def _timestamp_ms() -> int:
    return int(time.time() * 1000)


def success_response(request: Request, data: Any) -> JSONResponse:
    request_id = get_request_id(request)
    headers = {REQUEST_ID_HEADER: request_id}
    receipt = getattr(request.state, "payment_receipt", None)
    if receipt:
        headers[PAYMENT_RESPONSE_HEADER] = receipt
    return JSONResponse(
        status_code=200,
        content={
            "success": True,
            "data": jsonable_encoder(data),
            "timestamp": _timestamp_ms(),
            "requestId": request_id,
        },
        headers=headers,
    )


def error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    details: Any | None = None,
) -> JSONResponse:
    request_id = get_request_id(request)
    error: dict[str, Any] = {"code": code, "message": message}
    if details is not None:
        error["details"] = jsonable_encoder(details)
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": error,
            "timestamp": _timestamp_ms(),
            "requestId": request_id,
        },
        headers={REQUEST_ID_HEADER: request_id},
    )


def install_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ScoutServiceError)
    async def _service_error(request: Request, exc: ScoutServiceError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(
                "api event=request_failed path=%s code=%s error=%s",
                request.url.path,
                exc.code,
                exc.message,
            )
        return error_response(
            request,
            status_code=exc.status_code,
            code=exc.code,
            message=exc.message,
            details=exc.details,
        )

    @app.exception_handler(PaymentRequiredError)
    async def _payment_required(request: Request, exc: PaymentRequiredError) -> JSONResponse:
        return JSONResponse(
            status_code=402,
            content=exc.challenge,
            headers={REQUEST_ID_HEADER: get_request_id(request)},
        )

    @app.exception_handler(RequestValidationError)
    async def _request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
        issues = [
            {
                "field": ".".join(str(part) for part in error.get("loc", ())),
                "message": error.get("msg"),
            }
            for error in exc.errors()
        ]
        return error_response(
            request,
            status_code=400,
            code=VALIDATION_ERROR,
            message="Invalid request",
            details=issues,
        )

    @app.exception_handler(StarletteHTTPException)
    async def _http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == 404:
            status_code, code = 404, RESOURCE_NOT_FOUND
        elif exc.status_code == 401:
            status_code, code = 401, UNAUTHORIZED
        elif exc.status_code < 500:
            status_code, code = 400, VALIDATION_ERROR
        else:
            status_code, code = 500, INTERNAL_ERROR
        return error_response(
            request,
            status_code=status_code,
            code=code,
            message=str(exc.detail),
        )

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("api event=unhandled_error path=%s", request.url.path)
        return error_response(
            request,
            status_code=500,
            code=INTERNAL_ERROR,
            message="Internal server error",
        )
