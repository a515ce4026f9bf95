"""Request-id propagation for envelope correlation."""

from __future__ import annotations

import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"
MAX_REQUEST_ID_LENGTH = 64


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Reuse a well-formed incoming X-Request-ID or mint a UUID, and echo it back."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER, "")
        if not _is_valid_request_id(request_id):
            request_id = str(uuid.uuid4())

        request.state.request_id = request_id
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


def _is_valid_request_id(request_id: str) -> bool:
    if not request_id or len(request_id) > MAX_REQUEST_ID_LENGTH:
        return False
    return all(char.isalnum() or char in "-_" for char in request_id)


def get_request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if not request_id:
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
    return request_id
