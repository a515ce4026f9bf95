"""Minimal JSON-over-HTTP transport used by every outbound client."""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from http import client
from typing import Any, Callable
from urllib import error, request

from scout_service.errors import UpstreamError, UpstreamTimeoutError


@dataclass(frozen=True)
class HttpRequest:
    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    json_body: Any | None = None

    def with_header(self, name: str, value: str) -> HttpRequest:
        headers = dict(self.headers)
        headers[name] = value
        return replace(self, headers=headers)


@dataclass(frozen=True)
class HttpResponse:
    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def header(self, name: str) -> str | None:
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None

    def json(self) -> Any:
        if not self.body:
            return {}
        try:
            return json.loads(self.body)
        except json.JSONDecodeError as exc:
            raise UpstreamError("Upstream returned a non-JSON response") from exc


# A transport performs exactly one round trip and never raises on non-2xx.
Transport = Callable[[HttpRequest], HttpResponse]


def send_request(http_request: HttpRequest, *, timeout_s: float) -> HttpResponse:
    raw_payload: bytes | None = None
    headers = {"Accept": "application/json", **http_request.headers}
    if http_request.json_body is not None:
        raw_payload = json.dumps(http_request.json_body).encode("utf-8")
        headers.setdefault("Content-Type", "application/json")

    req = request.Request(
        url=http_request.url,
        method=http_request.method,
        data=raw_payload,
        headers=headers,
    )
    try:
        with request.urlopen(req, timeout=timeout_s) as response:
            body = response.read().decode("utf-8", errors="replace")
            return HttpResponse(
                status=response.status,
                headers=dict(response.headers.items()),
                body=body,
            )
    except error.HTTPError as exc:
        try:
            body = exc.read().decode("utf-8", errors="replace")
        except (OSError, client.HTTPException):
            body = ""
        return HttpResponse(
            status=exc.code,
            headers=dict(exc.headers.items()) if exc.headers else {},
            body=body,
        )
    except error.URLError as exc:
        if isinstance(exc.reason, TimeoutError):
            raise _timed_out(timeout_s) from exc
        raise UpstreamError(f"Upstream request failed: {exc.reason}") from exc
    except TimeoutError as exc:
        raise _timed_out(timeout_s) from exc
    # Dropped connections and truncated bodies escape urlopen unwrapped.
    except (OSError, client.HTTPException) as exc:
        raise UpstreamError(f"Upstream connection failed: {exc!r}") from exc


def _timed_out(timeout_s: float) -> UpstreamTimeoutError:
    return UpstreamTimeoutError(f"Upstream request timed out after {timeout_s:g}s")


def build_transport(*, timeout_s: float) -> Transport:
    def _transport(http_request: HttpRequest) -> HttpResponse:
        return send_request(http_request, timeout_s=timeout_s)

    return _transport
