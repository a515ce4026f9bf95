"""Scriptable doubles for the browser provider, HTTP transport and Solana RPC."""

from __future__ import annotations

import json
import threading
from typing import Any, Callable

from solders.hash import Hash
from solders.pubkey import Pubkey

from scout_service.browser.client import (
    BrowserSession,
    BrowserSessionDetail,
    BrowserTask,
    BrowserTaskDetail,
    BrowserTaskStep,
)
from scout_service.config.settings import Settings
from scout_service.errors import UpstreamError
from scout_service.http import HttpRequest, HttpResponse

WALLET = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"
VAULT_ADDRESS = "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM"


def make_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "env": "PREVIEW",
        "payment_required": False,
        "vault_address": VAULT_ADDRESS,
        "vault_private_key": "",
        "browser_use_api_key": "bu-test-key",
        "openai_api_key": "",
        "api_base_url": "http://scout.test",
        "solana_rpc_url": "http://rpc.test",
    }
    values.update(overrides)
    return Settings(**values)


class FakeBrowser:
    """Scriptable stand-in for the browser-use client."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, ...]] = []
        self.session_detail: BrowserSessionDetail | Exception | None = None
        self.task_detail: BrowserTaskDetail | Exception = BrowserTaskDetail(id="task_1")
        self.create_session_error: Exception | None = None
        self.create_task_error: Exception | None = None
        self.stop_error: Exception | None = None
        self.poll_barrier: threading.Barrier | None = None
        self._sessions = 0

    def create_session(self) -> BrowserSession:
        self.calls.append(("create_session",))
        if self.create_session_error is not None:
            raise self.create_session_error
        self._sessions += 1
        session_id = f"session_{self._sessions}"
        return BrowserSession(
            id=session_id,
            live_url=f"https://live.browser-use.test/{session_id}",
            status="active",
        )

    def create_task(self, session_id: str, task: str) -> BrowserTask:
        self.calls.append(("create_task", session_id, task))
        if self.create_task_error is not None:
            raise self.create_task_error
        return BrowserTask(id="task_1", session_id=session_id, status="started")

    def get_session(self, session_id: str) -> BrowserSessionDetail:
        self.calls.append(("get_session", session_id))
        if self.poll_barrier is not None:
            self.poll_barrier.wait(timeout=5)
        if isinstance(self.session_detail, Exception):
            raise self.session_detail
        if self.session_detail is None:
            return BrowserSessionDetail(id=session_id, status="active", tasks=[])
        return self.session_detail

    def get_task(self, task_id: str) -> BrowserTaskDetail:
        self.calls.append(("get_task", task_id))
        if isinstance(self.task_detail, Exception):
            raise self.task_detail
        return self.task_detail

    def stop_session(self, session_id: str) -> None:
        self.calls.append(("stop_session", session_id))
        if self.stop_error is not None:
            raise self.stop_error

    def keep_running(self) -> None:
        self.session_detail = BrowserSessionDetail(
            id="session_1",
            status="active",
            tasks=[BrowserTask(id="task_1", status="started")],
        )

    def finish(
        self,
        *,
        output: str | None,
        status: str = "finished",
        screenshots: list[str] | None = None,
    ) -> None:
        self.session_detail = BrowserSessionDetail(
            id="session_1",
            status="stopped",
            tasks=[
                BrowserTask(
                    id="task_1",
                    status=status,
                    output=output,
                    finished_at="2025-01-01T00:05:00Z",
                )
            ],
        )
        self.task_detail = BrowserTaskDetail(
            id="task_1",
            steps=[BrowserTaskStep(screenshot_url=url) for url in (screenshots or [])],
        )

    def provider_calls(self) -> int:
        return len(self.calls)


class FakeResultProcessor:
    def __init__(self, *, reply: str | None = None, error: Exception | None = None) -> None:
        self.reply = reply
        self.error = error
        self.calls: list[tuple[str, str]] = []

    def process(self, raw_output: str, result_action: str) -> str:
        self.calls.append((raw_output, result_action))
        if self.error is not None:
            raise self.error
        return self.reply if self.reply is not None else raw_output


class FakeTransport:
    """Records outbound requests and answers them from a handler."""

    def __init__(self, handler: Callable[[HttpRequest], HttpResponse] | None = None) -> None:
        self.requests: list[HttpRequest] = []
        self.handler = handler or (lambda _request: json_response(200, {}))

    def __call__(self, request: HttpRequest) -> HttpResponse:
        self.requests.append(request)
        return self.handler(request)


class FakeRpc:
    def __init__(self, *, decimals: int = 6) -> None:
        self.decimals = decimals

    def latest_blockhash(self) -> Hash:
        return Hash.default()

    def mint_decimals(self, mint: Pubkey) -> int:
        return self.decimals


def json_response(
    status: int,
    payload: Any,
    headers: dict[str, str] | None = None,
) -> HttpResponse:
    return HttpResponse(status=status, headers=headers or {}, body=json.dumps(payload))


def upstream_down() -> UpstreamError:
    return UpstreamError("Upstream request failed: connection refused")

