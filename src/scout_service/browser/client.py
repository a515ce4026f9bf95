"""Client for the browser-use v2 REST API (sessions and tasks)."""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from scout_service.errors import ConfigurationError, UpstreamError
from scout_service.http import HttpRequest, HttpResponse, Transport

logger = logging.getLogger(__name__)

FAILED_TASK_STATUSES = frozenset({"failed", "error"})


class ProviderModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class BrowserSession(ProviderModel):
    id: str
    live_url: str = Field(default="", alias="liveUrl")
    status: str = ""


class BrowserTask(ProviderModel):
    id: str
    session_id: str = Field(default="", alias="sessionId")
    status: str = ""
    output: str | None = None
    finished_at: str | None = Field(default=None, alias="finishedAt")

    @property
    def is_finished(self) -> bool:
        return bool(self.finished_at)

    @property
    def succeeded(self) -> bool:
        return self.status.lower() not in FAILED_TASK_STATUSES


class BrowserSessionDetail(ProviderModel):
    id: str
    status: str = ""
    tasks: list[BrowserTask] = Field(default_factory=list)

    def first_task(self) -> BrowserTask | None:
        return self.tasks[0] if self.tasks else None


class BrowserTaskStep(ProviderModel):
    screenshot_url: str | None = Field(default=None, alias="screenshotUrl")


class BrowserTaskDetail(ProviderModel):
    id: str
    steps: list[BrowserTaskStep] = Field(default_factory=list)

    def screenshots(self) -> list[str]:
        return [step.screenshot_url for step in self.steps if step.screenshot_url]


class BrowserSessionClient:
    """Wraps session/task creation and status/detail retrieval."""

    def __init__(self, *, api_key: str, base_url: str, transport: Transport) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._transport = transport

    def create_session(self) -> BrowserSession:
        payload = self._call("POST", "/sessions", body={}, action="create_session")
        return _parse(BrowserSession, payload, action="create_session")

    def create_task(self, session_id: str, task: str) -> BrowserTask:
        payload = self._call(
            "POST",
            "/tasks",
            body={"sessionId": session_id, "task": task},
            action="create_task",
        )
        return _parse(BrowserTask, payload, action="create_task")

    def get_session(self, session_id: str) -> BrowserSessionDetail:
        payload = self._call("GET", f"/sessions/{session_id}", action="get_session")
        return _parse(BrowserSessionDetail, payload, action="get_session")

    def get_task(self, task_id: str) -> BrowserTaskDetail:
        payload = self._call("GET", f"/tasks/{task_id}", action="get_task")
        return _parse(BrowserTaskDetail, payload, action="get_task")

    def stop_session(self, session_id: str) -> None:
        self._call(
            "PATCH",
            f"/sessions/{session_id}",
            body={"action": "stop"},
            action="stop_session",
        )

    def _call(
        self,
        method: str,
        path: str,
        *,
        action: str,
        body: dict[str, Any] | None = None,
    ) -> Any:
        if not self.api_key:
            raise ConfigurationError("BROWSER_USE_API_KEY is not configured")

        response: HttpResponse = self._transport(
            HttpRequest(
                method=method,
                url=f"{self.base_url}{path}",
                headers={"X-Browser-Use-API-Key": self.api_key},
                json_body=body,
            )
        )
        if not response.ok:
            logger.warning(
                "browser_use event=request_failed action=%s status=%s body=%s",
                action,
                response.status,
                response.body[:400],
            )
            raise UpstreamError(
                f"Browser provider {action} failed with status {response.status}"
            )
        return response.json()


def _parse(model: type[ProviderModel], payload: Any, *, action: str) -> Any:
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise UpstreamError(f"Browser provider {action} returned an unexpected payload") from exc
