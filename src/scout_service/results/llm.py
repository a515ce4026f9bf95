"""OpenAI-compatible chat-completions client with tool-call support."""

from __future__ import annotations

import logging
import time
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from scout_service.errors import ResultProcessingError, ScoutServiceError
from scout_service.http import HttpRequest, Transport

logger = logging.getLogger(__name__)


class _FunctionCall(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    arguments: str = "{}"


class ToolCall(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    type: str = "function"
    function: _FunctionCall


class AssistantMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    role: str = "assistant"
    content: str | None = None
    tool_calls: list[ToolCall] = Field(default_factory=list)

    def to_message(self) -> dict[str, Any]:
        message: dict[str, Any] = {"role": "assistant", "content": self.content}
        if self.tool_calls:
            message["tool_calls"] = [call.model_dump() for call in self.tool_calls]
        return message


class ChatCompletionsClient:
    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        base_url: str,
        transport: Transport,
        max_retries: int = 1,
        backoff_s: float = 0.2,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.max_retries = max_retries
        self.backoff_s = backoff_s
        self._transport = transport

    def complete(
        self,
        messages: list[dict[str, Any]],
        *,
        tools: list[dict[str, Any]] | None = None,
    ) -> AssistantMessage:
        if not self.api_key:
            raise ResultProcessingError("OPENAI_API_KEY is missing")

        request_body: dict[str, Any] = {"model": self.model, "messages": messages}
        if tools:
            request_body["tools"] = tools
            request_body["tool_choice"] = "auto"

        response_json = self._request_with_retry(request_body)
        return _parse_message(response_json)

    def _request_with_retry(self, request_body: dict[str, Any]) -> dict[str, Any]:
        last_error: Exception | None = None
        for attempt in range(self.max_retries + 1):
            try:
                return self._request_once(request_body)
            except ScoutServiceError as exc:
                last_error = exc
                logger.warning(
                    "result_llm event=request_failed attempt=%s error=%s",
                    attempt + 1,
                    exc,
                )
                if attempt < self.max_retries and self.backoff_s > 0:
                    time.sleep(self.backoff_s)

        if last_error is None:
            raise ResultProcessingError("LLM request failed")
        raise ResultProcessingError(str(last_error)) from last_error

    def _request_once(self, request_body: dict[str, Any]) -> dict[str, Any]:
        response = self._transport(
            HttpRequest(
                method="POST",
                url=f"{self.base_url.rstrip('/')}/chat/completions",
                headers={"Authorization": f"Bearer {self.api_key}"},
                json_body=request_body,
            )
        )
        if not response.ok:
            raise ResultProcessingError(
                f"LLM request failed with status {response.status}: {response.body[:400]}"
            )
        payload = response.json()
        if not isinstance(payload, dict):
            raise ResultProcessingError("LLM returned a non-object response")
        return payload


def _parse_message(response_json: dict[str, Any]) -> AssistantMessage:
    choices = response_json.get("choices")
    if not isinstance(choices, list) or not choices:
        raise ResultProcessingError("LLM response missing choices")

    message = choices[0].get("message") if isinstance(choices[0], dict) else None
    if not isinstance(message, dict):
        raise ResultProcessingError("LLM response missing message")

    try:
        return AssistantMessage.model_validate(
            {**message, "tool_calls": message.get("tool_calls") or []}
        )
    except ValidationError as exc:
        raise ResultProcessingError("LLM response message is malformed") from exc
