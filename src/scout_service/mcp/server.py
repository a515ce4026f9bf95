"""Tool protocol (``tools/list``, ``tools/call``) over the scout API."""

from __future__ import annotations

import json
import logging
from enum import Enum
from typing import Any, Callable, Protocol

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as SchemaValidationError

from scout_service.api.auth import wallet_address_from_token
from scout_service.errors import ValidationError
from scout_service.mcp.catalog import TOOL_CATALOG, ToolName

logger = logging.getLogger(__name__)


class McpMethod(str, Enum):
    TOOLS_LIST = "tools/list"
    TOOLS_CALL = "tools/call"


class McpParams(BaseModel):
    name: str | None = None
    arguments: dict[str, Any] = Field(default_factory=dict)


class McpRequest(BaseModel):
    method: McpMethod
    params: McpParams | None = None


class _ToolArgs(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    auth_token: str = Field(min_length=1, alias="authToken")


class CreateScoutArgs(_ToolArgs):
    name: str = Field(min_length=1, max_length=100)
    instructions: str = Field(min_length=1)
    result_action: str | None = Field(default=None, alias="resultAction")


class GetScoutStatusArgs(_ToolArgs):
    scout_id: str = Field(min_length=1, alias="scoutId")


class ScoutApi(Protocol):
    def create_scout(
        self,
        *,
        name: str,
        instructions: str,
        result_action: str | None,
        auth_token: str,
        wallet_address: str,
    ) -> Any: ...

    def get_scout_status(self, *, scout_id: str, auth_token: str) -> Any: ...


class McpServer:
    def __init__(self, api: ScoutApi) -> None:
        self.api = api
        self._tools: dict[ToolName, Callable[[dict[str, Any]], Any]] = {
            ToolName.CREATE_SCOUT: self._create_scout,
            ToolName.GET_SCOUT_STATUS: self._get_scout_status,
        }

    def handle(self, request: McpRequest) -> dict[str, Any]:
        methods: dict[McpMethod, Callable[[McpParams], dict[str, Any]]] = {
            McpMethod.TOOLS_LIST: lambda _params: self.list_tools(),
            McpMethod.TOOLS_CALL: self._handle_call,
        }
        return methods[request.method](request.params or McpParams())

    def list_tools(self) -> dict[str, Any]:
        return {"tools": TOOL_CATALOG}

    def _handle_call(self, params: McpParams) -> dict[str, Any]:
        if not params.name:
            raise ValidationError("Tool name is required for tools/call")
        return self.call_tool(params.name, params.arguments)

    def call_tool(self, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        try:
            tool = ToolName(name)
        except ValueError:
            return self._failure(name, f"Unknown tool: {name}")

        try:
            result = self._tools[tool](arguments)
        except Exception as exc:  # noqa: BLE001
            return self._failure(name, _error_message(exc))

        logger.info("mcp event=tool_succeeded tool=%s", name)
        return _text_content(result)

    def _failure(self, name: str, message: str) -> dict[str, Any]:
        logger.warning("mcp event=tool_failed tool=%s error=%s", name, message)
        return _text_content({"error": message, "tool": name}, is_error=True)

    def _create_scout(self, arguments: dict[str, Any]) -> Any:
        args = CreateScoutArgs.model_validate(arguments)
        return self.api.create_scout(
            name=args.name,
            instructions=args.instructions,
            result_action=args.result_action,
            auth_token=args.auth_token,
            wallet_address=wallet_address_from_token(args.auth_token),
        )

    def _get_scout_status(self, arguments: dict[str, Any]) -> Any:
        args = GetScoutStatusArgs.model_validate(arguments)
        return self.api.get_scout_status(scout_id=args.scout_id, auth_token=args.auth_token)


def _error_message(exc: Exception) -> str:
    if isinstance(exc, SchemaValidationError):
        fields = ", ".join(
            ".".join(str(part) for part in error.get("loc", ())) for error in exc.errors()
        )
        return f"Invalid arguments: {fields}"
    return str(exc) or exc.__class__.__name__


def _text_content(payload: Any, *, is_error: bool = False) -> dict[str, Any]:
    result: dict[str, Any] = {
        "content": [{"type": "text", "text": json.dumps(payload, indent=2, default=str)}]
    }
    if is_error:
        result["isError"] = True
    return result
