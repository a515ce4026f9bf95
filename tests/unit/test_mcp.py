from __future__ import annotations

import base64
import json
from typing import Any

import pytest
from fastapi.testclient import TestClient
from solders.keypair import Keypair

from scout_service.api.main import create_app
from scout_service.errors import ConfigurationError, UpstreamError, ValidationError
from scout_service.http import HttpRequest, HttpResponse
from scout_service.mcp.client import ScoutApiClient
from scout_service.mcp.server import McpMethod, McpParams, McpRequest, McpServer
from scout_service.payments import PaymentGate, VaultWallet
from scout_service.storage.memory import InMemoryScoutStorage
from tests.unit.fakes import (
    WALLET,
    FakeBrowser,
    FakeRpc,
    FakeTransport,
    json_response,
    make_settings,
)


def _token(wallet: str = WALLET) -> str:
    claims = json.dumps({"custom:walletAddress": wallet}).encode("utf-8")
    return "e30." + base64.urlsafe_b64encode(claims).decode("ascii").rstrip("=") + ".sig"


class FakeScoutApi:
    def __init__(self, *, error: Exception | None = None) -> None:
        self.error = error
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def create_scout(self, **kwargs: Any) -> Any:
        self.calls.append(("create_scout", kwargs))
        if self.error is not None:
            raise self.error
        return {"success": True, "data": {"scoutId": "scout_1", "status": "pending"}}

    def get_scout_status(self, **kwargs: Any) -> Any:
        self.calls.append(("get_scout_status", kwargs))
        if self.error is not None:
            raise self.error
        return {"success": True, "data": {"scoutId": kwargs["scout_id"], "status": "running"}}


def _text(result: dict) -> Any:
    return json.loads(result["content"][0]["text"])


def test_list_tools_advertises_both_tools() -> None:
    result = McpServer(FakeScoutApi()).handle(McpRequest(method=McpMethod.TOOLS_LIST))

    names = [tool["name"] for tool in result["tools"]]
    assert names == ["create_scout", "get_scout_status"]
    assert "$0.15 USDC" in result["tools"][0]["description"]
    assert result["tools"][1]["inputSchema"]["required"] == ["scoutId", "authToken"]


def test_create_scout_uses_wallet_from_token() -> None:
    api = FakeScoutApi()
    server = McpServer(api)

    result = server.call_tool(
        "create_scout",
        {"name": "BTC", "instructions": "check price", "authToken": _token()},
    )

    assert "isError" not in result
    assert _text(result)["data"]["scoutId"] == "scout_1"
    _, kwargs = api.calls[0]
    assert kwargs["wallet_address"] == WALLET
    assert kwargs["result_action"] is None


def test_get_scout_status_passes_scout_id() -> None:
    api = FakeScoutApi()

    result = McpServer(api).call_tool("get_scout_status", {"scoutId": "scout_9", "authToken": "t"})

    assert _text(result)["data"]["status"] == "running"
    assert api.calls[0][1] == {"scout_id": "scout_9", "auth_token": "t"}


def test_unknown_tool_is_error_result() -> None:
    result = McpServer(FakeScoutApi()).call_tool("delete_everything", {})

    assert result["isError"] is True
    assert _text(result)["error"] == "Unknown tool: delete_everything"


def test_invalid_arguments_are_error_result() -> None:
    api = FakeScoutApi()

    result = McpServer(api).call_tool("create_scout", {"name": "", "authToken": _token()})

    assert result["isError"] is True
    message = _text(result)["error"]
    assert message.startswith("Invalid arguments:")
    assert "instructions" in message
    assert api.calls == []


def test_tool_failures_are_error_results() -> None:
    api = FakeScoutApi(error=ConfigurationError("PROJECT_VAULT_PRIVATE_KEY not configured"))

    result = McpServer(api).call_tool(
        "create_scout",
        {"name": "BTC", "instructions": "check", "authToken": _token()},
    )

    assert result["isError"] is True
    assert _text(result) == {
        "error": "PROJECT_VAULT_PRIVATE_KEY not configured",
        "tool": "create_scout",
    }


def test_call_without_tool_name_is_rejected() -> None:
    with pytest.raises(ValidationError):
        McpServer(FakeScoutApi()).handle(
            McpRequest(method=McpMethod.TOOLS_CALL, params=McpParams(arguments={}))
        )


def test_scout_api_client_pays_create_and_reads_status_free() -> None:
    def _handler(request: HttpRequest) -> HttpResponse:
        if request.method == "POST":
            return json_response(200, {"success": True, "data": {"scoutId": "scout_1"}})
        return json_response(200, {"success": True, "data": {"status": "completed"}})

    transport = FakeTransport(_handler)
    gate = PaymentGate(
        wallet=VaultWallet(Keypair()),
        mint="4zMMC9srt5Ri5X14GAgXhaHii3GnPAEERYPJgZJDncDU",
        rpc=FakeRpc(),
        network="solana-devnet",
        transport=transport,
    )
    client = ScoutApiClient(
        base_url="http://scout.test/",
        transport=transport,
        gate_provider=lambda: gate,
    )

    created = client.create_scout(
        name="BTC",
        instructions="check",
        result_action="email me",
        auth_token="tok",
        wallet_address=WALLET,
    )
    status = client.get_scout_status(scout_id="scout_1", auth_token="tok")

    assert created["data"]["scoutId"] == "scout_1"
    assert status["data"]["status"] == "completed"
    create_request, status_request = transport.requests
    assert create_request.url == "http://scout.test/api/scouts/create"
    assert create_request.headers["X-Wallet-Address"] == WALLET
    assert create_request.json_body["resultAction"] == "email me"
    assert status_request.url == "http://scout.test/api/scouts/scout_1/status"


def test_scout_api_client_raises_on_error_status() -> None:
    transport = FakeTransport(lambda _request: json_response(404, {"success": False}))
    client = ScoutApiClient(
        base_url="http://scout.test",
        transport=transport,
        gate_provider=lambda: pytest.fail("status lookups are never paid"),
    )

    with pytest.raises(UpstreamError, match="Failed to get scout status: 404"):
        client.get_scout_status(scout_id="scout_1", auth_token="tok")


def _mcp_client(api: FakeScoutApi) -> TestClient:
    app = create_app(
        storage=InMemoryScoutStorage(),
        settings_override=make_settings(),
        transport=FakeTransport(),
        browser=FakeBrowser(),
        scout_api=api,
    )
    return TestClient(app)


def test_mcp_route_lists_tools() -> None:
    response = _mcp_client(FakeScoutApi()).post("/api/mcp", json={"method": "tools/list"})

    assert response.status_code == 200
    assert len(response.json()["data"]["tools"]) == 2


def test_mcp_route_maps_tool_error_to_internal_error() -> None:
    response = _mcp_client(FakeScoutApi()).post(
        "/api/mcp",
        json={"method": "tools/call", "params": {"name": "nope", "arguments": {}}},
    )

    assert response.status_code == 500
    error = response.json()["error"]
    assert error["code"] == "INTERNAL_ERROR"
    assert "Unknown tool: nope" in error["message"]


def test_mcp_route_rejects_unknown_method() -> None:
    response = _mcp_client(FakeScoutApi()).post("/api/mcp", json={"method": "resources/list"})

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_scout_api_client_escapes_scout_id_in_path() -> None:
    transport = FakeTransport(lambda _request: json_response(200, {"success": True}))
    client = ScoutApiClient(
        base_url="http://scout.test",
        transport=transport,
        gate_provider=lambda: pytest.fail("status lookups are never paid"),
    )

    client.get_scout_status(scout_id="../../mcp", auth_token="tok")

    assert transport.requests[0].url == "http://scout.test/api/scouts/..%2F..%2Fmcp/status"
