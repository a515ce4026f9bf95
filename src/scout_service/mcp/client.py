"""Calls this service's own REST API on behalf of tool-protocol callers."""

from __future__ import annotations

import logging
from typing import Any, Callable
from urllib import parse

from scout_service.errors import UpstreamError
from scout_service.http import HttpRequest, HttpResponse, Transport
from scout_service.payments.gate import PaymentGate

logger = logging.getLogger(__name__)


class ScoutApiClient:
    def __init__(
        self,
        *,
        base_url: str,
        transport: Transport,
        gate_provider: Callable[[], PaymentGate],
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._transport = transport
        self._gate_provider = gate_provider

    def create_scout(
        self,
        *,
        name: str,
        instructions: str,
        result_action: str | None,
        auth_token: str,
        wallet_address: str,
    ) -> Any:
        body: dict[str, Any] = {"name": name, "instructions": instructions}
        if result_action:
            body["resultAction"] = result_action
        paid = self._gate_provider().send(
            HttpRequest(
                method="POST",
                url=f"{self.base_url}/api/scouts/create",
                headers={
                    "Authorization": f"Bearer {auth_token}",
                    "X-Wallet-Address": wallet_address,
                },
                json_body=body,
            )
        )
        if paid.receipt:
            logger.info(
                "scout_api event=create_paid transaction=%s",
                paid.receipt.get("transaction"),
            )
        return _unwrap(paid.response, action="create scout")

    def get_scout_status(self, *, scout_id: str, auth_token: str) -> Any:
        response = self._transport(
            HttpRequest(
                method="GET",
                url=f"{self.base_url}/api/scouts/{parse.quote(scout_id, safe='')}/status",
                headers={"Authorization": f"Bearer {auth_token}"},
            )
        )
        return _unwrap(response, action="get scout status")


def _unwrap(response: HttpResponse, *, action: str) -> Any:
    if not response.ok:
        raise UpstreamError(f"Failed to {action}: {response.status} {response.body[:400]}")
    return response.json()
