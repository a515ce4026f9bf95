"""Server-side x402 paywall for paid routes, settled through a facilitator."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import Request

from scout_service.config.settings import Settings
from scout_service.errors import ConfigurationError, PaymentError
from scout_service.http import HttpRequest, Transport
from scout_service.payments.gate import (
    EXACT_SCHEME,
    PAYMENT_HEADER,
    X402_VERSION,
    decode_payment_header,
    encode_payment_header,
)

logger = logging.getLogger(__name__)


class PaymentRequiredError(Exception):
    """Raised to answer a request with the x402 challenge (HTTP 402)."""

    def __init__(self, challenge: dict[str, Any]) -> None:
        super().__init__(challenge.get("error") or "Payment required")
        self.challenge = challenge


class Paywall:
    def __init__(self, *, settings: Settings, transport: Transport) -> None:
        self.settings = settings
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return self.settings.payment_required

    def requirement(self, *, resource: str, description: str) -> dict[str, Any]:
        pay_to = self.settings.resolved_vault_address()
        if not pay_to:
            raise ConfigurationError(
                "PROJECT_VAULT_ADDRESS not configured - cannot accept payments"
            )
        extra: dict[str, Any] = {}
        if self.settings.payment_fee_payer:
            extra["feePayer"] = self.settings.payment_fee_payer
        return {
            "scheme": EXACT_SCHEME,
            "network": self.settings.payment_network(),
            "maxAmountRequired": str(self.settings.payment_amount),
            "resource": resource,
            "description": description,
            "mimeType": "application/json",
            "payTo": pay_to,
            "maxTimeoutSeconds": self.settings.payment_max_timeout_s,
            "asset": self.settings.resolved_payment_mint(),
            "extra": extra,
        }

    def challenge(self, requirement: dict[str, Any], error: str) -> dict[str, Any]:
        return {"x402Version": X402_VERSION, "error": error, "accepts": [requirement]}

    def settle(self, header_value: str, requirement: dict[str, Any]) -> dict[str, Any]:
        """Settle a payment proof; returns the receipt for ``X-PAYMENT-RESPONSE``."""
        try:
            payment_payload = decode_payment_header(header_value)
        except PaymentError:
            raise PaymentRequiredError(
                self.challenge(requirement, "Invalid X-PAYMENT header")
            ) from None

        url = f"{self.settings.payment_facilitator_url.rstrip('/')}/settle"
        response = self._transport(
            HttpRequest(
                method="POST",
                url=url,
                json_body={
                    "x402Version": X402_VERSION,
                    "paymentPayload": payment_payload,
                    "paymentRequirements": requirement,
                },
            )
        )
        if response.status >= 500:
            logger.warning("paywall event=facilitator_failed status=%s", response.status)
            raise PaymentError(f"Payment facilitator failed with status {response.status}")

        body = response.json()
        if not response.ok or not isinstance(body, dict) or not body.get("success"):
            reason = "Payment settlement rejected"
            if isinstance(body, dict):
                reason = str(body.get("errorReason") or body.get("error") or reason)
            logger.info("paywall event=settlement_rejected reason=%s", reason)
            raise PaymentRequiredError(self.challenge(requirement, reason))

        logger.info(
            "paywall event=settled network=%s payer=%s transaction=%s",
            body.get("network"),
            body.get("payer"),
            body.get("transaction"),
        )
        return body


def require_payment(request: Request) -> None:
    """Settle payment for a paid route; call after the request has been validated."""
    paywall: Paywall = request.app.state.paywall
    if not paywall.enabled:
        return

    requirement = paywall.requirement(
        resource=str(request.url),
        description=f"{request.method} {request.url.path}",
    )
    header_value = request.headers.get(PAYMENT_HEADER)
    if not header_value:
        raise PaymentRequiredError(
            paywall.challenge(requirement, f"{PAYMENT_HEADER} header is required")
        )

    receipt = paywall.settle(header_value, requirement)
    request.state.payment_receipt = encode_payment_header(receipt)
