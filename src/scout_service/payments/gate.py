"""Client-side x402 payment gate: pay a 402 challenge and retry once."""

from __future__ import annotations

import base64
import json
import logging
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from solders.pubkey import Pubkey

from scout_service.errors import PaymentError, ScoutServiceError
from scout_service.http import HttpRequest, HttpResponse, Transport
from scout_service.payments.solana import SolanaRpc, build_transfer_transaction
from scout_service.payments.wallets import Wallet

logger = logging.getLogger(__name__)

X402_VERSION = 1
EXACT_SCHEME = "exact"
PAYMENT_HEADER = "X-PAYMENT"
PAYMENT_RESPONSE_HEADER = "X-PAYMENT-RESPONSE"


class PaymentRequirement(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    scheme: str
    network: str
    max_amount_required: str = Field(alias="maxAmountRequired")
    resource: str = ""
    description: str = ""
    mime_type: str = Field(default="application/json", alias="mimeType")
    pay_to: str = Field(alias="payTo")
    max_timeout_seconds: int = Field(default=60, alias="maxTimeoutSeconds")
    asset: str
    extra: dict[str, Any] | None = None

    def fee_payer(self) -> str | None:
        if not self.extra:
            return None
        value = self.extra.get("feePayer")
        return str(value) if value else None


class PaymentChallenge(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    x402_version: int = Field(default=X402_VERSION, alias="x402Version")
    error: str | None = None
    accepts: list[PaymentRequirement] = Field(default_factory=list)


@dataclass(frozen=True)
class PaidResponse:
    """Outcome of a gated call; ``receipt`` is set only when a payment was made."""

    response: HttpResponse
    receipt: dict[str, Any] | None = None


def encode_payment_header(payload: dict[str, Any]) -> str:
    return base64.b64encode(json.dumps(payload).encode("utf-8")).decode("ascii")


def decode_payment_header(value: str) -> dict[str, Any]:
    try:
        decoded = json.loads(base64.b64decode(value, validate=True).decode("utf-8"))
    except (ValueError, UnicodeDecodeError) as exc:
        raise PaymentError("Payment header is not valid base64 JSON") from exc
    if not isinstance(decoded, dict):
        raise PaymentError("Payment header must decode to a JSON object")
    return decoded


class PaymentGate:
    """Wraps a transport so x402-protected endpoints are paid transparently."""

    def __init__(
        self,
        *,
        wallet: Wallet,
        mint: str,
        rpc: SolanaRpc,
        network: str,
        transport: Transport,
    ) -> None:
        self.wallet = wallet
        self.mint = mint
        self.network = network
        self._rpc = rpc
        self._transport = transport

    def send(self, http_request: HttpRequest) -> PaidResponse:
        response = self._transport(http_request)
        if response.status != 402:
            return PaidResponse(response=response)

        requirement = self.select_requirement(self._parse_challenge(response))
        logger.info(
            "payment_gate event=paying url=%s network=%s amount=%s pay_to=%s",
            http_request.url,
            requirement.network,
            requirement.max_amount_required,
            requirement.pay_to,
        )
        header = encode_payment_header(self.build_payment(requirement))

        paid = self._transport(http_request.with_header(PAYMENT_HEADER, header))
        if paid.status == 402:
            logger.warning("payment_gate event=payment_rejected url=%s", http_request.url)
            raise PaymentError("Payment was not accepted by the server", details=_reason(paid))

        return PaidResponse(response=paid, receipt=_receipt(paid, url=http_request.url))

    def select_requirement(self, challenge: PaymentChallenge) -> PaymentRequirement:
        for requirement in challenge.accepts:
            if (
                requirement.scheme == EXACT_SCHEME
                and requirement.network == self.network
                and requirement.asset == self.mint
            ):
                return requirement
        raise PaymentError(
            "No acceptable payment requirement in challenge",
            details={"network": self.network, "asset": self.mint},
        )

    def build_payment(self, requirement: PaymentRequirement) -> dict[str, Any]:
        try:
            amount = int(requirement.max_amount_required)
            fee_payer = requirement.fee_payer()
            unsigned = build_transfer_transaction(
                rpc=self._rpc,
                owner=self.wallet.public_key,
                pay_to=Pubkey.from_string(requirement.pay_to),
                mint=Pubkey.from_string(requirement.asset),
                amount=amount,
                fee_payer=Pubkey.from_string(fee_payer) if fee_payer else None,
            )
        except PaymentError:
            raise
        except ScoutServiceError as exc:
            raise PaymentError(f"Could not build payment: {exc.message}") from exc
        except ValueError as exc:
            raise PaymentError("Payment requirement is malformed") from exc

        # External signers are arbitrary callbacks; any failure there means unpaid.
        try:
            signed = self.wallet.sign_transaction(unsigned)
        except PaymentError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.warning("payment_gate event=sign_failed error=%r", exc)
            raise PaymentError("Could not sign payment", details=str(exc)) from exc

        return {
            "x402Version": X402_VERSION,
            "scheme": requirement.scheme,
            "network": requirement.network,
            "payload": {
                "transaction": base64.b64encode(bytes(signed)).decode("ascii"),
            },
        }

    @staticmethod
    def _parse_challenge(response: HttpResponse) -> PaymentChallenge:
        try:
            return PaymentChallenge.model_validate(json.loads(response.body or "{}"))
        except (json.JSONDecodeError, ValidationError) as exc:
            raise PaymentError("Malformed payment challenge") from exc


def _receipt(paid: HttpResponse, *, url: str) -> dict[str, Any] | None:
    # The transfer has settled by now; an unreadable receipt must not turn into a retry.
    raw_receipt = paid.header(PAYMENT_RESPONSE_HEADER)
    if not raw_receipt:
        return None
    try:
        return decode_payment_header(raw_receipt)
    except PaymentError as exc:
        logger.warning("payment_gate event=receipt_unreadable url=%s error=%s", url, exc)
        return None


def _reason(response: HttpResponse) -> Any:
    try:
        payload = json.loads(response.body or "{}")
    except json.JSONDecodeError:
        return None
    if isinstance(payload, dict):
        return payload.get("error")
    return None
