"""Caller identity: wallet address header, optionally backed by a bearer token."""

from __future__ import annotations

import base64
import json
import logging
from typing import Any

from fastapi import Request

from scout_service.errors import AuthenticationError, ScoutServiceError, ValidationError
from scout_service.http import HttpRequest, Transport

logger = logging.getLogger(__name__)

WALLET_HEADER = "X-Wallet-Address"
WALLET_CLAIM = "custom:walletAddress"


def decode_token_claims(token: str) -> dict[str, Any]:
    """Read the JWT payload without verifying it; the identity provider verifies."""
    parts = token.split(".")
    if len(parts) < 2:
        raise AuthenticationError("Malformed authentication token")
    segment = parts[1] + "=" * (-len(parts[1]) % 4)
    try:
        claims = json.loads(base64.urlsafe_b64decode(segment.encode("ascii")))
    except (ValueError, UnicodeError) as exc:
        raise AuthenticationError("Malformed authentication token") from exc
    if not isinstance(claims, dict):
        raise AuthenticationError("Malformed authentication token")
    return claims


def wallet_address_from_token(token: str) -> str:
    address = decode_token_claims(token).get(WALLET_CLAIM)
    if not isinstance(address, str) or not address:
        raise AuthenticationError("Authentication token has no wallet address")
    return address


class IdentityVerifier:
    """Validates bearer tokens by calling the identity provider with them."""

    def __init__(self, *, base_url: str, transport: Transport) -> None:
        self.base_url = base_url.rstrip("/")
        self._transport = transport

    def verify(self, token: str) -> None:
        try:
            response = self._transport(
                HttpRequest(
                    method="POST",
                    url=f"{self.base_url}/",
                    headers={"Authorization": f"Bearer {token}"},
                    json_body={"action": "listApps"},
                )
            )
        except ScoutServiceError as exc:
            logger.warning("auth event=identity_unreachable error=%s", exc)
            raise AuthenticationError("Invalid authentication token") from exc
        if not response.ok:
            logger.info("auth event=token_rejected status=%s", response.status)
            raise AuthenticationError("Invalid authentication token")


def bearer_token(request: Request) -> str | None:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def require_wallet(request: Request) -> str:
    """FastAPI dependency returning the caller's wallet address."""
    wallet = (request.headers.get(WALLET_HEADER) or "").strip()
    if not wallet:
        raise ValidationError(
            "X-Wallet-Address header is required. Please provide your wallet address."
        )

    if not request.app.state.settings.strict_auth:
        return wallet

    token = bearer_token(request)
    if token is None:
        raise AuthenticationError("Authentication data not found in request")
    verifier: IdentityVerifier = request.app.state.identity
    verifier.verify(token)
    if wallet_address_from_token(token).lower() != wallet.lower():
        raise AuthenticationError("Token address does not match provided wallet address")
    return wallet
