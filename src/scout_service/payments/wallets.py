"""Wallet capabilities used by the payment gate to sign transfers."""

from __future__ import annotations

import json
from typing import Callable, Protocol

import base58
from solders.keypair import Keypair
from solders.message import to_bytes_versioned
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction

from scout_service.errors import ConfigurationError, PaymentError

TransactionSigner = Callable[[VersionedTransaction], VersionedTransaction]


class Wallet(Protocol):
    @property
    def public_key(self) -> Pubkey: ...

    def sign_transaction(self, tx: VersionedTransaction) -> VersionedTransaction: ...


class ExternalSignerWallet:
    """Wallet whose signing happens elsewhere, e.g. in the user's own signer."""

    def __init__(self, public_key: Pubkey | str, signer: TransactionSigner) -> None:
        self._public_key = (
            Pubkey.from_string(public_key) if isinstance(public_key, str) else public_key
        )
        self._signer = signer

    @property
    def public_key(self) -> Pubkey:
        return self._public_key

    def sign_transaction(self, tx: VersionedTransaction) -> VersionedTransaction:
        return self._signer(tx)


class VaultWallet:
    """Server-held keypair that signs locally. Never expose the keypair."""

    def __init__(self, keypair: Keypair) -> None:
        self._keypair = keypair

    def __repr__(self) -> str:
        return f"VaultWallet(public_key={self.public_key})"

    @property
    def public_key(self) -> Pubkey:
        return self._keypair.pubkey()

    def sign_transaction(self, tx: VersionedTransaction) -> VersionedTransaction:
        message = tx.message
        required = message.header.num_required_signatures
        signer_keys = list(message.account_keys[:required])
        try:
            index = signer_keys.index(self.public_key)
        except ValueError as exc:
            raise PaymentError("Vault wallet is not a signer of the payment transaction") from exc

        signatures = list(tx.signatures)
        signatures[index] = self._keypair.sign_message(to_bytes_versioned(message))
        return VersionedTransaction.populate(message, signatures)

    @classmethod
    def from_secret(cls, secret: str) -> VaultWallet:
        return cls(load_vault_keypair(secret))


def load_vault_keypair(secret: str) -> Keypair:
    """Parse private key material given as a JSON byte array or a base58 string."""
    raw = secret.strip()
    if not raw:
        raise ConfigurationError("PROJECT_VAULT_PRIVATE_KEY not configured")

    if raw.startswith("["):
        try:
            parsed = json.loads(raw)
            return Keypair.from_bytes(bytes(parsed))
        except (ValueError, TypeError) as exc:
            raise ConfigurationError("Vault private key is not a valid byte array") from exc

    try:
        return Keypair.from_bytes(base58.b58decode(raw))
    except ValueError as exc:
        raise ConfigurationError("Vault private key is not valid base58 key material") from exc
