"""Solana RPC access and SPL transfer construction for x402 payments."""

from __future__ import annotations

import logging
from typing import Protocol

from solana.rpc.api import Client
from solders.compute_budget import set_compute_unit_limit, set_compute_unit_price
from solders.hash import Hash
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import VersionedTransaction
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import (
    TransferCheckedParams,
    get_associated_token_address,
    transfer_checked,
)

from scout_service.errors import PaymentError

logger = logging.getLogger(__name__)

COMPUTE_UNIT_LIMIT = 200_000
COMPUTE_UNIT_PRICE_MICROLAMPORTS = 1


class SolanaRpc(Protocol):
    def latest_blockhash(self) -> Hash: ...

    def mint_decimals(self, mint: Pubkey) -> int: ...


class SolanaRpcClient:
    """Thin wrapper over solana-py exposing only what the payment gate needs."""

    def __init__(self, rpc_url: str, *, timeout_s: float = 30.0) -> None:
        self.rpc_url = rpc_url
        self._client = Client(rpc_url, timeout=timeout_s)
        self._decimals: dict[str, int] = {}

    def latest_blockhash(self) -> Hash:
        try:
            return self._client.get_latest_blockhash().value.blockhash
        except Exception as exc:
            logger.warning("solana_rpc event=blockhash_failed error=%s", exc)
            raise PaymentError("Could not fetch a recent blockhash") from exc

    def mint_decimals(self, mint: Pubkey) -> int:
        key = str(mint)
        if key not in self._decimals:
            try:
                self._decimals[key] = self._client.get_token_supply(mint).value.decimals
            except Exception as exc:
                logger.warning("solana_rpc event=mint_lookup_failed mint=%s error=%s", key, exc)
                raise PaymentError(f"Could not read decimals for mint {key}") from exc
        return self._decimals[key]


def build_transfer_transaction(
    *,
    rpc: SolanaRpc,
    owner: Pubkey,
    pay_to: Pubkey,
    mint: Pubkey,
    amount: int,
    fee_payer: Pubkey | None = None,
) -> VersionedTransaction:
    """Build an unsigned compute-budget + transferChecked transaction.

    The token transfer moves ``amount`` base units from the owner's associated
    token account to the recipient's. When ``fee_payer`` is given it becomes the
    first signer and the owner only partially signs.
    """
    decimals = rpc.mint_decimals(mint)
    instructions = [
        set_compute_unit_limit(COMPUTE_UNIT_LIMIT),
        set_compute_unit_price(COMPUTE_UNIT_PRICE_MICROLAMPORTS),
        transfer_checked(
            TransferCheckedParams(
                program_id=TOKEN_PROGRAM_ID,
                source=get_associated_token_address(owner, mint),
                mint=mint,
                dest=get_associated_token_address(pay_to, mint),
                owner=owner,
                amount=amount,
                decimals=decimals,
            )
        ),
    ]
    message = MessageV0.try_compile(
        fee_payer or owner,
        instructions,
        [],
        rpc.latest_blockhash(),
    )
    signer_count = message.header.num_required_signatures
    return VersionedTransaction.populate(message, [Signature.default()] * signer_count)
