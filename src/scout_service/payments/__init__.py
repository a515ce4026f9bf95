"""x402 payments over Solana: client gate, wallets, and server paywall."""

from scout_service.payments.gate import PaidResponse, PaymentGate
from scout_service.payments.paywall import Paywall, PaymentRequiredError, require_payment
from scout_service.payments.solana import SolanaRpcClient, build_transfer_transaction
from scout_service.payments.vault import VaultGateProvider
from scout_service.payments.wallets import (
    ExternalSignerWallet,
    VaultWallet,
    Wallet,
    load_vault_keypair,
)

__all__ = [
    "ExternalSignerWallet",
    "PaidResponse",
    "PaymentGate",
    "PaymentRequiredError",
    "Paywall",
    "SolanaRpcClient",
    "VaultGateProvider",
    "VaultWallet",
    "Wallet",
    "build_transfer_transaction",
    "load_vault_keypair",
    "require_payment",
]
