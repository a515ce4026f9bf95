"""Process-wide payment gate funded by the server's vault keypair."""

from __future__ import annotations

import logging
import threading

from scout_service.config.settings import Settings
from scout_service.errors import ConfigurationError
from scout_service.http import Transport
from scout_service.payments.gate import PaymentGate
from scout_service.payments.solana import SolanaRpc, SolanaRpcClient
from scout_service.payments.wallets import VaultWallet

logger = logging.getLogger(__name__)


class VaultGateProvider:
    """Builds the vault-funded gate on first use and reuses it afterwards."""

    def __init__(
        self,
        settings: Settings,
        *,
        transport: Transport,
        rpc: SolanaRpc | None = None,
    ) -> None:
        self.settings = settings
        self._transport = transport
        self._rpc = rpc
        self._gate: PaymentGate | None = None
        self._lock = threading.Lock()

    def __call__(self) -> PaymentGate:
        with self._lock:
            if self._gate is None:
                self._gate = self._build()
            return self._gate

    def _build(self) -> PaymentGate:
        secret = self.settings.resolved_vault_private_key()
        if not secret:
            raise ConfigurationError("PROJECT_VAULT_PRIVATE_KEY not configured")
        wallet = VaultWallet.from_secret(secret)
        rpc = self._rpc or SolanaRpcClient(
            self.settings.resolved_rpc_url(),
            timeout_s=self.settings.http_timeout_s,
        )
        logger.info(
            "vault_gate event=ready network=%s wallet=%s",
            self.settings.payment_network(),
            wallet.public_key,
        )
        return PaymentGate(
            wallet=wallet,
            mint=self.settings.resolved_payment_mint(),
            rpc=rpc,
            network=self.settings.payment_network(),
            transport=self._transport,
        )
