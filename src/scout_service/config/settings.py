"""Application settings."""

from functools import lru_cache
import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[3]

DEVNET_NETWORK = "solana-devnet"
MAINNET_NETWORK = "solana-mainnet"

# USDC mints per cluster.
DEFAULT_PAYMENT_MINTS = {
    DEVNET_NETWORK: "4zMMC9srt5Ri5X14GAgXhaHii3GnPAEERYPJgZJDncDU",
    MAINNET_NETWORK: "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v",
}
DEFAULT_RPC_URLS = {
    DEVNET_NETWORK: "https://api.devnet.solana.com",
    MAINNET_NETWORK: "https://api.mainnet-beta.solana.com",
}


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    app_name: str = "scout-service"
    app_version: str = "0.1.0"
    app_env: str = "dev"
    env: str = ""
    database_url: str = ""
    http_timeout_s: float = Field(default=120.0, ge=1.0)

    browser_use_api_key: str = ""
    browser_use_base_url: str = "https://api.browser-use.com/api/v2"

    llm_model: str = "gpt-4o-mini"
    llm_base_url: str = "https://api.openai.com/v1"
    llm_timeout_s: float = Field(default=60.0, ge=0.5)
    llm_max_retries: int = Field(default=1, ge=0)
    llm_backoff_s: float = Field(default=0.2, ge=0.0)
    openai_api_key: str = ""
    result_max_steps: int = Field(default=10, ge=1)
    tool_timeout_s: float = Field(default=60.0, ge=0.01)
    tool_max_retries: int = Field(default=0, ge=0)

    payment_required: bool = True
    payment_amount: int = Field(default=150000, ge=1)
    payment_mint: str = ""
    payment_fee_payer: str = ""
    payment_facilitator_url: str = "https://facilitator.corbits.io"
    payment_max_timeout_s: int = Field(default=60, ge=1)
    vault_address: str = ""
    vault_private_key: str = ""
    solana_rpc_url: str = ""

    email_api_url_live: str = "https://6912ea0975594657e0105644-api.poof.new"
    email_api_url_preview: str = "https://6912ea0975594657e0105643-api.poof.new"
    api_base_url: str = ""
    identity_api_url: str = "https://developer-api.tarobase.com"
    strict_auth: bool = False

    model_config = SettingsConfigDict(
        env_prefix="SCOUT_SERVICE_",
        extra="ignore",
        env_file=(PROJECT_ROOT / ".env", PROJECT_ROOT / ".env.local"),
        env_file_encoding="utf-8",
    )

    def is_live(self) -> bool:
        return self.resolved_env().upper() == "LIVE"

    def resolved_env(self) -> str:
        return self.env or os.getenv("ENV", "PREVIEW")

    def payment_network(self) -> str:
        return MAINNET_NETWORK if self.is_live() else DEVNET_NETWORK

    def resolved_payment_mint(self) -> str:
        return self.payment_mint or DEFAULT_PAYMENT_MINTS[self.payment_network()]

    def resolved_rpc_url(self) -> str:
        return (
            self.solana_rpc_url
            or os.getenv("SOLANA_RPC_URL", "")
            or DEFAULT_RPC_URLS[self.payment_network()]
        )

    def email_api_url(self) -> str:
        return self.email_api_url_live if self.is_live() else self.email_api_url_preview

    def resolved_database_url(self) -> str:
        return self.database_url or os.getenv("SCOUT_DATABASE_URL", "")

    def resolved_browser_use_api_key(self) -> str:
        return self.browser_use_api_key or os.getenv("BROWSER_USE_API_KEY", "")

    def resolved_openai_api_key(self) -> str:
        return self.openai_api_key or os.getenv("OPENAI_API_KEY", "")

    def resolved_vault_private_key(self) -> str:
        return self.vault_private_key or os.getenv("PROJECT_VAULT_PRIVATE_KEY", "")

    def resolved_vault_address(self) -> str:
        return self.vault_address or os.getenv("PROJECT_VAULT_ADDRESS", "")

    def resolved_api_base_url(self) -> str:
        return self.api_base_url or os.getenv("API_BASE_URL", "http://localhost:1999")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
