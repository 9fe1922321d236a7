"""Application configuration using pydantic-settings.

Endpoints can be overridden per chain through environment variables or a
.env file (ETH_RPC_URL, BTC_API_URL, ...).
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # Wallet
    # ======================
    wallet_seed_phrase: Optional[str] = Field(
        default=None, description="BIP-39 seed phrase used by Wallet.from_settings()"
    )

    # ======================
    # EVM RPC Endpoints
    # ======================
    eth_rpc_url: str = Field(
        default="https://eth.llamarpc.com", description="Ethereum RPC URL"
    )
    polygon_rpc_url: str = Field(
        default="https://polygon-rpc.com", description="Polygon RPC URL"
    )
    bsc_rpc_url: str = Field(
        default="https://bsc-dataseed.binance.org", description="BSC RPC URL"
    )
    arbitrum_rpc_url: str = Field(
        default="https://arbitrum-one.publicnode.com", description="Arbitrum One RPC URL"
    )

    # ======================
    # Bitcoin (Esplora REST)
    # ======================
    btc_api_url: str = Field(
        default="https://blockstream.info/api", description="Bitcoin Esplora API URL"
    )
    btc_testnet_api_url: str = Field(
        default="https://blockstream.info/testnet/api",
        description="Bitcoin testnet Esplora API URL",
    )
    btc_testnet: bool = Field(default=False, description="Use Bitcoin testnet")

    # ======================
    # HTTP
    # ======================
    http_timeout: Optional[float] = Field(
        default=30.0, description="Per-request HTTP timeout in seconds (None disables)"
    )

    @property
    def has_wallet(self) -> bool:
        """Check if a seed phrase is configured."""
        return bool(self.wallet_seed_phrase and len(self.wallet_seed_phrase.split()) >= 12)

    def get_rpc_url(self, chain: str) -> str:
        """Get the configured endpoint for a chain id."""
        rpc_map = {
            "ethereum": self.eth_rpc_url,
            "polygon": self.polygon_rpc_url,
            "bsc": self.bsc_rpc_url,
            "arbitrum": self.arbitrum_rpc_url,
            "bitcoin": self.btc_testnet_api_url if self.btc_testnet else self.btc_api_url,
        }
        return rpc_map.get(chain.lower(), "")

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "wallet_configured": self.has_wallet,
            "wallet_seed_phrase": "***" if self.wallet_seed_phrase else "(not set)",
            "http_timeout": self.http_timeout,
            "chains": {
                "ethereum": {"rpc": self.eth_rpc_url},
                "polygon": {"rpc": self.polygon_rpc_url},
                "bsc": {"rpc": self.bsc_rpc_url},
                "arbitrum": {"rpc": self.arbitrum_rpc_url},
                "bitcoin": {
                    "api": self.get_rpc_url("bitcoin"),
                    "testnet": self.btc_testnet,
                },
            },
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
