"""Static network parameters for every supported chain.

EVM chains share one adapter implementation and one derivation path
(coin type 60); only the values in this table differ between them.
Bitcoin uses BIP-84 native SegWit.
"""

from dataclasses import dataclass
from typing import Optional

EVM_FAMILY = "evm"
BITCOIN_FAMILY = "bitcoin"


@dataclass(frozen=True)
class ChainConfig:
    """Configuration for a blockchain."""

    # Required fields (no defaults) - must come first
    chain: str  # Identifier used throughout the API ("ethereum", "bitcoin", ...)
    name: str
    family: str
    symbol: str
    rpc_url: str
    explorer_url: str
    coin_type: int  # SLIP-44

    # Optional fields (with defaults)
    chain_id: Optional[int] = None  # EVM chains only
    decimals: int = 18
    purpose: int = 44


CHAINS: dict[str, ChainConfig] = {
    "ethereum": ChainConfig(
        chain="ethereum",
        name="Ethereum",
        family=EVM_FAMILY,
        symbol="ETH",
        rpc_url="https://eth.llamarpc.com",
        explorer_url="https://etherscan.io",
        coin_type=60,
        chain_id=1,
    ),
    "polygon": ChainConfig(
        chain="polygon",
        name="Polygon",
        family=EVM_FAMILY,
        symbol="POL",
        rpc_url="https://polygon-rpc.com",
        explorer_url="https://polygonscan.com",
        coin_type=60,  # Same as ETH (EVM compatible)
        chain_id=137,
    ),
    "bsc": ChainConfig(
        chain="bsc",
        name="BNB Smart Chain",
        family=EVM_FAMILY,
        symbol="BNB",
        rpc_url="https://bsc-dataseed.binance.org",
        explorer_url="https://bscscan.com",
        coin_type=60,
        chain_id=56,
    ),
    "arbitrum": ChainConfig(
        chain="arbitrum",
        name="Arbitrum One",
        family=EVM_FAMILY,
        symbol="ETH",
        rpc_url="https://arbitrum-one.publicnode.com",
        explorer_url="https://arbiscan.io",
        coin_type=60,
        chain_id=42161,
    ),
    "bitcoin": ChainConfig(
        chain="bitcoin",
        name="Bitcoin",
        family=BITCOIN_FAMILY,
        symbol="BTC",
        rpc_url="https://blockstream.info/api",
        explorer_url="https://blockstream.info",
        coin_type=0,
        decimals=8,
        purpose=84,
    ),
}

BITCOIN_TESTNET = ChainConfig(
    chain="bitcoin",
    name="Bitcoin Testnet",
    family=BITCOIN_FAMILY,
    symbol="BTC",
    rpc_url="https://blockstream.info/testnet/api",
    explorer_url="https://blockstream.info/testnet",
    coin_type=1,
    decimals=8,
    purpose=84,
)


def get_chain_config(chain: str) -> Optional[ChainConfig]:
    """Get configuration for a chain id, or None if unknown."""
    return CHAINS.get(chain.lower())


def get_supported_chains() -> list[str]:
    """Get list of chain ids with a static configuration."""
    return list(CHAINS.keys())


def get_evm_chains() -> list[str]:
    """Get list of EVM-compatible chain ids."""
    return [c.chain for c in CHAINS.values() if c.family == EVM_FAMILY]
