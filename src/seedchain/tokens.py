"""ERC-20 token contracts per EVM chain."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class TokenInfo:
    """A token contract deployed on one chain."""

    symbol: str
    name: str
    chain: str
    address: str
    decimals: int


# Token contract addresses
TOKEN_ADDRESSES: dict[str, dict[str, str]] = {
    "USDT": {
        "ethereum": "0xdac17f958d2ee523a2206206994597c13d831ec7",
        "polygon": "0xc2132d05d31c914a87c6611c10748aeb04b58e8f",
        "bsc": "0x55d398326f99059ff775485246999027b3197955",
        "arbitrum": "0xfd086bc7cd5c481dcc9c85ebe478a1c0b69fcbb9",
    },
    "USDC": {
        "ethereum": "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48",
        "polygon": "0x3c499c542cef5e3811e1192ce70d8cc03d5c3359",
        "bsc": "0x8ac76a51cc950d9822d68b83fe1ad97b32cd580d",
        "arbitrum": "0xaf88d065e77c8cc2239327c5edb3a432268e5831",
    },
    "WBTC": {
        "ethereum": "0x2260fac5e5542a773aa44fbcfedf7c193bc2c599",
        "polygon": "0x1bfd67037b42cf73acf2047067bd4f2c47d9bfd6",
        "bsc": "0x7130d2a12b9bcbfae4f2634d864a1ee1ce3ead9c",
        "arbitrum": "0x2f2a2543b76a4166869fb4605c78dcdbe30c8b3a",
    },
}

TOKEN_NAMES = {
    "USDT": "Tether USD",
    "USDC": "USD Coin",
    "WBTC": "Wrapped Bitcoin",
}

# Decimals differ per deployment (BSC pegged tokens use 18)
TOKEN_DECIMALS: dict[str, dict[str, int]] = {
    "USDT": {"ethereum": 6, "polygon": 6, "bsc": 18, "arbitrum": 6},
    "USDC": {"ethereum": 6, "polygon": 6, "bsc": 18, "arbitrum": 6},
    "WBTC": {"ethereum": 8, "polygon": 8, "bsc": 18, "arbitrum": 8},
}


def get_token(symbol: str, chain: str) -> Optional[TokenInfo]:
    """Get token info for a symbol on a chain, or None if not deployed there."""
    symbol = symbol.upper()
    address = TOKEN_ADDRESSES.get(symbol, {}).get(chain)
    if address is None:
        return None
    return TokenInfo(
        symbol=symbol,
        name=TOKEN_NAMES.get(symbol, symbol),
        chain=chain,
        address=address,
        decimals=TOKEN_DECIMALS[symbol][chain],
    )


def get_token_address(symbol: str, chain: str) -> Optional[str]:
    """Get token contract address for a chain."""
    return TOKEN_ADDRESSES.get(symbol.upper(), {}).get(chain)


def has_token(symbol: str, chain: str) -> bool:
    """Check if token exists on chain."""
    return get_token_address(symbol, chain) is not None


def get_tokens_for_chain(chain: str) -> list[str]:
    """Get all token symbols deployed on a chain."""
    return [symbol for symbol in TOKEN_ADDRESSES if has_token(symbol, chain)]


def get_all_supported_tokens() -> list[str]:
    """Get all supported token symbols."""
    return list(TOKEN_ADDRESSES.keys())
