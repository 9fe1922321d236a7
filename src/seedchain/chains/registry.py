"""Registry mapping chain ids to adapter factories.

Nothing is registered at import time. Call initialize() to get a registry
populated with every built-in chain, or build one by hand with register().
"""

import logging
from functools import partial
from typing import Callable, Optional

import httpx

from seedchain.chains.base import ChainAdapter
from seedchain.chains.btc import BitcoinAdapter
from seedchain.chains.evm import EVMAdapter
from seedchain.config import Settings, get_settings
from seedchain.errors import UnsupportedChain
from seedchain.networks import get_evm_chains

logger = logging.getLogger(__name__)

# (private_key, rpc_url) -> adapter
AdapterFactory = Callable[[bytes, Optional[str]], ChainAdapter]


class ChainRegistry:
    """Chain id -> adapter factory map."""

    def __init__(self):
        self._factories: dict[str, AdapterFactory] = {}

    def __contains__(self, chain: str) -> bool:
        return chain in self._factories

    def __len__(self) -> int:
        return len(self._factories)

    def __repr__(self) -> str:
        return f"ChainRegistry(chains={self.chains})"

    @property
    def chains(self) -> list[str]:
        """Registered chain ids in registration order."""
        return list(self._factories.keys())

    def register(self, chain: str, factory: AdapterFactory) -> None:
        """Register a factory. Re-registering a chain replaces its factory."""
        if chain in self._factories:
            logger.debug(f"Replacing adapter factory for {chain}")
        self._factories[chain] = factory

    def unregister(self, chain: str) -> None:
        self._factories.pop(chain, None)

    def get(self, chain: str, private_key: bytes, rpc_url: Optional[str] = None) -> ChainAdapter:
        """Construct an adapter for a chain.

        Raises:
            UnsupportedChain: If no factory is registered for the chain
        """
        factory = self._factories.get(chain)
        if factory is None:
            raise UnsupportedChain(chain)
        return factory(private_key, rpc_url)


def _evm_factory(
    chain: str,
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport],
    private_key: bytes,
    rpc_url: Optional[str],
) -> ChainAdapter:
    return EVMAdapter(
        chain,
        private_key,
        rpc_url=rpc_url or settings.get_rpc_url(chain),
        timeout=settings.http_timeout,
        transport=transport,
    )


def _bitcoin_factory(
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport],
    private_key: bytes,
    rpc_url: Optional[str],
) -> ChainAdapter:
    return BitcoinAdapter(
        private_key,
        rpc_url=rpc_url or settings.get_rpc_url("bitcoin"),
        testnet=settings.btc_testnet,
        timeout=settings.http_timeout,
        transport=transport,
    )


def initialize(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ChainRegistry:
    """Build a registry with every built-in chain.

    Args:
        settings: Endpoint/timeout configuration (defaults to get_settings())
        transport: Optional httpx transport handed to every adapter

    Returns:
        New ChainRegistry with ethereum, polygon, bsc, arbitrum and bitcoin
    """
    settings = settings or get_settings()
    registry = ChainRegistry()

    for chain in get_evm_chains():
        registry.register(chain, partial(_evm_factory, chain, settings, transport))
    registry.register("bitcoin", partial(_bitcoin_factory, settings, transport))

    logger.debug(f"Initialized chain registry: {registry.chains}")
    return registry
