"""Multi-chain wallet: one seed phrase, one adapter per chain.

Usage:
    async with import_wallet(phrase) as wallet:
        addresses = await wallet.get_addresses()
        balance = await wallet.get_balance("ethereum", token="USDC")
        txid = await wallet.quick_send("bitcoin", "bc1q...", "0.001")
"""

import asyncio
import logging
from typing import Optional, Union

from seedchain.chains.base import Balance, ChainAdapter, FeeEstimate, PaymentRequest
from seedchain.chains.registry import ChainRegistry, initialize
from seedchain.config import Settings, get_settings
from seedchain.errors import ConnectionFailure, InvalidSeedPhrase, UnsupportedChain
from seedchain.hdwallet import mnemonic
from seedchain.hdwallet.keys import DerivedKey, KeyManager

logger = logging.getLogger(__name__)


class Wallet:
    """Orchestrates key derivation and chain adapters for a single seed."""

    def __init__(
        self,
        phrase: Optional[str] = None,
        registry: Optional[ChainRegistry] = None,
        rpc_urls: Optional[dict[str, str]] = None,
        passphrase: str = "",
        settings: Optional[Settings] = None,
    ):
        """Create a wallet.

        Args:
            phrase: BIP-39 phrase to import; a new 12-word phrase is generated if None
            registry: Chain registry (defaults to initialize(settings))
            rpc_urls: Per-chain endpoint overrides
            passphrase: Optional BIP-39 passphrase
            settings: Settings (defaults to get_settings())

        Raises:
            InvalidSeedPhrase: If an imported phrase fails validation
        """
        self._settings = settings or get_settings()
        self._generated = phrase is None
        if phrase is None:
            phrase = mnemonic.generate().phrase

        self._keys = KeyManager(phrase, passphrase=passphrase, testnet=self._settings.btc_testnet)
        self._registry = registry if registry is not None else initialize(self._settings)
        self._rpc_urls = dict(rpc_urls or {})
        self._adapters: dict[str, ChainAdapter] = {}

        logger.info(
            f"Wallet {'created' if self._generated else 'imported'} "
            f"with chains: {', '.join(self._registry.chains)}"
        )

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        registry: Optional[ChainRegistry] = None,
    ) -> "Wallet":
        """Import the wallet configured by WALLET_SEED_PHRASE.

        Raises:
            InvalidSeedPhrase: If no phrase is configured or it is invalid
        """
        settings = settings or get_settings()
        if not settings.wallet_seed_phrase:
            raise InvalidSeedPhrase("WALLET_SEED_PHRASE is not set")
        return cls(settings.wallet_seed_phrase, registry=registry, settings=settings)

    def __repr__(self) -> str:
        return f"Wallet(chains={self.chains})"

    async def __aenter__(self) -> "Wallet":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    @property
    def chains(self) -> list[str]:
        return self._registry.chains

    @property
    def registry(self) -> ChainRegistry:
        return self._registry

    # ------------------------------------------------------------------
    # Adapters
    # ------------------------------------------------------------------

    def get_adapter(self, chain: str) -> ChainAdapter:
        """Get (or build) the cached adapter for a chain. Does not connect.

        Raises:
            UnsupportedChain: If the chain is not registered (checked before
                any key derivation)
        """
        adapter = self._adapters.get(chain)
        if adapter is not None:
            return adapter

        if chain not in self._registry:
            raise UnsupportedChain(chain)

        key = self._keys.derive_private_key(chain)
        adapter = self._registry.get(chain, bytes(key), self._rpc_urls.get(chain))
        self._adapters[chain] = adapter
        return adapter

    async def _connected(self, chain: str) -> ChainAdapter:
        adapter = self.get_adapter(chain)
        if not adapter.is_connected:
            await adapter.connect()
        return adapter

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def get_address(self, chain: str) -> str:
        """Address for one chain. Pure; no network access."""
        return self.get_adapter(chain).get_address()

    async def get_addresses(self) -> dict[str, str]:
        """Address for every registered chain.

        Chains are connected concurrently. Connection failures are logged
        and skipped; the address is still returned since it depends only
        on the key.
        """
        async def lookup(chain: str) -> tuple[str, str]:
            adapter = self.get_adapter(chain)
            if not adapter.is_connected:
                try:
                    await adapter.connect()
                except ConnectionFailure as e:
                    logger.warning(f"Could not connect to {chain}: {e.reason}")
            return chain, adapter.get_address()

        results = await asyncio.gather(*(lookup(chain) for chain in self.chains))
        return dict(results)

    async def get_balance(self, chain: str, token: Optional[str] = None) -> Balance:
        adapter = await self._connected(chain)
        return await adapter.get_balance(token)

    async def estimate_fee(self, request: PaymentRequest) -> FeeEstimate:
        adapter = await self._connected(request.chain)
        return await adapter.estimate_fee(request)

    async def send_payment(self, request: PaymentRequest) -> str:
        """Submit a payment and return its transaction id."""
        adapter = await self._connected(request.chain)
        txid = await adapter.send_transaction(request)
        logger.info(f"Payment sent on {request.chain}: {adapter.explorer_url(txid)}")
        return txid

    async def quick_send(
        self,
        chain: str,
        to_address: str,
        amount: str,
        token: Optional[str] = None,
    ) -> str:
        """send_payment() with the sender filled in from our own address."""
        request = PaymentRequest(
            chain=chain,
            from_address=self.get_address(chain),
            to_address=to_address,
            amount=amount,
            token=token,
        )
        return await self.send_payment(request)

    async def sign_message(self, message: Union[str, bytes], chain: str) -> str:
        adapter = await self._connected(chain)
        return adapter.sign_message(message)

    # ------------------------------------------------------------------
    # Export / lifecycle
    # ------------------------------------------------------------------

    def export_seed(self) -> str:
        """Return the seed phrase. Handle with care."""
        return self._keys.export_phrase()

    def export_all_keys(self) -> dict[str, DerivedKey]:
        """Derive and return the private key for every known chain."""
        return self._keys.export_all()

    async def close(self) -> None:
        """Disconnect every cached adapter."""
        await asyncio.gather(*(adapter.disconnect() for adapter in self._adapters.values()))
        self._adapters.clear()

    def info(self) -> dict:
        """Non-secret wallet description."""
        return {
            "chains": self.chains,
            "generated": self._generated,
            "connected": [c for c, a in self._adapters.items() if a.is_connected],
            "bitcoin_testnet": self._keys.testnet,
        }


def create_wallet(**kwargs) -> Wallet:
    """Create a wallet with a freshly generated seed phrase."""
    return Wallet(None, **kwargs)


def import_wallet(phrase: str, **kwargs) -> Wallet:
    """Import a wallet from an existing seed phrase.

    Raises:
        InvalidSeedPhrase: If the phrase fails validation
    """
    return Wallet(phrase, **kwargs)
