"""Per-chain private key derivation from a BIP-39 seed phrase.

Derivation paths are fixed per chain family:
- EVM chains (ethereum, polygon, bsc, arbitrum): m/44'/60'/0'/0/0
- Bitcoin (BIP-84 native SegWit): m/84'/0'/0'/0/0 (m/84'/1'/0'/0/0 on testnet)

Keys are derived lazily and cached for the lifetime of the KeyManager.
Key material is never logged.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from bip_utils import Bip32Secp256k1, Bip39SeedGenerator

from seedchain.errors import InsufficientKeyMaterial, InvalidSeedPhrase
from seedchain.hdwallet import mnemonic
from seedchain.networks import BITCOIN_FAMILY, CHAINS, EVM_FAMILY

logger = logging.getLogger(__name__)

DERIVATION_PATHS: dict[str, str] = {
    EVM_FAMILY: "m/44'/60'/0'/0/0",
    BITCOIN_FAMILY: "m/84'/0'/0'/0/0",
}
BITCOIN_TESTNET_PATH = "m/84'/1'/0'/0/0"

# Chain id -> family
CHAIN_FAMILIES: dict[str, str] = {chain: cfg.family for chain, cfg in CHAINS.items()}


@dataclass(frozen=True)
class DerivedKey:
    """Chain-scoped secp256k1 private key.

    ``raw`` is a mutable buffer owned by the KeyManager that produced it, so
    KeyManager.clear() zeroizes it in place.
    """

    chain: str
    path: str
    raw: bytearray = field(repr=False, hash=False)

    def hex(self) -> str:
        """Explicit export as 0x-prefixed hex."""
        return "0x" + bytes(self.raw).hex()

    def __bytes__(self) -> bytes:
        return bytes(self.raw)


def _strip_master(path: str) -> str:
    return path[2:] if path.startswith("m/") else path


class KeyManager:
    """Derives and caches one private key per chain.

    Construction is the only validation gate for the seed phrase.

    Usage:
        keys = KeyManager("abandon abandon ... about")
        key = keys.derive_private_key("ethereum")
    """

    def __init__(self, phrase: str, passphrase: str = "", testnet: bool = False):
        """Initialize key manager.

        Args:
            phrase: BIP-39 mnemonic phrase
            passphrase: Optional BIP-39 passphrase
            testnet: Derive Bitcoin keys on the testnet coin type

        Raises:
            InvalidSeedPhrase: If the phrase fails validation
        """
        if not mnemonic.validate(phrase):
            raise InvalidSeedPhrase("Invalid mnemonic phrase")

        self._phrase = mnemonic.normalize(phrase)
        self._passphrase = passphrase
        self._testnet = testnet
        self._seed: Optional[bytearray] = None
        self._keys: dict[str, DerivedKey] = {}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(cached={sorted(self._keys)}, testnet={self._testnet})"

    @property
    def chains(self) -> list[str]:
        """Chain ids this manager can derive keys for."""
        return list(CHAIN_FAMILIES.keys())

    @property
    def testnet(self) -> bool:
        return self._testnet

    def get_derivation_path(self, chain: str) -> str:
        """Get the fixed derivation path for a chain.

        Raises:
            InsufficientKeyMaterial: If the chain has no known family
        """
        family = CHAIN_FAMILIES.get(chain)
        if family is None:
            raise InsufficientKeyMaterial(chain)

        if family == BITCOIN_FAMILY and self._testnet:
            return BITCOIN_TESTNET_PATH
        return DERIVATION_PATHS[family]

    def _get_seed(self) -> bytes:
        if self._seed is None:
            self._seed = bytearray(
                Bip39SeedGenerator(self._phrase).Generate(self._passphrase)
            )
        return bytes(self._seed)

    def derive_private_key(self, chain: str) -> DerivedKey:
        """Derive (or return the cached) private key for a chain.

        Same phrase + same chain always yields the same key.

        Raises:
            InsufficientKeyMaterial: If the chain has no derivation path
        """
        cached = self._keys.get(chain)
        if cached is not None:
            return cached

        path = self.get_derivation_path(chain)
        bip32_ctx = Bip32Secp256k1.FromSeed(self._get_seed())
        child = bip32_ctx.DerivePath(_strip_master(path))

        key = DerivedKey(
            chain=chain,
            path=path,
            raw=bytearray(child.PrivateKey().Raw().ToBytes()),
        )
        logger.debug(f"Derived key for {chain} at {path}")

        # A concurrent derivation of the same chain produces an identical key
        return self._keys.setdefault(chain, key)

    def export_all(self) -> dict[str, DerivedKey]:
        """Derive (or return cached) keys for every known chain.

        Explicit backup operation; never called implicitly.
        """
        return {chain: self.derive_private_key(chain) for chain in self.chains}

    def export_phrase(self) -> str:
        """Return the seed phrase (handle with care)."""
        return self._phrase

    def account_xpub(self, chain: str) -> str:
        """Get the account-level extended public key for a chain.

        For EVM chains this is m/44'/60'/0', for Bitcoin m/84'/0'/0'.
        Suitable for watch-only address derivation.
        """
        path = self.get_derivation_path(chain)
        account_path = "/".join(_strip_master(path).split("/")[:3])

        bip32_ctx = Bip32Secp256k1.FromSeed(self._get_seed())
        return bip32_ctx.DerivePath(account_path).PublicKey().ToExtended()

    def clear(self) -> None:
        """Zeroize and evict all cached key material.

        Later calls to derive_private_key() re-derive from the phrase.
        """
        for key in self._keys.values():
            key.raw[:] = bytes(len(key.raw))
        self._keys.clear()

        if self._seed is not None:
            self._seed[:] = bytes(len(self._seed))
            self._seed = None

        logger.debug("Cleared derived key cache")
