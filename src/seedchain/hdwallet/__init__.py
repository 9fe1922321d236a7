"""HD wallet module: seed phrases and deterministic key derivation."""

from seedchain.hdwallet.keys import DERIVATION_PATHS, DerivedKey, KeyManager
from seedchain.hdwallet.mnemonic import Seed, from_entropy, generate, to_entropy, validate

__all__ = [
    "DERIVATION_PATHS",
    "DerivedKey",
    "KeyManager",
    "Seed",
    "from_entropy",
    "generate",
    "to_entropy",
    "validate",
]
