"""Exception types raised by the wallet core.

Propagation rules:
- Seed validation errors are fatal at construction time.
- Connection errors are recoverable and may be retried by the caller.
  Wallet.get_addresses() is the only place that swallows them.
- Everything else propagates unchanged.
"""

from typing import Optional


class WalletError(Exception):
    """Base class for all seedchain errors."""
    pass


class InvalidSeedPhrase(WalletError, ValueError):
    """Mnemonic failed the word-list, word-count or checksum check."""
    pass


class UnsupportedChain(WalletError):
    """No adapter factory is registered for the chain id."""

    def __init__(self, chain: str, message: Optional[str] = None):
        self.chain = chain
        super().__init__(message or f"Chain {chain!r} is not supported")


class InsufficientKeyMaterial(WalletError):
    """Key derivation was requested for a chain with no derivation path."""

    def __init__(self, chain: str):
        self.chain = chain
        super().__init__(f"No derivation path known for chain {chain!r}")


class UnsupportedToken(WalletError):
    """Token symbol is not known for the chain."""

    def __init__(self, chain: str, token: str):
        self.chain = chain
        self.token = token
        super().__init__(f"Token {token!r} is not supported on {chain}")


class ConnectionFailure(WalletError):
    """Backend unreachable, or adapter used while disconnected."""

    def __init__(self, chain: str, reason: str):
        self.chain = chain
        self.reason = reason
        super().__init__(f"{chain}: {reason}")


class TransactionFailure(WalletError):
    """Transaction could not be built or was rejected by the network."""

    def __init__(self, chain: str, reason: str):
        self.chain = chain
        self.reason = reason
        super().__init__(f"{chain}: transaction failed: {reason}")


class AddressValidationFailure(TransactionFailure):
    """Recipient address is malformed for the chain."""

    def __init__(self, chain: str, address: str):
        self.address = address
        super().__init__(chain, f"invalid recipient address {address!r}")
