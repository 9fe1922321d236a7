"""seedchain - one BIP-39 seed, keys and adapters for EVM chains and Bitcoin."""

from seedchain.chains import (
    Balance,
    ChainRegistry,
    FeeEstimate,
    PaymentRequest,
    initialize,
)
from seedchain.errors import (
    AddressValidationFailure,
    ConnectionFailure,
    InsufficientKeyMaterial,
    InvalidSeedPhrase,
    TransactionFailure,
    UnsupportedChain,
    UnsupportedToken,
    WalletError,
)
from seedchain.wallet import Wallet, create_wallet, import_wallet

__version__ = "0.1.0"

__all__ = [
    "AddressValidationFailure",
    "Balance",
    "ChainRegistry",
    "ConnectionFailure",
    "FeeEstimate",
    "InsufficientKeyMaterial",
    "InvalidSeedPhrase",
    "PaymentRequest",
    "TransactionFailure",
    "UnsupportedChain",
    "UnsupportedToken",
    "Wallet",
    "WalletError",
    "create_wallet",
    "import_wallet",
    "initialize",
]
