"""Chain adapters and the chain registry."""

from seedchain.chains.base import (
    AdapterState,
    Balance,
    ChainAdapter,
    FeeEstimate,
    PaymentRequest,
    TransactionRecord,
)
from seedchain.chains.btc import BitcoinAdapter
from seedchain.chains.evm import EVMAdapter
from seedchain.chains.registry import ChainRegistry, initialize

__all__ = [
    "AdapterState",
    "Balance",
    "BitcoinAdapter",
    "ChainAdapter",
    "ChainRegistry",
    "EVMAdapter",
    "FeeEstimate",
    "PaymentRequest",
    "TransactionRecord",
    "initialize",
]
