"""Chain adapter interface.

Each supported chain family implements the same capability set:
connect/disconnect, address derivation and validation, balance, fee
estimation, payment submission and message signing.

State machine:
    DISCONNECTED --connect() ok--> CONNECTED --disconnect()--> DISCONNECTED

A failed connect() leaves the adapter DISCONNECTED. Address derivation,
address validation and message signing are local operations and work in
any state; everything that talks to the backend requires CONNECTED.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

import httpx

from seedchain.errors import ConnectionFailure, TransactionFailure
from seedchain.networks import ChainConfig
from seedchain.utils.units import format_units, to_base_units

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0

# Largest amount any supported chain can carry in one transfer
MAX_AMOUNT = 2**256 - 1


class AdapterState(str, Enum):
    """Connectivity state of an adapter."""
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"


@dataclass(frozen=True)
class PaymentRequest:
    """Transfer to submit through an adapter.

    Attributes:
        chain: Chain id ("ethereum", "bitcoin", ...)
        from_address: Sender address (must be the adapter's own address)
        to_address: Recipient address
        amount: Decimal amount string in display units ("0.01")
        token: Token symbol or contract address; None for the native asset
        gas_price: EVM gas price override in wei
        gas_limit: EVM gas limit override
        fee_rate: Bitcoin fee rate override in sat/vB
    """
    chain: str
    from_address: str
    to_address: str
    amount: str
    token: Optional[str] = None
    gas_price: Optional[int] = None
    gas_limit: Optional[int] = None
    fee_rate: Optional[int] = None


@dataclass(frozen=True)
class Balance:
    """Balance in the token's smallest unit."""
    amount: int
    decimals: int
    symbol: str

    @property
    def formatted(self) -> str:
        return format_units(self.amount, self.decimals)


@dataclass(frozen=True)
class FeeEstimate:
    """Estimated network fee, paid in the chain's native asset.

    Attributes:
        fee: Total fee in the smallest native unit (wei, satoshi)
        price: Gas price in wei, or fee rate in sat/vB
        limit: Gas limit, or estimated virtual size in vbytes
        decimals: Native asset decimals
        symbol: Native asset symbol
    """
    fee: int
    price: int
    limit: int
    decimals: int
    symbol: str

    @property
    def formatted(self) -> str:
        return format_units(self.fee, self.decimals)


@dataclass(frozen=True)
class TransactionRecord:
    """Transaction touching the wallet address."""
    txid: str
    amount: int  # Net change for the address in the smallest unit
    confirmed: bool
    block_height: Optional[int] = None


class ChainAdapter(ABC):
    """Abstract base class for chain adapters.

    One instance per (chain, private key) pair. The private key never
    leaves the adapter except as signatures.
    """

    def __init__(
        self,
        config: ChainConfig,
        private_key: bytes,
        rpc_url: Optional[str] = None,
        timeout: Optional[float] = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize adapter.

        Args:
            config: Static network parameters
            private_key: 32-byte secp256k1 private key
            rpc_url: Endpoint override (defaults to config.rpc_url)
            timeout: HTTP timeout in seconds, None to disable
            transport: Optional httpx transport (used by tests)
        """
        if len(private_key) != 32:
            raise ValueError("Private key must be 32 bytes")

        self.config = config
        self.rpc_url = (rpc_url or config.rpc_url).rstrip("/")
        self._private_key = bytes(private_key)
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._state = AdapterState.DISCONNECTED

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(chain={self.chain}, state={self._state.value})"

    async def __aenter__(self) -> "ChainAdapter":
        await self.connect()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.disconnect()

    @property
    def chain(self) -> str:
        return self.config.chain

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def symbol(self) -> str:
        """Native asset symbol."""
        return self.config.symbol

    @property
    def state(self) -> AdapterState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is AdapterState.CONNECTED

    # ------------------------------------------------------------------
    # Connection handling
    # ------------------------------------------------------------------

    def _open_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
        return self._client

    async def _close_client(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _require_connected(self) -> httpx.AsyncClient:
        if self._state is not AdapterState.CONNECTED or self._client is None:
            raise ConnectionFailure(self.chain, "adapter is not connected")
        return self._client

    @abstractmethod
    async def connect(self) -> None:
        """Verify the backend is reachable.

        Raises:
            ConnectionFailure: If the backend cannot be reached
        """
        pass

    async def disconnect(self) -> None:
        """Release the network handle. Safe to call in any state."""
        await self._close_client()
        if self._state is AdapterState.CONNECTED:
            logger.info(f"Disconnected from {self.name}")
        self._state = AdapterState.DISCONNECTED

    # ------------------------------------------------------------------
    # Capability set
    # ------------------------------------------------------------------

    @abstractmethod
    def get_address(self) -> str:
        """Address controlled by the adapter's key."""
        pass

    @abstractmethod
    def validate_address(self, address: str) -> bool:
        """Format-only address check. Never performs I/O."""
        pass

    @abstractmethod
    async def get_balance(self, token: Optional[str] = None) -> Balance:
        """Get native balance, or a token balance when token is given."""
        pass

    @abstractmethod
    async def estimate_fee(self, request: PaymentRequest) -> FeeEstimate:
        """Estimate the network fee for a payment without submitting it."""
        pass

    @abstractmethod
    async def send_transaction(self, request: PaymentRequest) -> str:
        """Sign and submit a payment.

        Returns:
            Transaction id

        Raises:
            AddressValidationFailure: If the recipient is malformed
            TransactionFailure: If the backend rejects the transaction
            ConnectionFailure: If the backend cannot be reached
        """
        pass

    @abstractmethod
    def sign_message(self, message: Union[str, bytes]) -> str:
        """Sign a message with the chain's canonical message-signing scheme."""
        pass

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _check_request(self, request: PaymentRequest) -> None:
        if request.chain != self.chain:
            raise TransactionFailure(
                self.chain, f"request is for chain {request.chain!r}"
            )
        if request.from_address and request.from_address.lower() != self.get_address().lower():
            raise TransactionFailure(
                self.chain, f"sender {request.from_address} is not this wallet's address"
            )

    def _parse_amount(self, amount: str, decimals: int) -> int:
        try:
            value = to_base_units(amount, decimals)
        except ValueError as e:
            raise TransactionFailure(self.chain, str(e)) from e
        if value == 0:
            raise TransactionFailure(self.chain, "amount must be greater than zero")
        if value > MAX_AMOUNT:
            raise TransactionFailure(self.chain, f"amount {amount} is too large")
        return value

    def explorer_url(self, tx_hash: Optional[str] = None) -> str:
        """Block explorer link for a transaction, or the explorer root."""
        if tx_hash:
            return f"{self.config.explorer_url}/tx/{tx_hash}"
        return self.config.explorer_url

    def address_explorer_url(self, address: Optional[str] = None) -> str:
        """Block explorer link for an address (defaults to our own)."""
        return f"{self.config.explorer_url}/address/{address or self.get_address()}"

    def info(self) -> dict:
        """Non-secret description of the adapter."""
        return {
            "chain": self.chain,
            "name": self.name,
            "chain_id": self.config.chain_id,
            "symbol": self.symbol,
            "decimals": self.config.decimals,
            "rpc_url": self.rpc_url,
            "explorer_url": self.config.explorer_url,
            "state": self._state.value,
        }
