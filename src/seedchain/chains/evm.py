"""EVM chain adapter (Ethereum, Polygon, BSC, Arbitrum).

Talks raw JSON-RPC over httpx. Transactions are legacy EIP-155
(gasPrice + chainId) signed locally with eth_account. ERC-20 calls are
hand-encoded from their 4-byte selectors.
"""

import asyncio
import itertools
import logging
import re
from typing import Any, Optional, Union

import httpx
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_utils import is_checksum_address, to_checksum_address

from seedchain.chains.base import (
    DEFAULT_TIMEOUT,
    AdapterState,
    Balance,
    ChainAdapter,
    FeeEstimate,
    PaymentRequest,
)
from seedchain.errors import (
    AddressValidationFailure,
    ConnectionFailure,
    TransactionFailure,
    UnsupportedChain,
    UnsupportedToken,
)
from seedchain.networks import EVM_FAMILY, get_chain_config
from seedchain.tokens import TokenInfo, get_token

logger = logging.getLogger(__name__)

# ERC-20 function selectors
ERC20_BALANCE_OF = "0x70a08231"  # balanceOf(address)
ERC20_DECIMALS = "0x313ce567"  # decimals()
ERC20_SYMBOL = "0x95d89b41"  # symbol()
ERC20_TRANSFER = "0xa9059cbb"  # transfer(address,uint256)

NATIVE_TRANSFER_GAS = 21000

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def _pad_address(address: str) -> str:
    return address.lower().replace("0x", "").zfill(64)


def _pad_uint(value: int) -> str:
    if not 0 <= value < 2**256:
        raise ValueError(f"{value} does not fit in uint256")
    return hex(value)[2:].zfill(64)


def encode_balance_of(owner: str) -> str:
    """Calldata for balanceOf(owner)."""
    return ERC20_BALANCE_OF + _pad_address(owner)


def encode_transfer(recipient: str, amount: int) -> str:
    """Calldata for transfer(recipient, amount)."""
    return ERC20_TRANSFER + _pad_address(recipient) + _pad_uint(amount)


def decode_uint(result: str) -> int:
    """Decode a uint256 eth_call result."""
    if not result or result == "0x":
        raise ValueError("empty call result")
    return int(result, 16)


def decode_string(result: str) -> str:
    """Decode an ABI string (or legacy bytes32) eth_call result."""
    data = bytes.fromhex(result[2:] if result.startswith("0x") else result)
    if not data:
        raise ValueError("empty call result")

    if len(data) == 32:
        # Some older tokens (MKR, SAI) return bytes32
        return data.rstrip(b"\x00").decode("utf-8", errors="replace")

    offset = int.from_bytes(data[0:32], "big")
    length = int.from_bytes(data[offset:offset + 32], "big")
    raw = data[offset + 32:offset + 32 + length]
    return raw.decode("utf-8", errors="replace")


class EVMAdapter(ChainAdapter):
    """Adapter for EVM-compatible chains.

    One implementation serves every EVM chain; the chain id, symbol and
    default endpoint come from the network table.
    """

    def __init__(
        self,
        chain: str,
        private_key: bytes,
        rpc_url: Optional[str] = None,
        timeout: Optional[float] = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        config = get_chain_config(chain)
        if config is None or config.family != EVM_FAMILY:
            raise UnsupportedChain(chain, f"{chain!r} is not an EVM chain")

        super().__init__(config, private_key, rpc_url, timeout, transport)
        self._account = Account.from_key(self._private_key)
        self._request_ids = itertools.count(1)

    @property
    def chain_id(self) -> int:
        return self.config.chain_id

    # ------------------------------------------------------------------
    # JSON-RPC
    # ------------------------------------------------------------------

    async def _rpc(
        self,
        method: str,
        params: list,
        client: Optional[httpx.AsyncClient] = None,
        error_cls: type = ConnectionFailure,
    ) -> Any:
        """Make a JSON-RPC call.

        Transport failures raise ConnectionFailure. A JSON-RPC error object
        raises ``error_cls`` with the node's message.
        """
        client = client or self._require_connected()
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": next(self._request_ids),
        }

        logger.debug(f"RPC {method} -> {self.rpc_url}")
        try:
            response = await client.post(self.rpc_url, json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            raise ConnectionFailure(self.chain, f"{method} failed: {e}") from e
        except ValueError as e:
            raise ConnectionFailure(self.chain, f"{method} returned invalid JSON") from e

        if not isinstance(data, dict):
            raise ConnectionFailure(self.chain, f"{method} returned unexpected payload")

        if data.get("error"):
            error = data["error"]
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            logger.error(f"{method} error on {self.name}: {message}")
            raise error_cls(self.chain, message)

        if "result" not in data:
            raise ConnectionFailure(self.chain, f"{method} returned no result")

        return data["result"]

    async def _rpc_int(self, method: str, params: list, error_cls: type = ConnectionFailure) -> int:
        result = await self._rpc(method, params, error_cls=error_cls)
        try:
            return int(result, 16)
        except (TypeError, ValueError) as e:
            raise ConnectionFailure(self.chain, f"{method} returned {result!r}") from e

    async def _call(self, to: str, data: str) -> str:
        """eth_call against the latest block."""
        return await self._rpc("eth_call", [{"to": to, "data": data}, "latest"])

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the HTTP client and check the endpoint's chain id."""
        client = self._open_client()
        try:
            result = await self._rpc("eth_chainId", [], client=client)
            try:
                reported = int(result, 16)
            except (TypeError, ValueError) as e:
                raise ConnectionFailure(self.chain, f"invalid chain id {result!r}") from e

            if reported != self.chain_id:
                raise ConnectionFailure(
                    self.chain,
                    f"endpoint reports chain id {reported}, expected {self.chain_id}",
                )
        except ConnectionFailure:
            await self._close_client()
            self._state = AdapterState.DISCONNECTED
            raise

        self._state = AdapterState.CONNECTED
        logger.info(f"Connected to {self.name} (chain id {self.chain_id}) at {self.rpc_url}")

    # ------------------------------------------------------------------
    # Addresses
    # ------------------------------------------------------------------

    def get_address(self) -> str:
        """EIP-55 checksummed address."""
        return self._account.address

    def validate_address(self, address: str) -> bool:
        """0x + 40 hex characters; mixed case must carry a valid EIP-55 checksum."""
        if not isinstance(address, str) or not _ADDRESS_RE.match(address):
            return False

        body = address[2:]
        if body.lower() == body or body.upper() == body:
            return True
        return is_checksum_address(address)

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    def _is_native(self, token: Optional[str]) -> bool:
        return token is None or token.upper() == self.symbol

    def _resolve_token(self, token: str) -> tuple[str, Optional[TokenInfo]]:
        """Map a registry symbol or raw contract address to a checksum address.

        Registered tokens come back with their table entry; raw contract
        addresses come back with None and are described on-chain.
        """
        if _ADDRESS_RE.match(token):
            return to_checksum_address(token), None

        info = get_token(token, self.chain)
        if info is None:
            raise UnsupportedToken(self.chain, token)
        return to_checksum_address(info.address), info

    async def _token_decimals(self, contract: str) -> int:
        result = await self._call(contract, ERC20_DECIMALS)
        try:
            return decode_uint(result)
        except ValueError as e:
            raise ConnectionFailure(self.chain, f"decimals() failed for {contract}: {e}") from e

    async def _token_symbol(self, contract: str) -> str:
        result = await self._call(contract, ERC20_SYMBOL)
        try:
            return decode_string(result)
        except ValueError as e:
            raise ConnectionFailure(self.chain, f"symbol() failed for {contract}: {e}") from e

    # ------------------------------------------------------------------
    # Balance / fees
    # ------------------------------------------------------------------

    async def get_balance(self, token: Optional[str] = None) -> Balance:
        """Get native or ERC-20 balance of our address."""
        self._require_connected()
        address = self.get_address()

        if self._is_native(token):
            wei = await self._rpc_int("eth_getBalance", [address, "latest"])
            return Balance(amount=wei, decimals=self.config.decimals, symbol=self.symbol)

        contract, info = self._resolve_token(token)
        if info is not None:
            raw_balance = await self._call(contract, encode_balance_of(address))
            decimals, symbol = info.decimals, info.symbol
        else:
            raw_balance, decimals, symbol = await asyncio.gather(
                self._call(contract, encode_balance_of(address)),
                self._token_decimals(contract),
                self._token_symbol(contract),
            )
        try:
            amount = decode_uint(raw_balance)
        except ValueError as e:
            raise ConnectionFailure(self.chain, f"balanceOf() failed for {contract}: {e}") from e

        return Balance(amount=amount, decimals=decimals, symbol=symbol)

    async def _build_call(self, request: PaymentRequest) -> tuple[str, int, bytes, Optional[int]]:
        """Resolve (to, value, data, default_gas) for a payment.

        default_gas is None when the limit must be estimated by the node.
        """
        recipient = to_checksum_address(request.to_address)

        if self._is_native(request.token):
            value = self._parse_amount(request.amount, self.config.decimals)
            return recipient, value, b"", NATIVE_TRANSFER_GAS

        contract, info = self._resolve_token(request.token)
        decimals = info.decimals if info is not None else await self._token_decimals(contract)
        amount = self._parse_amount(request.amount, decimals)
        data = encode_transfer(recipient, amount)
        return contract, 0, bytes.fromhex(data[2:]), None

    async def _gas_limit(self, request: PaymentRequest, to: str, value: int, data: bytes,
                         default_gas: Optional[int]) -> int:
        if request.gas_limit is not None:
            return request.gas_limit
        if default_gas is not None:
            return default_gas

        call = {
            "from": self.get_address(),
            "to": to,
            "value": hex(value),
            "data": "0x" + data.hex(),
        }
        return await self._rpc_int("eth_estimateGas", [call], error_cls=TransactionFailure)

    async def _gas_price(self, request: PaymentRequest) -> int:
        if request.gas_price is not None:
            return request.gas_price
        return await self._rpc_int("eth_gasPrice", [])

    async def estimate_fee(self, request: PaymentRequest) -> FeeEstimate:
        """Estimate gas_price * gas_limit for a payment."""
        self._require_connected()
        self._check_request(request)
        if not self.validate_address(request.to_address):
            raise AddressValidationFailure(self.chain, request.to_address)

        to, value, data, default_gas = await self._build_call(request)
        gas_limit = await self._gas_limit(request, to, value, data, default_gas)
        gas_price = await self._gas_price(request)

        return FeeEstimate(
            fee=gas_price * gas_limit,
            price=gas_price,
            limit=gas_limit,
            decimals=self.config.decimals,
            symbol=self.symbol,
        )

    # ------------------------------------------------------------------
    # Sending / signing
    # ------------------------------------------------------------------

    async def send_transaction(self, request: PaymentRequest) -> str:
        """Build, sign and broadcast a legacy EIP-155 transaction."""
        self._require_connected()
        self._check_request(request)
        if not self.validate_address(request.to_address):
            raise AddressValidationFailure(self.chain, request.to_address)

        to, value, data, default_gas = await self._build_call(request)
        gas_limit = await self._gas_limit(request, to, value, data, default_gas)
        gas_price = await self._gas_price(request)
        nonce = await self._rpc_int("eth_getTransactionCount", [self.get_address(), "pending"])

        tx = {
            "nonce": nonce,
            "gasPrice": gas_price,
            "gas": gas_limit,
            "to": to,
            "value": value,
            "data": data,
            "chainId": self.chain_id,
        }

        signed = self._account.sign_transaction(tx)
        raw_tx = "0x" + bytes(signed.raw_transaction).hex()

        tx_hash = await self._rpc("eth_sendRawTransaction", [raw_tx], error_cls=TransactionFailure)
        asset = self.symbol if self._is_native(request.token) else request.token
        logger.info(f"Broadcast {request.amount} {asset} on {self.name}: {tx_hash}")
        return tx_hash

    def sign_message(self, message: Union[str, bytes]) -> str:
        """EIP-191 personal_sign. Returns a 0x-prefixed 65-byte signature."""
        if isinstance(message, bytes):
            signable = encode_defunct(primitive=message)
        else:
            signable = encode_defunct(text=message)

        signed = self._account.sign_message(signable)
        return "0x" + bytes(signed.signature).hex()
