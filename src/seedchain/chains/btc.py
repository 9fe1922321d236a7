"""Bitcoin chain adapter backed by an Esplora REST API.

Keys derive at m/84'/0'/0'/0/0 and the wallet address is native SegWit
(P2WPKH, bc1q...). Balances, UTXOs and fee estimates come from Esplora;
transactions are built and signed locally with bitcoinlib (see btc_tx)
and broadcast with POST /tx.
"""

import base64
import logging
import math
from decimal import Decimal
from typing import Any, Optional, Union

import httpx
from bip_utils import P2WPKHAddrDecoder, P2WPKHAddrEncoder, Secp256k1PrivateKey
from bitcoinlib.encoding import double_sha256, int_to_varbyteint
from eth_keys import keys as eth_keys

from seedchain.chains.base import (
    DEFAULT_TIMEOUT,
    AdapterState,
    Balance,
    ChainAdapter,
    FeeEstimate,
    PaymentRequest,
    TransactionRecord,
)
from seedchain.chains.btc_tx import (
    DUST_LIMIT,
    MAINNET,
    TESTNET,
    InsufficientFunds,
    TxOutput,
    Utxo,
    build_signed_transaction,
    estimate_vsize,
    is_valid_address,
    p2wpkh_script,
    script_for_address,
    select_utxos,
)
from seedchain.errors import (
    AddressValidationFailure,
    ConnectionFailure,
    TransactionFailure,
    UnsupportedToken,
)
from seedchain.networks import BITCOIN_TESTNET, CHAINS

logger = logging.getLogger(__name__)

# Confirmation target (blocks) used from the fee-estimates table
FEE_TARGET_BLOCKS = 6

MESSAGE_MAGIC = b"\x18Bitcoin Signed Message:\n"

# BIP-137 header base for P2WPKH (native SegWit) signatures
P2WPKH_HEADER_BASE = 39


def message_hash(message: bytes) -> bytes:
    """Double-SHA256 of the Bitcoin signed-message envelope."""
    return double_sha256(MESSAGE_MAGIC + int_to_varbyteint(len(message)) + message)


class BitcoinAdapter(ChainAdapter):
    """Adapter for Bitcoin mainnet (or testnet)."""

    def __init__(
        self,
        private_key: bytes,
        rpc_url: Optional[str] = None,
        testnet: bool = False,
        timeout: Optional[float] = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        config = BITCOIN_TESTNET if testnet else CHAINS["bitcoin"]
        super().__init__(config, private_key, rpc_url, timeout, transport)

        self.testnet = testnet
        self._network = TESTNET if testnet else MAINNET
        self._pubkey = (
            Secp256k1PrivateKey.FromBytes(self._private_key)
            .PublicKey()
            .RawCompressed()
            .ToBytes()
        )
        self._address = P2WPKHAddrEncoder.EncodeKey(self._pubkey, hrp=self._network.hrp)
        self._pubkey_hash = P2WPKHAddrDecoder.DecodeAddr(self._address, hrp=self._network.hrp)
        self._script = p2wpkh_script(self._pubkey_hash)

    @property
    def public_key(self) -> bytes:
        """Compressed SEC1 public key."""
        return self._pubkey

    # ------------------------------------------------------------------
    # Esplora HTTP
    # ------------------------------------------------------------------

    async def _get(self, path: str) -> Any:
        client = self._require_connected()
        try:
            response = await client.get(f"{self.rpc_url}{path}")
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as e:
            raise ConnectionFailure(self.chain, f"GET {path} failed: {e}") from e
        except ValueError as e:
            raise ConnectionFailure(self.chain, f"GET {path} returned invalid JSON") from e

    async def _broadcast(self, raw_tx: bytes) -> str:
        client = self._require_connected()
        try:
            response = await client.post(f"{self.rpc_url}/tx", content=raw_tx.hex())
        except httpx.HTTPError as e:
            raise ConnectionFailure(self.chain, f"broadcast failed: {e}") from e

        if response.status_code != 200:
            reason = response.text.strip() or f"HTTP {response.status_code}"
            logger.error(f"Broadcast rejected on {self.name}: {reason}")
            raise TransactionFailure(self.chain, reason)
        return response.text.strip()

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the HTTP client. Esplora needs no handshake."""
        self._open_client()
        self._state = AdapterState.CONNECTED
        logger.info(f"Connected to {self.name} at {self.rpc_url}")

    # ------------------------------------------------------------------
    # Addresses
    # ------------------------------------------------------------------

    def get_address(self) -> str:
        return self._address

    def validate_address(self, address: str) -> bool:
        """bech32 (bc1/tb1) or base58check (1.../3...) for this network."""
        return is_valid_address(address, self._network)

    # ------------------------------------------------------------------
    # Balance / history
    # ------------------------------------------------------------------

    def _check_token(self, token: Optional[str]) -> None:
        if token is not None and token.upper() != self.symbol:
            raise UnsupportedToken(self.chain, token)

    async def get_balance(self, token: Optional[str] = None) -> Balance:
        """Funded minus spent, confirmed (chain_stats) plus unconfirmed (mempool_stats)."""
        self._check_token(token)
        data = await self._get(f"/address/{self._address}")
        try:
            amount = 0
            for key in ("chain_stats", "mempool_stats"):
                stats = data.get(key) or {"funded_txo_sum": 0, "spent_txo_sum": 0}
                amount += int(stats["funded_txo_sum"]) - int(stats["spent_txo_sum"])
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise ConnectionFailure(self.chain, f"unexpected address payload: {e}") from e

        return Balance(amount=amount, decimals=self.config.decimals, symbol=self.symbol)

    async def get_utxos(self) -> list[Utxo]:
        """Unspent outputs of our address, confirmed or not."""
        data = await self._get(f"/address/{self._address}/utxo")
        try:
            return [Utxo(txid=u["txid"], vout=int(u["vout"]), value=int(u["value"])) for u in data]
        except (KeyError, TypeError, ValueError) as e:
            raise ConnectionFailure(self.chain, f"unexpected utxo payload: {e}") from e

    async def get_transaction_history(self) -> list[TransactionRecord]:
        """Recent transactions touching our address (newest first)."""
        data = await self._get(f"/address/{self._address}/txs")

        records = []
        for tx in data:
            received = sum(
                int(out.get("value", 0))
                for out in tx.get("vout", [])
                if out.get("scriptpubkey_address") == self._address
            )
            spent = sum(
                int(vin["prevout"].get("value", 0))
                for vin in tx.get("vin", [])
                if vin.get("prevout") and vin["prevout"].get("scriptpubkey_address") == self._address
            )
            status = tx.get("status", {})
            records.append(
                TransactionRecord(
                    txid=tx["txid"],
                    amount=received - spent,
                    confirmed=bool(status.get("confirmed")),
                    block_height=status.get("block_height"),
                )
            )
        return records

    # ------------------------------------------------------------------
    # Fees
    # ------------------------------------------------------------------

    async def get_fee_rate(self) -> int:
        """Fee rate in sat/vB for a ~6 block confirmation target."""
        estimates = await self._get("/fee-estimates")
        if not isinstance(estimates, dict) or not estimates:
            raise ConnectionFailure(self.chain, "no fee estimates available")

        try:
            table = {int(target): Decimal(str(rate)) for target, rate in estimates.items()}
        except (TypeError, ValueError, ArithmeticError) as e:
            raise ConnectionFailure(self.chain, f"unexpected fee-estimates payload: {e}") from e

        # Nearest target at or above the preferred one, else the slowest available
        slower = [t for t in table if t >= FEE_TARGET_BLOCKS]
        target = min(slower) if slower else max(table)
        return max(1, math.ceil(table[target]))

    async def _fee_rate(self, request: PaymentRequest) -> int:
        if request.fee_rate is not None:
            if request.fee_rate < 1:
                raise TransactionFailure(self.chain, "fee rate must be at least 1 sat/vB")
            return request.fee_rate
        return await self.get_fee_rate()

    async def estimate_fee(self, request: PaymentRequest) -> FeeEstimate:
        """fee rate * estimated vsize of a one-input, two-output transaction.

        Uses the real UTXO set to size the transaction when it can cover
        the amount.
        """
        self._require_connected()
        self._check_request(request)
        self._check_token(request.token)
        if not self.validate_address(request.to_address):
            raise AddressValidationFailure(self.chain, request.to_address)

        amount = self._parse_amount(request.amount, self.config.decimals)
        fee_rate = await self._fee_rate(request)
        recipient_script = script_for_address(request.to_address, self._network)

        utxos = await self.get_utxos()
        try:
            selection = select_utxos(utxos, amount, fee_rate, recipient_script, self._script)
            vsize, fee = selection.vsize, selection.fee
        except InsufficientFunds:
            vsize = estimate_vsize(1, [recipient_script, self._script])
            fee = vsize * fee_rate

        return FeeEstimate(
            fee=fee,
            price=fee_rate,
            limit=vsize,
            decimals=self.config.decimals,
            symbol=self.symbol,
        )

    # ------------------------------------------------------------------
    # Sending / signing
    # ------------------------------------------------------------------

    async def send_transaction(self, request: PaymentRequest) -> str:
        """Select UTXOs, sign every input (BIP-143) and broadcast."""
        self._require_connected()
        self._check_request(request)
        self._check_token(request.token)
        if not self.validate_address(request.to_address):
            raise AddressValidationFailure(self.chain, request.to_address)

        amount = self._parse_amount(request.amount, self.config.decimals)
        if amount < DUST_LIMIT:
            raise TransactionFailure(self.chain, f"amount {amount} sat is below the dust limit")

        recipient_script = script_for_address(request.to_address, self._network)
        fee_rate = await self._fee_rate(request)
        utxos = await self.get_utxos()

        try:
            selection = select_utxos(utxos, amount, fee_rate, recipient_script, self._script)
        except InsufficientFunds as e:
            raise TransactionFailure(self.chain, str(e)) from e

        outputs = [TxOutput(script=recipient_script, value=amount)]
        if selection.change:
            outputs.append(TxOutput(script=self._script, value=selection.change))

        try:
            raw_tx, txid = build_signed_transaction(
                self._private_key, selection.inputs, outputs, self._network
            )
        except ValueError as e:
            raise TransactionFailure(self.chain, str(e)) from e
        logger.debug(
            f"Built tx {txid}: {len(selection.inputs)} inputs, fee {selection.fee} sat "
            f"({fee_rate} sat/vB), change {selection.change} sat"
        )

        broadcast_txid = await self._broadcast(raw_tx)
        logger.info(f"Broadcast {request.amount} BTC to {request.to_address}: {broadcast_txid}")
        return broadcast_txid or txid

    def sign_message(self, message: Union[str, bytes]) -> str:
        """BIP-137 compact signature, base64-encoded.

        Header byte is 39 + recovery id (P2WPKH address type).
        """
        if isinstance(message, str):
            message = message.encode("utf-8")

        signature = eth_keys.PrivateKey(self._private_key).sign_msg_hash(message_hash(message))
        compact = (
            bytes([P2WPKH_HEADER_BASE + signature.v])
            + signature.r.to_bytes(32, "big")
            + signature.s.to_bytes(32, "big")
        )
        return base64.b64encode(compact).decode("ascii")
