"""Tests for the EVM chain adapter."""

import httpx
import pytest
import pytest_asyncio
from eth_account import Account
from eth_account.messages import encode_defunct

from conftest import (
    HARDHAT_ADDRESS,
    HARDHAT_KEY,
    RpcBackend,
    abi_string,
    abi_uint,
    failing_transport,
)
from seedchain.chains.base import AdapterState, PaymentRequest
from seedchain.chains.evm import (
    ERC20_BALANCE_OF,
    ERC20_DECIMALS,
    ERC20_SYMBOL,
    EVMAdapter,
    decode_string,
    encode_transfer,
)
from seedchain.errors import (
    AddressValidationFailure,
    ConnectionFailure,
    TransactionFailure,
    UnsupportedChain,
    UnsupportedToken,
)

RECIPIENT = "0x70997970c51812dc3a010c7d01b50e0d17dc79c8"
USDC_ETHEREUM = "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48"


def erc20_call(balance: int = 5_000_000, decimals: int = 6, symbol: str = "USDC"):
    """eth_call handler answering balanceOf/decimals/symbol."""
    def handler(params):
        data = params[0]["data"]
        if data.startswith(ERC20_BALANCE_OF):
            return abi_uint(balance)
        if data.startswith(ERC20_DECIMALS):
            return abi_uint(decimals)
        if data.startswith(ERC20_SYMBOL):
            return abi_string(symbol)
        return "0x"

    return handler


def make_request(**overrides) -> PaymentRequest:
    fields = dict(
        chain="ethereum",
        from_address=HARDHAT_ADDRESS,
        to_address=RECIPIENT,
        amount="0.01",
    )
    fields.update(overrides)
    return PaymentRequest(**fields)


@pytest.fixture
def backend() -> RpcBackend:
    return RpcBackend(
        results={
            "eth_chainId": "0x1",
            "eth_getBalance": "0xde0b6b3a7640000",
            "eth_gasPrice": "0x3b9aca00",
            "eth_getTransactionCount": "0x7",
            "eth_estimateGas": "0xfde8",
            "eth_call": erc20_call(),
            "eth_sendRawTransaction": "0x" + "ab" * 32,
        }
    )


@pytest.fixture
def adapter(backend) -> EVMAdapter:
    return EVMAdapter("ethereum", HARDHAT_KEY, rpc_url="https://eth.test", transport=backend.transport)


@pytest_asyncio.fixture
async def connected(adapter):
    await adapter.connect()
    yield adapter
    await adapter.disconnect()


class TestEVMAddresses:
    """Tests for local address operations."""

    def test_address_from_key(self, adapter):
        """Hardhat key 0 gives its well-known address."""
        assert adapter.get_address() == HARDHAT_ADDRESS

    def test_not_evm_chain(self):
        """Bitcoin is not an EVM chain."""
        with pytest.raises(UnsupportedChain):
            EVMAdapter("bitcoin", HARDHAT_KEY)

    def test_bad_key_length(self):
        """Keys must be 32 bytes."""
        with pytest.raises(ValueError):
            EVMAdapter("ethereum", b"\x01" * 31)

    def test_validate_checksummed(self, adapter):
        """EIP-55 addresses validate."""
        assert adapter.validate_address(HARDHAT_ADDRESS)

    def test_validate_single_case(self, adapter):
        """All-lower and all-upper hex validate."""
        assert adapter.validate_address(HARDHAT_ADDRESS.lower())
        assert adapter.validate_address("0x" + HARDHAT_ADDRESS[2:].upper())

    def test_validate_bad_checksum(self, adapter):
        """Mixed case with a wrong checksum is rejected."""
        assert not adapter.validate_address("0xF39Fd6e51aad88F6F4ce6aB8827279cffFb92266")

    @pytest.mark.parametrize("address", [
        "",
        "0x1234",
        "f39Fd6e51aad88F6F4ce6aB8827279cffFb92266",
        "0xg39fd6e51aad88f6f4ce6ab8827279cfffb92266",
        "bc1qcr8te4kr609gcawutmrza0j4xv80jy8z306fyu",
        None,
    ])
    def test_validate_rejects(self, adapter, address):
        """Malformed strings are rejected."""
        assert not adapter.validate_address(address)

    def test_explorer_urls(self, adapter):
        """Explorer links for transactions and addresses."""
        assert adapter.explorer_url("0xabc") == "https://etherscan.io/tx/0xabc"
        assert adapter.address_explorer_url() == f"https://etherscan.io/address/{HARDHAT_ADDRESS}"

    def test_info_has_no_key(self, adapter):
        """info() exposes no key material."""
        info = adapter.info()

        assert info["chain_id"] == 1
        assert info["symbol"] == "ETH"
        assert info["state"] == "disconnected"
        assert HARDHAT_KEY.hex() not in repr(info)
        assert HARDHAT_KEY.hex() not in repr(adapter)


class TestEVMConnection:
    """Tests for connect/disconnect."""

    @pytest.mark.asyncio
    async def test_connect(self, adapter, backend):
        """connect() checks eth_chainId."""
        await adapter.connect()

        assert adapter.state is AdapterState.CONNECTED
        assert backend.methods == ["eth_chainId"]
        await adapter.disconnect()

    @pytest.mark.asyncio
    async def test_wrong_chain_id(self, adapter, backend):
        """A node on another chain is refused."""
        backend.results["eth_chainId"] = "0x89"

        with pytest.raises(ConnectionFailure) as exc_info:
            await adapter.connect()

        assert "137" in exc_info.value.reason
        assert adapter.state is AdapterState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_unreachable(self):
        """Transport errors become ConnectionFailure."""
        adapter = EVMAdapter("ethereum", HARDHAT_KEY, transport=failing_transport())

        with pytest.raises(ConnectionFailure):
            await adapter.connect()

        assert not adapter.is_connected

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        """Non-JSON replies become ConnectionFailure."""
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>"))
        adapter = EVMAdapter("ethereum", HARDHAT_KEY, transport=transport)

        with pytest.raises(ConnectionFailure):
            await adapter.connect()

    @pytest.mark.asyncio
    async def test_http_error(self):
        """HTTP errors become ConnectionFailure."""
        transport = httpx.MockTransport(lambda request: httpx.Response(503, text="unavailable"))
        adapter = EVMAdapter("ethereum", HARDHAT_KEY, transport=transport)

        with pytest.raises(ConnectionFailure):
            await adapter.connect()

    @pytest.mark.asyncio
    async def test_disconnect_idempotent(self, connected):
        """disconnect() can be called twice."""
        await connected.disconnect()
        await connected.disconnect()

        assert connected.state is AdapterState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_context_manager(self, adapter):
        """async with connects and disconnects."""
        async with adapter:
            assert adapter.is_connected

        assert not adapter.is_connected

    @pytest.mark.asyncio
    async def test_operations_require_connection(self, adapter, backend):
        """Network operations fail before connect()."""
        with pytest.raises(ConnectionFailure):
            await adapter.get_balance()
        with pytest.raises(ConnectionFailure):
            await adapter.estimate_fee(make_request())
        with pytest.raises(ConnectionFailure):
            await adapter.send_transaction(make_request(amount="0.01"))

        assert backend.calls == []


class TestEVMBalance:
    """Tests for native and ERC-20 balances."""

    @pytest.mark.asyncio
    async def test_native_balance(self, connected, backend):
        """Native balance comes from eth_getBalance."""
        balance = await connected.get_balance()

        assert balance.amount == 10**18
        assert balance.symbol == "ETH"
        assert balance.formatted == "1"
        assert backend.params("eth_getBalance") == [HARDHAT_ADDRESS, "latest"]

    @pytest.mark.asyncio
    async def test_native_symbol_is_native(self, connected):
        """The native symbol means the native balance."""
        balance = await connected.get_balance("eth")

        assert balance.symbol == "ETH"

    @pytest.mark.asyncio
    async def test_token_by_symbol(self, connected, backend):
        """Known symbols resolve to their contract."""
        balance = await connected.get_balance("USDC")

        assert balance.amount == 5_000_000
        assert balance.decimals == 6
        assert balance.symbol == "USDC"
        assert balance.formatted == "5"
        assert backend.params("eth_call")[0]["to"].lower() == USDC_ETHEREUM

    @pytest.mark.asyncio
    async def test_registered_token_uses_table(self, connected, backend):
        """Registered tokens take decimals and symbol from the token table."""
        backend.results["eth_call"] = erc20_call(decimals=18, symbol="XXX")

        balance = await connected.get_balance("USDC")

        assert balance.decimals == 6
        assert balance.symbol == "USDC"
        assert backend.methods.count("eth_call") == 1

    @pytest.mark.asyncio
    async def test_token_by_contract_address(self, connected, backend):
        """Contract addresses are queried directly."""
        backend.results["eth_call"] = erc20_call(balance=42, decimals=18, symbol="FOO")
        contract = "0x" + "12" * 20

        balance = await connected.get_balance(contract)

        assert balance.amount == 42
        assert balance.symbol == "FOO"
        assert backend.params("eth_call")[0]["to"].lower() == contract

    @pytest.mark.asyncio
    async def test_unknown_token(self, connected):
        """Unknown symbols raise UnsupportedToken."""
        with pytest.raises(UnsupportedToken):
            await connected.get_balance("DOGE")

    @pytest.mark.asyncio
    async def test_rpc_error_is_not_zero(self, connected, backend):
        """RPC errors are raised, not reported as zero."""
        backend.errors["eth_getBalance"] = "header not found"

        with pytest.raises(ConnectionFailure):
            await connected.get_balance()


class TestEVMFees:
    """Tests for fee estimation."""

    @pytest.mark.asyncio
    async def test_native_transfer(self, connected):
        """Native transfers use 21000 gas at the node price."""
        fee = await connected.estimate_fee(make_request())

        assert fee.price == 10**9
        assert fee.limit == 21000
        assert fee.fee == 21000 * 10**9
        assert fee.symbol == "ETH"
        assert fee.formatted == "0.000021"

    @pytest.mark.asyncio
    async def test_overrides_skip_rpc(self, connected, backend):
        """Gas overrides avoid the RPC round trips."""
        fee = await connected.estimate_fee(make_request(gas_price=2, gas_limit=50_000))

        assert fee.fee == 100_000
        assert "eth_gasPrice" not in backend.methods

    @pytest.mark.asyncio
    async def test_token_transfer_estimates_gas(self, connected, backend):
        """Token gas is estimated against the contract."""
        fee = await connected.estimate_fee(make_request(token="USDC", amount="2.5"))

        assert fee.limit == 65000
        call = backend.params("eth_estimateGas")[0]
        assert call["to"].lower() == USDC_ETHEREUM
        assert call["from"] == HARDHAT_ADDRESS
        assert call["data"] == encode_transfer(RECIPIENT, 2_500_000)

    @pytest.mark.asyncio
    async def test_estimate_gas_revert(self, connected, backend):
        """A reverting estimate is a TransactionFailure."""
        backend.errors["eth_estimateGas"] = "execution reverted: transfer amount exceeds balance"

        with pytest.raises(TransactionFailure) as exc_info:
            await connected.estimate_fee(make_request(token="USDC"))

        assert "exceeds balance" in exc_info.value.reason


class TestEVMSend:
    """Tests for transaction submission."""

    @pytest.mark.asyncio
    async def test_native_transfer(self, connected, backend):
        """Signed native transfer recovers to our address."""
        txid = await connected.send_transaction(make_request(amount="0.01"))

        assert txid == "0x" + "ab" * 32
        assert backend.params("eth_getTransactionCount") == [HARDHAT_ADDRESS, "pending"]

        raw = backend.params("eth_sendRawTransaction")[0]
        assert raw.startswith("0x")
        assert Account.recover_transaction(raw) == HARDHAT_ADDRESS

    @pytest.mark.asyncio
    async def test_token_transfer(self, connected, backend):
        """Token transfer carries transfer() calldata."""
        await connected.send_transaction(make_request(token="USDC", amount="1"))

        raw = backend.params("eth_sendRawTransaction")[0]
        assert Account.recover_transaction(raw) == HARDHAT_ADDRESS
        # Calldata is embedded in the signed payload
        assert encode_transfer(RECIPIENT, 1_000_000)[2:] in raw

    @pytest.mark.asyncio
    async def test_rejected_by_node(self, connected, backend):
        """Node rejection reasons reach the caller."""
        backend.errors["eth_sendRawTransaction"] = "insufficient funds for gas * price + value"

        with pytest.raises(TransactionFailure) as exc_info:
            await connected.send_transaction(make_request())

        assert "insufficient funds" in exc_info.value.reason

    @pytest.mark.asyncio
    async def test_invalid_recipient(self, connected, backend):
        """Malformed recipients never reach the node."""
        with pytest.raises(AddressValidationFailure) as exc_info:
            await connected.send_transaction(make_request(to_address="0x1234"))

        assert isinstance(exc_info.value, TransactionFailure)
        assert "eth_sendRawTransaction" not in backend.methods

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", ["-1", "abc", "0", "0.0000000000000000001", "1e999999"])
    async def test_invalid_amount(self, connected, amount):
        """Bad amounts are TransactionFailure."""
        with pytest.raises(TransactionFailure):
            await connected.send_transaction(make_request(amount=amount))

    @pytest.mark.asyncio
    async def test_token_amount_beyond_uint256(self, connected, backend):
        """Amounts that do not fit in uint256 are rejected before signing."""
        with pytest.raises(TransactionFailure):
            await connected.send_transaction(make_request(token="USDC", amount="1e80"))

        assert "eth_sendRawTransaction" not in backend.methods

    @pytest.mark.asyncio
    async def test_wrong_chain(self, connected):
        """Requests for another chain are refused."""
        with pytest.raises(TransactionFailure):
            await connected.send_transaction(make_request(chain="polygon"))

    @pytest.mark.asyncio
    async def test_foreign_sender(self, connected):
        """Requests from another address are refused."""
        with pytest.raises(TransactionFailure):
            await connected.send_transaction(make_request(from_address=RECIPIENT))


class TestEVMSigning:
    """Tests for EIP-191 message signing."""

    def test_sign_text_recovers(self, adapter):
        """EIP-191 text signature recovers our address."""
        signature = adapter.sign_message("hello")

        assert signature.startswith("0x")
        assert len(signature) == 132
        recovered = Account.recover_message(encode_defunct(text="hello"), signature=signature)
        assert recovered == HARDHAT_ADDRESS

    def test_sign_bytes_recovers(self, adapter):
        """EIP-191 bytes signature recovers our address."""
        signature = adapter.sign_message(b"\x00\x01")

        recovered = Account.recover_message(encode_defunct(primitive=b"\x00\x01"), signature=signature)
        assert recovered == HARDHAT_ADDRESS

    def test_deterministic(self, adapter):
        """Signing the same message twice is identical."""
        assert adapter.sign_message("hello") == adapter.sign_message("hello")


class TestERC20Encoding:

    def test_encode_transfer(self):
        """transfer() calldata layout."""
        data = encode_transfer("0x" + "00" * 19 + "01", 1)

        assert data == "0xa9059cbb" + "0" * 63 + "1" + "0" * 63 + "1"

    def test_encode_transfer_rejects_overflow(self):
        """transfer() arguments stay exactly 32 bytes each."""
        assert len(encode_transfer(RECIPIENT, 2**256 - 1)) == 10 + 128
        with pytest.raises(ValueError):
            encode_transfer(RECIPIENT, 2**256)

    def test_decode_abi_string(self):
        """Dynamic ABI strings decode."""
        assert decode_string(abi_string("USDT")) == "USDT"

    def test_decode_bytes32_symbol(self):
        """bytes32 symbols decode with padding stripped."""
        assert decode_string("0x" + b"MKR".ljust(32, b"\x00").hex()) == "MKR"
