"""Pytest configuration and fixtures."""

import json
import os
from typing import Any, Callable, Optional

import httpx
import pytest

# Keep a developer's .env / shell out of the tests
os.environ.pop("WALLET_SEED_PHRASE", None)
os.environ.pop("BTC_TESTNET", None)

from seedchain.config import Settings
from seedchain.hdwallet.keys import KeyManager

ABANDON_PHRASE = (
    "abandon abandon abandon abandon abandon abandon "
    "abandon abandon abandon abandon abandon about"
)
HARDHAT_PHRASE = "test test test test test test test test test test test junk"

HARDHAT_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
HARDHAT_KEY = bytes.fromhex("ac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80")

ETH_RPC = "https://eth.test"
POLYGON_RPC = "https://polygon.test"
BSC_RPC = "https://bsc.test"
ARBITRUM_RPC = "https://arbitrum.test"
ESPLORA = "https://esplora.test/api"


class RpcBackend:
    """In-memory JSON-RPC node.

    ``results`` maps method -> result, or method -> callable(params) -> result.
    ``errors`` maps method -> JSON-RPC error message.
    """

    def __init__(
        self,
        results: Optional[dict[str, Any]] = None,
        errors: Optional[dict[str, str]] = None,
    ):
        self.results = dict(results or {})
        self.errors = dict(errors or {})
        self.calls: list[dict] = []

    def handle(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        self.calls.append(payload)
        method = payload["method"]
        reply = {"jsonrpc": "2.0", "id": payload["id"]}

        if method in self.errors:
            reply["error"] = {"code": -32000, "message": self.errors[method]}
        elif method in self.results:
            result = self.results[method]
            reply["result"] = result(payload["params"]) if callable(result) else result
        else:
            reply["error"] = {"code": -32601, "message": f"method {method} not found"}

        return httpx.Response(200, json=reply)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    @property
    def methods(self) -> list[str]:
        return [call["method"] for call in self.calls]

    def params(self, method: str) -> list:
        """Params of the last call to a method."""
        return [call["params"] for call in self.calls if call["method"] == method][-1]


class EsploraBackend:
    """In-memory Esplora REST API.

    ``routes`` maps (HTTP method, path below /api) -> response or
    callable(request) -> response. A plain dict/list value is served as JSON.
    """

    def __init__(self, routes: Optional[dict[tuple[str, str], Any]] = None):
        self.routes = dict(routes or {})
        self.requests: list[httpx.Request] = []

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path.startswith("/api"):
            path = path[len("/api"):]

        route = self.routes.get((request.method, path))
        if route is None:
            return httpx.Response(404, text="not found")
        if callable(route):
            return route(request)
        if isinstance(route, httpx.Response):
            return route
        return httpx.Response(200, json=route)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)


def failing_transport() -> httpx.MockTransport:
    """Transport whose every request fails to connect."""
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    return httpx.MockTransport(handler)


def routing_transport(routes: dict[str, Callable[[httpx.Request], httpx.Response]]) -> httpx.MockTransport:
    """Dispatch requests to per-host handlers; unknown hosts fail to connect."""
    def handler(request: httpx.Request) -> httpx.Response:
        target = routes.get(request.url.host)
        if target is None:
            raise httpx.ConnectError("connection refused", request=request)
        return target(request)

    return httpx.MockTransport(handler)


def abi_uint(value: int) -> str:
    return "0x" + hex(value)[2:].zfill(64)


def abi_string(value: str) -> str:
    raw = value.encode()
    padded = raw + b"\x00" * (-len(raw) % 32)
    return "0x" + (32).to_bytes(32, "big").hex() + len(raw).to_bytes(32, "big").hex() + padded.hex()


@pytest.fixture
def settings() -> Settings:
    """Settings pointing every chain at a fake endpoint."""
    return Settings(
        _env_file=None,
        eth_rpc_url=ETH_RPC,
        polygon_rpc_url=POLYGON_RPC,
        bsc_rpc_url=BSC_RPC,
        arbitrum_rpc_url=ARBITRUM_RPC,
        btc_api_url=ESPLORA,
        btc_testnet=False,
        wallet_seed_phrase=None,
        http_timeout=5.0,
    )


@pytest.fixture
def abandon_keys() -> KeyManager:
    return KeyManager(ABANDON_PHRASE)


@pytest.fixture
def hardhat_keys() -> KeyManager:
    return KeyManager(HARDHAT_PHRASE)
