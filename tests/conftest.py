from __future__ import annotations

import base64
import json
from pathlib import Path
from typing import Any, Callable, Dict, List

import httpx
import pytest
import pytest_asyncio
import respx

from playground_services.config import Settings
from playground_services.metrics import Metrics
from playground_services.services import Services
from playground_services.tx.base58 import b58encode
from playground_services.tx.keys import Keypair, keypair_signer
from playground_services.tx.message import Transaction

IPFS_API = "https://ipfs.test/api/v0"
GATEWAY_1 = "https://gw1.test/ipfs/"
GATEWAY_2 = "https://gw2.test/ipfs/"
PUBLIC_BASE = "https://play.test"
RPC_URL = "https://rpc.devnet.test"
TESTNET_RPC_URL = "https://rpc.testnet.test"
MAINNET_RPC_URL = "https://rpc.mainnet.test"
BLOCKHASH = b58encode(bytes(range(1, 33)))
VERIFIER_PROGRAM = Keypair.from_seed(b"\x09" * 32).address


# ----------------------------
# Settings & services
# ----------------------------
def make_settings(tmp_path: Path, **overrides: Any) -> Settings:
    values: Dict[str, Any] = dict(
        STORAGE_DIR=str(tmp_path / "storage"),
        IPFS_API_URL=IPFS_API,
        IPFS_GATEWAYS=f"{GATEWAY_1},{GATEWAY_2}",
        GATEWAY_TIMEOUT_S=1.0,
        PUBLIC_BASE_URL=PUBLIC_BASE,
        NETWORK="devnet",
        SOLANA_RPC_URL=RPC_URL,
        TESTNET_RPC_URL=TESTNET_RPC_URL,
        MAINNET_RPC_URL=MAINNET_RPC_URL,
        CONFIRM_TIMEOUT_S=2.0,
        CONFIRM_POLL_INTERVAL_S=0.01,
        VERIFIER_PROGRAM_ID=VERIFIER_PROGRAM,
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return make_settings(tmp_path)


@pytest_asyncio.fixture
async def services(settings: Settings):
    svc = Services.from_settings(settings, metrics=Metrics())
    try:
        yield svc
    finally:
        await svc.aclose()


@pytest.fixture
def circuit_doc() -> Dict[str, Any]:
    return {
        "title": "Square",
        "description": "Proves knowledge of a square root",
        "author": "alice",
        "timestamp": 1_700_000_000_000,
        "tags": ["intro", "Arithmetic"],
        "code": "fn main(x: Field, y: pub Field) { assert(x * x == y); }",
    }


# ----------------------------
# Wallet
# ----------------------------
@pytest.fixture
def wallet() -> Keypair:
    return Keypair.from_seed(b"\x07" * 32)


@pytest.fixture
def signer(wallet: Keypair):
    return keypair_signer(wallet)


# ----------------------------
# Fake ledger (JSON-RPC over respx)
# ----------------------------
class FakeLedger:
    """
    Answers Solana-style JSON-RPC requests from a table of results.

    A result may be a value or a callable ``(params) -> value``; a callable
    raising ``RpcFault`` answers with a JSON-RPC error object.
    """

    class RpcFault(Exception):
        def __init__(self, code: int, message: str):
            super().__init__(message)
            self.code = code
            self.message = message

    def __init__(self) -> None:
        self.calls: List[str] = []
        self.requests: List[Dict[str, Any]] = []
        self.sent: List[Transaction] = []
        self.results: Dict[str, Any] = {
            "getHealth": "ok",
            "getMinimumBalanceForRentExemption": lambda params: 890_880 + 6_960 * int(params[0]),
            "getLatestBlockhash": {"context": {"slot": 1}, "value": {"blockhash": BLOCKHASH, "lastValidBlockHeight": 150}},
            "getBalance": {"context": {"slot": 1}, "value": 2_500_000_000},
            "sendTransaction": self._accept,
            "getSignatureStatuses": {
                "context": {"slot": 2},
                "value": [{"slot": 2, "confirmations": None, "err": None, "confirmationStatus": "confirmed"}],
            },
            "getTransaction": {"slot": 2, "meta": {"err": None, "logMessages": []}},
            "requestAirdrop": "airdropSig1111",
        }

    def _accept(self, params: List[Any]) -> str:
        tx = Transaction.deserialize(base64.b64decode(params[0]))
        assert params[1]["encoding"] == "base64"
        self.sent.append(tx)
        return tx.signature

    def count(self, method: str) -> int:
        return self.calls.count(method)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        method = payload["method"]
        self.calls.append(method)
        self.requests.append(payload)
        result = self.results[method]
        try:
            if callable(result):
                result = result(payload["params"])
        except FakeLedger.RpcFault as fault:
            return httpx.Response(
                200,
                json={"jsonrpc": "2.0", "id": payload["id"], "error": {"code": fault.code, "message": fault.message}},
            )
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": payload["id"], "result": result})


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def progress_log() -> List[int]:
    return []


@pytest.fixture
def record_progress(progress_log: List[int]) -> Callable:
    def _on_progress(event) -> None:
        progress_log.append(event.percent)

    return _on_progress


# ----------------------------
# HTTP mocking
# ----------------------------
@pytest.fixture
def router():
    """respx router; every outbound request must match a route."""
    with respx.mock(assert_all_called=False, assert_all_mocked=True) as mock:
        yield mock
