"""
JSON-RPC client for a Solana-compatible ledger node.

This adapter is intentionally small. It provides:
- a single-attempt async JSON-RPC transport over HTTP(S)
- typed methods for the endpoints the playground needs:
  * getHealth
  * getBalance / getMinimumBalanceForRentExemption
  * getLatestBlockhash
  * sendTransaction (base64 wire bytes)
  * getSignatureStatuses / getTransaction
  * requestAirdrop

Notes
-----
* There is no retry layer here. A transport failure surfaces immediately as
  ``RpcTransportError``; a JSON-RPC error object, or a result of the wrong shape, as
  ``RpcResponseError``.
* Account ids, signatures and blockhashes are base58 strings.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, TypeVar

import httpx

T = TypeVar("T")

# JSON-RPC "parse error"; also used for results of the wrong shape.
MALFORMED_RESULT = -32700


# ----------------------------- Errors ---------------------------------------


class LedgerRpcError(Exception):
    """Base class for all ledger RPC errors."""


class RpcTransportError(LedgerRpcError):
    """Network/HTTP transport-level error."""


class RpcResponseError(LedgerRpcError):
    """JSON-RPC error object returned from the node."""

    def __init__(self, code: int, message: str, data: Any | None = None):
        super().__init__(f"RPC error {code}: {message}")
        self.code = code
        self.message = message
        self.data = data


def _build_headers(extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    hdrs = {
        "content-type": "application/json",
        "accept": "application/json",
    }
    if extra:
        hdrs.update(extra)
    return hdrs


# ----------------------------- Client ---------------------------------------


@dataclass
class LedgerRpcConfig:
    url: str
    timeout_s: float = 15.0
    commitment: str = "confirmed"
    headers: Optional[Dict[str, str]] = None


class LedgerRpc:
    """
    Minimal async JSON-RPC client for one ledger endpoint.
    """

    def __init__(self, config: LedgerRpcConfig, *, client: Optional[httpx.AsyncClient] = None):
        self._cfg = config
        self._id = 0
        self._client = client
        self._owns_client = client is None

    @property
    def url(self) -> str:
        return self._cfg.url

    # ---------- lifecycle ----------

    async def start(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._cfg.timeout_s,
                headers=_build_headers(self._cfg.headers),
            )
            self._owns_client = True

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> "LedgerRpc":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ---------- core transport ----------

    async def _call(self, method: str, params: Sequence[Any] | None = None) -> Any:
        if self._client is None:
            await self.start()
        assert self._client is not None

        self._id += 1
        payload = {"jsonrpc": "2.0", "id": self._id, "method": method, "params": list(params or [])}

        try:
            resp = await self._client.post(self._cfg.url, json=payload)
        except httpx.HTTPError as exc:
            raise RpcTransportError(f"{method}: {exc.__class__.__name__}: {exc}") from exc

        if resp.status_code != 200:
            raise RpcTransportError(f"{method}: HTTP {resp.status_code}: {resp.text[:256]!r}")
        try:
            data = json.loads(resp.content)
        except ValueError as exc:
            raise RpcTransportError(f"{method}: response is not JSON") from exc

        if not isinstance(data, dict):
            raise RpcTransportError(f"{method}: response is not a JSON-RPC object")
        err = data.get("error")
        if err is not None:
            if not isinstance(err, dict):
                raise RpcResponseError(-32000, str(err))
            raise RpcResponseError(err.get("code", -32000), err.get("message", "Unknown error"), err.get("data"))
        return data.get("result")

    # ---------- typed methods ----------

    async def get_health(self) -> str:
        return await self._call("getHealth")

    async def get_balance(self, account: str) -> int:
        result = await self._call("getBalance", [account, {"commitment": self._cfg.commitment}])
        return _shaped("getBalance", result, lambda r: int(r["value"]))

    async def get_minimum_balance_for_rent_exemption(self, size: int) -> int:
        result = await self._call("getMinimumBalanceForRentExemption", [int(size)])
        return _shaped("getMinimumBalanceForRentExemption", result, int)

    async def get_latest_blockhash(self) -> Tuple[str, int]:
        """Return ``(blockhash, last_valid_block_height)``."""
        result = await self._call("getLatestBlockhash", [{"commitment": self._cfg.commitment}])

        def _parse(r: Any) -> Tuple[str, int]:
            value = r["value"]
            return _string(value["blockhash"]), int(value.get("lastValidBlockHeight", 0))

        return _shaped("getLatestBlockhash", result, _parse)

    async def send_transaction(self, wire_b64: str) -> str:
        result = await self._call(
            "sendTransaction",
            [wire_b64, {"encoding": "base64", "preflightCommitment": self._cfg.commitment}],
        )
        return _shaped("sendTransaction", result, _string)

    async def get_signature_statuses(self, signatures: Sequence[str]) -> List[Optional[Dict[str, Any]]]:
        result = await self._call(
            "getSignatureStatuses",
            [list(signatures), {"searchTransactionHistory": True}],
        )

        def _parse(r: Any) -> List[Optional[Dict[str, Any]]]:
            statuses = list(r["value"])
            if any(s is not None and not isinstance(s, dict) for s in statuses):
                raise TypeError("status entries must be objects or null")
            return statuses

        return _shaped("getSignatureStatuses", result, _parse)

    async def get_transaction(self, signature: str) -> Optional[Dict[str, Any]]:
        result = await self._call(
            "getTransaction",
            [
                signature,
                {
                    "encoding": "json",
                    "commitment": self._cfg.commitment,
                    "maxSupportedTransactionVersion": 0,
                },
            ],
        )
        if result is not None and not isinstance(result, dict):
            raise RpcResponseError(MALFORMED_RESULT, f"getTransaction: unexpected result {result!r:.80}")
        return result

    async def request_airdrop(self, account: str, lamports: int) -> str:
        result = await self._call("requestAirdrop", [account, int(lamports)])
        return _shaped("requestAirdrop", result, _string)


def _string(value: Any) -> str:
    if not isinstance(value, str) or not value:
        raise TypeError(f"expected a non-empty string, got {value!r:.80}")
    return value


def _shaped(method: str, result: Any, parse: Callable[[Any], T]) -> T:
    """Apply ``parse`` to a result; a result of the wrong shape is a response error."""
    try:
        return parse(result)
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise RpcResponseError(MALFORMED_RESULT, f"{method}: malformed result: {exc}") from exc


__all__ = [
    "LedgerRpcError",
    "RpcTransportError",
    "RpcResponseError",
    "LedgerRpcConfig",
    "LedgerRpc",
    "MALFORMED_RESULT",
]
