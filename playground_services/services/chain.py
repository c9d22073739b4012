"""
Chain client: one active ledger environment and a lazily built connection.

- ``set_environment`` swaps the environment and drops the current
  connection; the next call builds a fresh one. The old connection is kept
  aside (not closed) so calls already holding it can finish; it is closed in
  ``aclose``. Calls racing a switch may complete against either network.
- Cost figures are in lamports (``lamports_to_sol`` converts for display).
- Explorer URLs are formatted locally, with no network call.

Adapter errors are mapped to the service error hierarchy:
transport -> ``NetworkUnreachable``; JSON-RPC error -> ``RpcError``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, TypeVar, Union

import httpx

from ..adapters.ledger_rpc import LedgerRpc, LedgerRpcConfig, RpcResponseError, RpcTransportError
from ..config import ChainConfig
from ..errors import BadRequest, EnvironmentNotReady, InvalidAccount, InvalidEnvironment, NetworkUnreachable, RpcError
from ..models.chain import NetworkEnvironment
from ..tx.keys import pubkey_from_str
from ..tx.message import Transaction

log = logging.getLogger(__name__)

T = TypeVar("T")

LAMPORTS_PER_SOL = 1_000_000_000
TX_FEE_LAMPORTS = 5_000
ACCOUNT_OVERHEAD_BYTES = 1_000
EXPLORER_BASE = "https://explorer.solana.com"

_CONFIRMED = ("confirmed", "finalized")


def lamports_to_sol(lamports: int) -> float:
    return lamports / LAMPORTS_PER_SOL


def sol_to_lamports(sol: float) -> int:
    return int(round(sol * LAMPORTS_PER_SOL))


def validate_account(account: str) -> bytes:
    """Decode a base58 account id, raising ``InvalidAccount`` when malformed."""
    if not isinstance(account, str) or not account:
        raise InvalidAccount(str(account), reason="empty account id")
    try:
        return pubkey_from_str(account)
    except ValueError as exc:
        raise InvalidAccount(account, reason=str(exc)) from None


class ChainClient:
    def __init__(
        self,
        config: ChainConfig,
        *,
        environment: Optional[Union[NetworkEnvironment, str]] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._cfg = config
        self._env = NetworkEnvironment.parse(environment or config.network)
        self._http = http_client
        self._rpc: Optional[LedgerRpc] = None
        self._retired: List[LedgerRpc] = []

    # ------------------------------ Environment -----------------------------

    @property
    def environment(self) -> NetworkEnvironment:
        return self._env

    @property
    def rpc_url(self) -> str:
        return self._cfg.rpc_url(self._env)

    @property
    def confirm_timeout_s(self) -> float:
        return self._cfg.confirm_timeout_s

    def set_environment(self, environment: Union[NetworkEnvironment, str]) -> NetworkEnvironment:
        env = NetworkEnvironment.parse(environment)
        if env is self._env:
            return env
        if self._rpc is not None:
            self._retired.append(self._rpc)
        self._rpc = None
        log.info("ledger environment switched", extra={"from": self._env.value, "to": env.value})
        self._env = env
        return env

    def connection(self) -> LedgerRpc:
        if self._rpc is None:
            self._rpc = LedgerRpc(
                LedgerRpcConfig(url=self.rpc_url, timeout_s=self._cfg.rpc_timeout_s),
                client=self._http,
            )
        return self._rpc

    async def aclose(self) -> None:
        conns = [*self._retired, *([self._rpc] if self._rpc is not None else [])]
        self._retired.clear()
        self._rpc = None
        for conn in conns:
            await conn.close()

    # ------------------------------ Transport -------------------------------

    async def _invoke(self, fn: Callable[[LedgerRpc], Awaitable[T]]) -> T:
        rpc = self.connection()
        try:
            return await fn(rpc)
        except RpcTransportError as exc:
            raise NetworkUnreachable(
                details={"environment": self._env.value, "url": rpc.url, "error": str(exc)}
            ) from exc
        except RpcResponseError as exc:
            raise RpcError(exc.message, details={"rpc_code": exc.code, "environment": self._env.value}) from exc

    async def ensure_ready(self) -> None:
        """Raise ``EnvironmentNotReady`` unless the node reports itself healthy."""
        rpc = self.connection()
        try:
            status = await rpc.get_health()
        except RpcTransportError as exc:
            raise NetworkUnreachable(details={"environment": self._env.value, "url": rpc.url}) from exc
        except RpcResponseError as exc:
            raise EnvironmentNotReady(details={"environment": self._env.value, "reason": exc.message}) from exc
        if status != "ok":
            raise EnvironmentNotReady(details={"environment": self._env.value, "reason": str(status)})

    # ------------------------------ Queries ---------------------------------

    async def rent_exempt_minimum(self, size: int) -> int:
        return await self._invoke(lambda rpc: rpc.get_minimum_balance_for_rent_exemption(size))

    async def estimate_cost(self, payload_size: int) -> int:
        """Rent-exempt minimum for ``payload_size + 1000`` bytes plus the nominal fee, in lamports."""
        if payload_size < 0:
            raise BadRequest("payload size must be non-negative", details={"size": payload_size})
        rent = await self.rent_exempt_minimum(payload_size + ACCOUNT_OVERHEAD_BYTES)
        return rent + TX_FEE_LAMPORTS

    async def get_balance(self, account: str) -> int:
        validate_account(account)
        return await self._invoke(lambda rpc: rpc.get_balance(account))

    async def latest_blockhash(self) -> Tuple[str, int]:
        return await self._invoke(lambda rpc: rpc.get_latest_blockhash())

    # ------------------------------ Transactions ----------------------------

    async def send_transaction(self, tx: Transaction) -> str:
        wire = tx.to_base64()
        return await self._invoke(lambda rpc: rpc.send_transaction(wire))

    async def confirm_signature(
        self,
        signature: str,
        *,
        timeout_s: Optional[float] = None,
        poll_interval_s: Optional[float] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Poll the signature status until it is confirmed/finalized or carries an
        execution error. Returns that status, or None if ``timeout_s`` elapsed.

        Each poll is bounded by the time left. An unreachable node while polling
        counts as "not confirmed yet"; a JSON-RPC error is raised.
        """
        timeout = self._cfg.confirm_timeout_s if timeout_s is None else timeout_s
        interval = self._cfg.poll_interval_s if poll_interval_s is None else poll_interval_s
        deadline = time.monotonic() + timeout
        while True:
            remaining = deadline - time.monotonic()
            status = None
            try:
                statuses = await asyncio.wait_for(
                    self._invoke(lambda rpc: rpc.get_signature_statuses([signature])),
                    timeout=max(remaining, 0.001),
                )
                status = statuses[0] if statuses else None
            except asyncio.TimeoutError:
                return None
            except NetworkUnreachable as exc:
                log.warning("signature status poll failed", extra={"signature": signature, "error": exc.message})
            if status is not None and (
                status.get("err") is not None or status.get("confirmationStatus") in _CONFIRMED
            ):
                return status
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None
            await asyncio.sleep(min(interval, remaining))

    async def get_transaction(self, signature: str) -> Optional[Dict[str, Any]]:
        return await self._invoke(lambda rpc: rpc.get_transaction(signature))

    async def request_airdrop(self, account: str, sol: float = 1.0) -> str:
        if self._env.is_production:
            raise InvalidEnvironment(
                "Airdrops are not available on mainnet-beta",
                details={"environment": self._env.value},
            )
        validate_account(account)
        lamports = sol_to_lamports(sol)
        if lamports <= 0:
            raise BadRequest("airdrop amount must be positive", details={"sol": sol})
        return await self._invoke(lambda rpc: rpc.request_airdrop(account, lamports))

    # ------------------------------ Explorer --------------------------------

    def _explorer(self, kind: str, value: str) -> str:
        url = f"{EXPLORER_BASE}/{kind}/{value}"
        if not self._env.is_production:
            url += f"?cluster={self._env.value}"
        return url

    def explorer_tx_url(self, signature: str) -> str:
        return self._explorer("tx", signature)

    def explorer_address_url(self, account: str) -> str:
        return self._explorer("address", account)


__all__ = [
    "ChainClient",
    "LAMPORTS_PER_SOL",
    "TX_FEE_LAMPORTS",
    "ACCOUNT_OVERHEAD_BYTES",
    "EXPLORER_BASE",
    "lamports_to_sol",
    "sol_to_lamports",
    "validate_account",
]
