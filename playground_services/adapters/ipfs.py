"""
IPFS adapters: the primary provider's HTTP API and the public gateway set.

- ``IpfsClient`` talks to an IPFS HTTP API (e.g. Infura's ``/api/v0``):
    * ``add``  -> POST {api}/add  (multipart field "file") -> {"Hash": "<cid>"}
    * ``pin``  -> POST {api}/pin/add?arg=<cid>
  Credentials, when configured, are sent as HTTP Basic auth.

- ``GatewaySet`` reads content back from read-only HTTP gateways, trying them
  in a fixed priority order with a per-gateway timeout. A failed gateway is
  logged and skipped; it is never retried within the same read.

Neither class retries on its own. Callers decide what a failure means.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence, TypeVar

import httpx

from ..errors import GatewayTimeout

log = logging.getLogger(__name__)

T = TypeVar("T")


# ----------------------------- Errors ---------------------------------------


class IpfsError(Exception):
    """Base class for IPFS adapter errors."""


class IpfsTransportError(IpfsError):
    """Network/HTTP transport-level error (including non-2xx statuses)."""


class IpfsResponseError(IpfsError):
    """The API answered 2xx but the body was not what we expected."""


# ----------------------------- Client ---------------------------------------


@dataclass
class IpfsClientConfig:
    api_url: str
    project_id: Optional[str] = None
    project_secret: Optional[str] = None
    timeout_s: float = 30.0


class IpfsClient:
    def __init__(self, config: IpfsClientConfig, *, client: Optional[httpx.AsyncClient] = None):
        self._cfg = config
        self._client = client
        self._owns_client = client is None

    @property
    def api_url(self) -> str:
        return self._cfg.api_url.rstrip("/")

    # ---------- lifecycle ----------

    async def start(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._cfg.timeout_s)
            self._owns_client = True

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "IpfsClient":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ---------- transport ----------

    def _auth(self) -> Any:
        if self._cfg.project_id and self._cfg.project_secret:
            return httpx.BasicAuth(self._cfg.project_id, self._cfg.project_secret)
        return httpx.USE_CLIENT_DEFAULT

    async def _post(self, path: str, **kwargs: Any) -> httpx.Response:
        if self._client is None:
            await self.start()
        assert self._client is not None
        try:
            resp = await self._client.post(f"{self.api_url}{path}", auth=self._auth(), **kwargs)
        except httpx.HTTPError as exc:
            raise IpfsTransportError(f"{path}: {exc}") from exc
        if not resp.is_success:
            raise IpfsTransportError(f"{path}: HTTP {resp.status_code}: {resp.text[:256]!r}")
        return resp

    # ---------- operations ----------

    async def add(self, data: bytes, *, filename: str = "circuit.json") -> str:
        """Upload ``data`` and return the provider-assigned content id."""
        resp = await self._post("/add", files={"file": (filename, data, "application/json")})
        try:
            body = resp.json()
        except ValueError as exc:
            raise IpfsResponseError("add: response is not JSON") from exc
        cid = body.get("Hash") if isinstance(body, dict) else None
        if not isinstance(cid, str) or not cid:
            raise IpfsResponseError("add: response has no Hash")
        return cid

    async def pin(self, cid: str) -> None:
        await self._post("/pin/add", params={"arg": cid})


# ----------------------------- Gateways -------------------------------------


class GatewaySet:
    """
    Ordered, read-only gateways. Order is static: it is the configured order.
    """

    def __init__(
        self,
        gateways: Sequence[str],
        *,
        timeout_s: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
        on_failure: Optional[Callable[[str, str], None]] = None,
    ):
        self.gateways: List[str] = [g if g.endswith("/") else g + "/" for g in gateways]
        self.timeout_s = timeout_s
        self._client = client
        self._owns_client = client is None
        self._on_failure = on_failure

    def url(self, cid: str) -> str:
        if not self.gateways:
            raise IndexError("no gateways configured")
        return f"{self.gateways[0]}{cid}"

    def urls(self, cid: str) -> List[str]:
        return [f"{g}{cid}" for g in self.gateways]

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(follow_redirects=True)
            self._owns_client = True
        return self._client

    def _failed(self, gateway: str, reason: str) -> None:
        log.warning("gateway read failed", extra={"gateway": gateway, "reason": reason})
        if self._on_failure is not None:
            self._on_failure(gateway, reason)

    async def fetch_json(self, cid: str, parse: Callable[[Any], T]) -> Optional[T]:
        """
        Return ``parse(body)`` from the first gateway that answers 2xx with a
        body ``parse`` accepts, or None when every gateway failed.

        ``parse`` signals rejection by raising ``ValueError`` (pydantic's
        ``ValidationError`` is one).
        """
        client = self._http()
        for gateway in self.gateways:
            url = f"{gateway}{cid}"
            try:
                resp = await client.get(url, timeout=self.timeout_s)
            except httpx.TimeoutException:
                self._failed(gateway, GatewayTimeout(gateway).message)
                continue
            except httpx.HTTPError as exc:
                self._failed(gateway, f"transport: {exc.__class__.__name__}")
                continue
            if not resp.is_success:
                self._failed(gateway, f"http {resp.status_code}")
                continue
            try:
                return parse(resp.json())
            except ValueError as exc:
                self._failed(gateway, f"invalid body: {exc.__class__.__name__}")
                continue
        return None


__all__ = [
    "IpfsError",
    "IpfsTransportError",
    "IpfsResponseError",
    "IpfsClientConfig",
    "IpfsClient",
    "GatewaySet",
]
