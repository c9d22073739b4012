"""
Content store: publish and resolve shared circuits by content id.

Write path
----------
1. Serialize the circuit to canonical JSON.
2. Try the primary IPFS provider (``IpfsClient.add``). On success the result
   is tagged ``StoredVia.REMOTE`` and its URL points at the first gateway.
3. On any provider failure, derive a CIDv0-shaped id locally and persist the
   circuit in the durable local store under ``shared-circuits``. The result
   is tagged ``StoredVia.LOCAL`` and its URL is the app's share page.
4. Only when the local write also fails is ``StorageUnavailable`` raised.

Either way the circuit lands in the in-process cache, so an id handed out by
``upload`` resolves for the lifetime of the process.

Read path
---------
cache -> local store -> each gateway in configured order. A gateway that
fails, times out or serves something that is not a shared circuit is logged
and skipped. ``NotFound`` once every path is exhausted.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from typing import Any, Dict, Optional

from ..adapters.ipfs import GatewaySet, IpfsClient, IpfsError
from ..errors import NotFound, RemoteUploadFailed, StorageUnavailable
from ..metrics import Metrics
from ..models.artifacts import SharedCircuit, StoredVia, UploadResult
from ..storage.ids import CidHasher, canonical_json_bytes
from ..storage.sqlite import KeyValueStore

log = logging.getLogger(__name__)

LOCAL_KEY = "shared-circuits"


class ContentStore:
    def __init__(
        self,
        *,
        ipfs: IpfsClient,
        gateways: GatewaySet,
        local: KeyValueStore,
        public_base_url: str,
        hasher: Optional[CidHasher] = None,
        metrics: Optional[Metrics] = None,
    ) -> None:
        self._ipfs = ipfs
        self._gateways = gateways
        self._local = local
        self._public_base_url = public_base_url.rstrip("/")
        self._hasher = hasher or CidHasher()
        self._metrics = metrics
        # Unbounded; lives as long as the process.
        self._cache: Dict[str, SharedCircuit] = {}

    # ------------------------------ URLs ------------------------------------

    def share_url(self, cid: str) -> str:
        return f"{self._public_base_url}/share/{cid}"

    def ipfs_url(self, cid: str) -> str:
        if not self._gateways.gateways:
            return self.share_url(cid)
        return self._gateways.url(cid)

    # ------------------------------ Cache -----------------------------------

    def clear_cache(self) -> None:
        self._cache.clear()

    def _remember(self, cid: str, artifact: SharedCircuit) -> None:
        self._cache[cid] = artifact.model_copy(deep=True)

    # ------------------------------ Write -----------------------------------

    async def upload(self, artifact: SharedCircuit) -> UploadResult:
        doc = artifact.model_dump(mode="json")
        payload = canonical_json_bytes(doc)

        try:
            cid = await self._ipfs.add(payload)
        except IpfsError as exc:
            remote_error = RemoteUploadFailed(str(exc))
            log.warning(
                "remote upload failed; falling back to local store",
                extra={"error": str(exc)},
            )
        else:
            self._remember(cid, artifact)
            self._count("remote")
            log.info("circuit pinned remotely", extra={"cid": cid, "bytes": len(payload)})
            return UploadResult(cid=cid, url=self.ipfs_url(cid), via=StoredVia.REMOTE)

        cid = self._hasher.cid(payload)
        try:
            await asyncio.to_thread(self._write_local, cid, doc)
        except (sqlite3.Error, OSError) as exc:
            log.error("local fallback write failed", extra={"cid": cid, "error": str(exc)})
            raise StorageUnavailable(
                details={"remote": remote_error.message, "local": str(exc)},
            ) from exc

        self._remember(cid, artifact)
        self._count("local")
        log.info("circuit stored locally", extra={"cid": cid, "bytes": len(payload)})
        return UploadResult(cid=cid, url=self.share_url(cid), via=StoredVia.LOCAL)

    def _write_local(self, cid: str, doc: Dict[str, Any]) -> None:
        def _merge(current: Dict[str, Any]) -> Dict[str, Any]:
            merged = dict(current)
            merged[cid] = doc
            return merged

        self._local.update(LOCAL_KEY, _merge, default={})

    def _count(self, via: str) -> None:
        if self._metrics is not None:
            self._metrics.upload(via)

    # ------------------------------ Read ------------------------------------

    async def download(self, cid: str, *, bypass_cache: bool = False) -> SharedCircuit:
        if not bypass_cache:
            cached = self._cache.get(cid)
            if cached is not None:
                return cached.model_copy(deep=True)

        local = await self._read_local(cid)
        if local is not None:
            self._remember(cid, local)
            return local

        found = await self._gateways.fetch_json(cid, SharedCircuit.model_validate)
        if found is None:
            raise NotFound("Circuit", details={"cid": cid, "tried": self._gateways.urls(cid)})
        self._remember(cid, found)
        return found

    async def _read_local(self, cid: str) -> Optional[SharedCircuit]:
        try:
            docs = await asyncio.to_thread(self._local.get, LOCAL_KEY, {})
        except (sqlite3.Error, OSError, ValueError) as exc:
            log.warning("local store read failed; treating as miss", extra={"cid": cid, "error": str(exc)})
            return None
        doc = docs.get(cid) if isinstance(docs, dict) else None
        if doc is None:
            return None
        try:
            return SharedCircuit.model_validate(doc)
        except ValueError as exc:
            log.warning("local record is not a shared circuit", extra={"cid": cid, "error": str(exc)})
            return None

    # ------------------------------ Pinning ---------------------------------

    async def pin(self, cid: str) -> bool:
        try:
            await self._ipfs.pin(cid)
        except IpfsError as exc:
            log.warning("pin failed", extra={"cid": cid, "error": str(exc)})
            return False
        return True

    async def aclose(self) -> None:
        await self._ipfs.close()
        await self._gateways.close()


__all__ = ["ContentStore", "LOCAL_KEY"]
