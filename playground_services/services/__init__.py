"""
playground_services.services
============================

The service layer, wired explicitly. Nothing here is a module-level
singleton: build a ``Services`` from settings (the app does this once per
process in its lifespan; tests build their own) and pass it where needed.

Public submodules
-----------------
- content_store : publish/resolve shared circuits (IPFS first, local fallback)
- gallery       : locally persisted gallery with view/like counters
- chain         : ledger environment, cost estimates, balances, explorer links
- deployment    : verifier deployment workflow
- verification  : on-chain proof verification workflow
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import httpx

from ..adapters.ipfs import GatewaySet, IpfsClient, IpfsClientConfig
from ..config import Settings
from ..metrics import Metrics
from ..storage.sqlite import KeyValueStore
from .chain import ChainClient
from .content_store import ContentStore
from .deployment import DeploymentOrchestrator
from .gallery import GalleryIndex
from .verification import VerificationOrchestrator


@dataclass
class Services:
    settings: Settings
    store: KeyValueStore
    content: ContentStore
    gallery: GalleryIndex
    chain: ChainClient
    deployments: DeploymentOrchestrator
    verifications: VerificationOrchestrator
    metrics: Optional[Metrics] = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        metrics: Optional[Metrics] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> "Services":
        """
        Build every service from ``settings``. When ``http_client`` is given,
        all outbound HTTP (IPFS, gateways, ledger) goes through it and the
        caller owns its lifetime.
        """
        store = KeyValueStore(settings.storage.resolved_db_path)

        ipfs_cfg = settings.ipfs
        ipfs = IpfsClient(
            IpfsClientConfig(
                api_url=ipfs_cfg.api_url,
                project_id=ipfs_cfg.project_id,
                project_secret=ipfs_cfg.project_secret,
                timeout_s=ipfs_cfg.upload_timeout_s,
            ),
            client=http_client,
        )
        gateways = GatewaySet(
            ipfs_cfg.gateways,
            timeout_s=ipfs_cfg.gateway_timeout_s,
            client=http_client,
            on_failure=(lambda gw, _reason: metrics.gateway_failure(gw)) if metrics else None,
        )
        content = ContentStore(
            ipfs=ipfs,
            gateways=gateways,
            local=store,
            public_base_url=ipfs_cfg.public_base_url,
            metrics=metrics,
        )

        chain_cfg = settings.chain
        chain = ChainClient(chain_cfg, http_client=http_client)
        deployments = DeploymentOrchestrator(
            chain,
            verifier_program_id=chain_cfg.verifier_program_id,
            confirm_timeout_s=chain_cfg.confirm_timeout_s,
            metrics=metrics,
        )
        verifications = VerificationOrchestrator(
            chain,
            verifier_program_id=chain_cfg.verifier_program_id,
            confirm_timeout_s=chain_cfg.confirm_timeout_s,
            metrics=metrics,
        )
        return cls(
            settings=settings,
            store=store,
            content=content,
            gallery=GalleryIndex(store),
            chain=chain,
            deployments=deployments,
            verifications=verifications,
            metrics=metrics,
        )

    async def aclose(self) -> None:
        await self.content.aclose()
        await self.chain.aclose()
        self.store.close()


__all__ = [
    "Services",
    "ContentStore",
    "GalleryIndex",
    "ChainClient",
    "DeploymentOrchestrator",
    "VerificationOrchestrator",
]
