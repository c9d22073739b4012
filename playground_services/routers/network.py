from __future__ import annotations

"""
Network Router

Endpoints:
  - GET  /network                         : active environment
  - PUT  /network                         : switch environment
  - GET  /network/estimate?size=N         : deployment cost estimate for N payload bytes
  - GET  /network/balance/{account}       : account balance
  - POST /network/airdrop                 : request test funds (refused on mainnet-beta)
  - GET  /network/explorer/{kind}/{value} : explorer link (kind = tx | address)
"""

import logging
from typing import Literal

from fastapi import APIRouter, Depends, Query

from ..models.api import AirdropRequest, AirdropResponse, Balance, CostEstimate, ExplorerLink, NetworkInfo, NetworkUpdate
from ..services import Services
from ..services.chain import ChainClient, lamports_to_sol
from . import get_services

log = logging.getLogger(__name__)
router = APIRouter(prefix="/network", tags=["network"])


def _info(chain: ChainClient) -> NetworkInfo:
    return NetworkInfo(
        environment=chain.environment,
        rpc_url=chain.rpc_url,
        is_production=chain.environment.is_production,
    )


@router.get("", response_model=NetworkInfo)
async def get_network(services: Services = Depends(get_services)) -> NetworkInfo:
    return _info(services.chain)


@router.put("", response_model=NetworkInfo)
async def set_network(body: NetworkUpdate, services: Services = Depends(get_services)) -> NetworkInfo:
    services.chain.set_environment(body.environment)
    return _info(services.chain)


@router.get("/estimate", response_model=CostEstimate)
async def estimate(
    size: int = Query(..., ge=0, le=10 * 1024 * 1024, description="Payload size in bytes"),
    services: Services = Depends(get_services),
) -> CostEstimate:
    lamports = await services.chain.estimate_cost(size)
    return CostEstimate(
        environment=services.chain.environment,
        size=size,
        lamports=lamports,
        sol=lamports_to_sol(lamports),
    )


@router.get("/balance/{account}", response_model=Balance)
async def balance(account: str, services: Services = Depends(get_services)) -> Balance:
    lamports = await services.chain.get_balance(account)
    return Balance(
        environment=services.chain.environment,
        account=account,
        lamports=lamports,
        sol=lamports_to_sol(lamports),
    )


@router.post("/airdrop", response_model=AirdropResponse)
async def airdrop(body: AirdropRequest, services: Services = Depends(get_services)) -> AirdropResponse:
    chain = services.chain
    signature = await chain.request_airdrop(body.account, body.sol)
    return AirdropResponse(
        environment=chain.environment,
        signature=signature,
        explorer_url=chain.explorer_tx_url(signature),
    )


@router.get("/explorer/{kind}/{value}", response_model=ExplorerLink)
async def explorer(
    kind: Literal["tx", "address"],
    value: str,
    services: Services = Depends(get_services),
) -> ExplorerLink:
    chain = services.chain
    url = chain.explorer_tx_url(value) if kind == "tx" else chain.explorer_address_url(value)
    return ExplorerLink(url=url)
