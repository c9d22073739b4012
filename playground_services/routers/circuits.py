from __future__ import annotations

"""
Circuits Router

Endpoints:
  - POST /circuits            : publish a circuit (store + list in the gallery)
  - GET  /circuits/{cid}      : resolve a shared circuit (counts a view)
  - POST /circuits/{cid}/pin  : ask the IPFS provider to pin a cid
"""

import logging

from fastapi import APIRouter, Depends, Path

from ..models.api import PinResponse, PublishResponse
from ..models.artifacts import SharedCircuit
from ..services import Services
from . import get_services

log = logging.getLogger(__name__)
router = APIRouter(tags=["circuits"])


@router.post("/circuits", response_model=PublishResponse, status_code=201, summary="Publish a circuit")
async def publish_circuit(
    circuit: SharedCircuit,
    services: Services = Depends(get_services),
) -> PublishResponse:
    # Ids are assigned by the store, never by the client.
    circuit = circuit.model_copy(update={"cid": None})
    result = await services.content.upload(circuit)
    entry = await services.gallery.add(circuit.with_cid(result.cid))
    return PublishResponse(cid=result.cid, url=result.url, via=result.via, entry=entry)


@router.get("/circuits/{cid}", response_model=SharedCircuit, summary="Resolve a shared circuit")
async def get_circuit(
    cid: str = Path(..., min_length=1, max_length=128),
    services: Services = Depends(get_services),
) -> SharedCircuit:
    circuit = await services.content.download(cid)
    await services.gallery.increment_views(cid)
    return circuit


@router.post("/circuits/{cid}/pin", response_model=PinResponse, summary="Pin a circuit remotely")
async def pin_circuit(
    cid: str = Path(..., min_length=1, max_length=128),
    services: Services = Depends(get_services),
) -> PinResponse:
    return PinResponse(cid=cid, pinned=await services.content.pin(cid))
