from __future__ import annotations

"""
Request/response shapes for the HTTP API.

Domain models (SharedCircuit, GalleryEntry, ...) are returned as-is where they
fit; the types here only cover envelopes the routers add around them.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt, PositiveFloat

from .artifacts import GalleryEntry, StoredVia
from .chain import NetworkEnvironment


class PublishResponse(BaseModel):
    cid: str
    url: str
    via: StoredVia
    entry: GalleryEntry


class PinResponse(BaseModel):
    cid: str
    pinned: bool


class NetworkInfo(BaseModel):
    environment: NetworkEnvironment
    rpc_url: str
    is_production: bool


class NetworkUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    environment: str = Field(..., description="devnet | testnet | mainnet-beta")


class CostEstimate(BaseModel):
    environment: NetworkEnvironment
    size: NonNegativeInt
    lamports: NonNegativeInt
    sol: float


class Balance(BaseModel):
    environment: NetworkEnvironment
    account: str
    lamports: NonNegativeInt
    sol: float


class AirdropRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    account: str
    sol: PositiveFloat = 1.0


class AirdropResponse(BaseModel):
    environment: NetworkEnvironment
    signature: str
    explorer_url: str


class ExplorerLink(BaseModel):
    url: str


class Readiness(BaseModel):
    ok: bool
    checks: Dict[str, Dict[str, Any]]
    version: Optional[str] = None


__all__ = [
    "PublishResponse",
    "PinResponse",
    "NetworkInfo",
    "NetworkUpdate",
    "CostEstimate",
    "Balance",
    "AirdropRequest",
    "AirdropResponse",
    "ExplorerLink",
    "Readiness",
]
