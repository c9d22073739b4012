from __future__ import annotations

"""
Gallery Router

Endpoints:
  - GET  /gallery             : list entries (?order=recent|popular|all&limit=N)
  - GET  /gallery/search      : case-insensitive search (?q=...)
  - GET  /gallery/{cid}       : one entry
  - POST /gallery/{cid}/like  : add a like
"""

from typing import List

from fastapi import APIRouter, Depends, Query

from ..errors import NotFound
from ..models.artifacts import GalleryEntry, GalleryOrder
from ..services import Services
from ..services.gallery import DEFAULT_LIMIT, MAX_ENTRIES
from . import get_services

router = APIRouter(tags=["gallery"])


@router.get("/gallery", response_model=List[GalleryEntry])
async def list_gallery(
    order: GalleryOrder = Query(GalleryOrder.RECENT),
    limit: int = Query(DEFAULT_LIMIT, ge=0, le=MAX_ENTRIES),
    services: Services = Depends(get_services),
) -> List[GalleryEntry]:
    return await services.gallery.list(order, limit)


@router.get("/gallery/search", response_model=List[GalleryEntry])
async def search_gallery(
    q: str = Query(..., min_length=1, max_length=200),
    services: Services = Depends(get_services),
) -> List[GalleryEntry]:
    return await services.gallery.search(q)


@router.get("/gallery/{cid}", response_model=GalleryEntry)
async def get_gallery_entry(cid: str, services: Services = Depends(get_services)) -> GalleryEntry:
    entry = await services.gallery.get(cid)
    if entry is None:
        raise NotFound("Gallery entry", details={"cid": cid})
    return entry


@router.post("/gallery/{cid}/like", response_model=GalleryEntry)
async def like_gallery_entry(cid: str, services: Services = Depends(get_services)) -> GalleryEntry:
    entry = await services.gallery.increment_likes(cid)
    if entry is None:
        raise NotFound("Gallery entry", details={"cid": cid})
    return entry
