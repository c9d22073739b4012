"""
Gallery index: the locally persisted list of published circuits.

The whole collection is one JSON document (key ``gallery``) in the local
store, newest first. Every mutation reads, changes and writes that document
inside one ``BEGIN IMMEDIATE`` transaction, so a crash mid-update leaves the
previous collection intact and concurrent writers never lose increments.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from ..errors import BadRequest
from ..models.artifacts import GalleryEntry, GalleryOrder, SharedCircuit
from ..storage.sqlite import KeyValueStore

log = logging.getLogger(__name__)

GALLERY_KEY = "gallery"
MAX_ENTRIES = 100
DEFAULT_LIMIT = 20


def _split_records(docs: Any) -> Tuple[List[GalleryEntry], List[Any]]:
    """Parse stored records; those that do not validate come back raw, unchanged."""
    entries: List[GalleryEntry] = []
    malformed: List[Any] = []
    for doc in docs or []:
        try:
            entries.append(GalleryEntry.model_validate(doc))
        except ValueError:
            malformed.append(doc)
    if malformed:
        log.warning("skipping malformed gallery records", extra={"count": len(malformed), "first": str(malformed[0])[:120]})
    return entries, malformed


def _parse_entries(docs: Any) -> List[GalleryEntry]:
    return _split_records(docs)[0]


def _dump(entries: List[GalleryEntry]) -> List[Dict[str, Any]]:
    return [e.model_dump(mode="json") for e in entries]


class GalleryIndex:
    def __init__(self, store: KeyValueStore, *, max_entries: int = MAX_ENTRIES) -> None:
        self._store = store
        self.max_entries = max_entries

    # ------------------------------ Internals -------------------------------

    def _load(self) -> List[GalleryEntry]:
        return _parse_entries(self._store.get(GALLERY_KEY, []))

    async def _mutate(self, fn: Callable[[List[GalleryEntry]], List[GalleryEntry]]) -> List[GalleryEntry]:
        def _apply(docs: Any) -> List[Any]:
            entries, malformed = _split_records(docs)
            # unreadable records are written back as they were, after the rest
            return [*_dump(fn(entries)), *malformed]

        docs = await asyncio.to_thread(self._store.update, GALLERY_KEY, _apply, default=[])
        return _parse_entries(docs)

    async def _increment(self, cid: str, field: str) -> Optional[GalleryEntry]:
        hit: Dict[str, GalleryEntry] = {}

        def _bump(entries: List[GalleryEntry]) -> List[GalleryEntry]:
            for i, e in enumerate(entries):
                if e.cid == cid:
                    entries[i] = e.model_copy(update={field: getattr(e, field) + 1})
                    hit["entry"] = entries[i]
                    break
            return entries

        await self._mutate(_bump)
        return hit.get("entry")

    # ------------------------------ Queries ---------------------------------

    async def list(
        self,
        order: Union[GalleryOrder, str] = GalleryOrder.RECENT,
        limit: Optional[int] = DEFAULT_LIMIT,
    ) -> List[GalleryEntry]:
        """
        ``recent`` sorts by timestamp (newest first), ``popular`` by views+likes
        (highest first), ``all`` keeps storage order. Sorting is stable.
        """
        order = GalleryOrder(order)
        entries = await asyncio.to_thread(self._load)
        if order is GalleryOrder.RECENT:
            entries.sort(key=lambda e: e.timestamp, reverse=True)
        elif order is GalleryOrder.POPULAR:
            entries.sort(key=lambda e: e.popularity, reverse=True)
        if limit is not None:
            entries = entries[: max(0, limit)]
        return entries

    async def get(self, cid: str) -> Optional[GalleryEntry]:
        for e in await asyncio.to_thread(self._load):
            if e.cid == cid:
                return e
        return None

    async def search(self, query: str) -> List[GalleryEntry]:
        q = query.lower()
        entries = await asyncio.to_thread(self._load)
        return [
            e
            for e in entries
            if q in e.title.lower()
            or q in e.description.lower()
            or any(q in t.lower() for t in e.tags)
        ]

    # ------------------------------ Mutations -------------------------------

    async def add(self, artifact: SharedCircuit) -> GalleryEntry:
        """
        Upsert by cid. An existing entry keeps its position and counters; a new
        entry goes to the front. The collection is capped at ``max_entries``.
        """
        if not artifact.cid:
            raise BadRequest("Circuit must be stored before it can be listed", details={"title": artifact.title})
        cid = artifact.cid
        fields = artifact.model_dump(exclude={"cid"})

        def _upsert(entries: List[GalleryEntry]) -> List[GalleryEntry]:
            for i, e in enumerate(entries):
                if e.cid == cid:
                    entries[i] = GalleryEntry(cid=cid, views=e.views, likes=e.likes, **fields)
                    return entries
            return [GalleryEntry(cid=cid, **fields), *entries][: self.max_entries]

        entries = await self._mutate(_upsert)
        log.info("gallery entry upserted", extra={"cid": cid, "size": len(entries)})
        return next(e for e in entries if e.cid == cid)

    async def increment_views(self, cid: str) -> Optional[GalleryEntry]:
        """No-op (returns None) when ``cid`` is not listed."""
        return await self._increment(cid, "views")

    async def increment_likes(self, cid: str) -> Optional[GalleryEntry]:
        """No-op (returns None) when ``cid`` is not listed."""
        return await self._increment(cid, "likes")


__all__ = ["GalleryIndex", "GALLERY_KEY", "MAX_ENTRIES", "DEFAULT_LIMIT"]
