from __future__ import annotations

"""
Shared-circuit models.

- SharedCircuit: the published unit (circuit source + metadata). Content is
  never mutated after it has been stored; ``cid`` is assigned by the store.
- GalleryEntry: a SharedCircuit plus locally persisted ``views``/``likes``.
- UploadResult: where an upload landed, tagged with ``StoredVia`` so callers
  can tell a remote pin from a local-only fallback.

Wire shape (JSON) matches what gateways serve back, e.g.:

    {"title": "Square", "description": "", "author": "", "timestamp": 1700000000000,
     "tags": ["intro"], "code": "fn main(x: Field) { ... }", "cid": "Qm..."}
"""

import time
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt


def _now_ms() -> int:
    return int(time.time() * 1000)


class SharedCircuit(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=False)

    cid: Optional[str] = Field(default=None, description="Content id; set once stored.")
    title: str = Field(..., description="Human title.")
    description: str = Field(default="", description="Free-form description.")
    author: str = Field(default="", description="Author display name or account.")
    timestamp: NonNegativeInt = Field(default_factory=_now_ms, description="Creation time (ms since epoch).")
    tags: List[str] = Field(default_factory=list)
    code: str = Field(..., description="Circuit source text.")

    def with_cid(self, cid: str) -> "SharedCircuit":
        return self.model_copy(update={"cid": cid})


class GalleryEntry(SharedCircuit):
    cid: str = Field(..., description="Content id (unique within the gallery).")
    views: NonNegativeInt = 0
    likes: NonNegativeInt = 0

    @property
    def popularity(self) -> int:
        return self.views + self.likes


class StoredVia(str, Enum):
    REMOTE = "remote"
    LOCAL = "local"


class UploadResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    cid: str
    url: str
    via: StoredVia

    @property
    def is_local(self) -> bool:
        return self.via is StoredVia.LOCAL


class GalleryOrder(str, Enum):
    RECENT = "recent"
    POPULAR = "popular"
    ALL = "all"


__all__ = [
    "SharedCircuit",
    "GalleryEntry",
    "StoredVia",
    "UploadResult",
    "GalleryOrder",
]
