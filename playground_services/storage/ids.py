"""
Deterministic content ids for shared circuits.

A circuit is serialized to canonical JSON and hashed into a CIDv0-shaped id:

    cid = base58btc( 0x12 || 0x20 || sha2-256(canonical_json(artifact)) )

which always starts with ``Qm`` and is 46 characters long. The remote IPFS
provider computes its own id over its UnixFS encoding, so a remote id and a
locally derived id for the same bytes need not match; both are resolvable.

Conventions:
- Canonical JSON uses UTF-8, sorted keys, and minimal separators to be stable.
- Inputs accept bytes, str, or any JSON-serializable value.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Union

from ..tx.base58 import b58decode, b58encode

# Multihash header for sha2-256 with a 32-byte digest
_MH_SHA2_256 = b"\x12\x20"

BytesLike = Union[bytes, bytearray, memoryview]


def canonical_json_bytes(value: Any) -> bytes:
    """
    Deterministic JSON encoding:
    - UTF-8
    - sort_keys=True
    - minimal separators
    - ensure_ascii=False (to keep UTF-8 bytes intact)
    """
    s = json.dumps(
        value,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return s.encode("utf-8")


def _as_bytes(x: Union[BytesLike, str, Any]) -> bytes:
    if isinstance(x, (bytes, bytearray, memoryview)):
        return bytes(x)
    if isinstance(x, str):
        return x.encode("utf-8")
    return canonical_json_bytes(x)


class CidHasher:
    """Stable id from bytes. Equal inputs always give equal ids."""

    prefix = "Qm"

    def digest(self, data: Union[BytesLike, str, Any]) -> bytes:
        return hashlib.sha256(_as_bytes(data)).digest()

    def cid(self, data: Union[BytesLike, str, Any]) -> str:
        return b58encode(_MH_SHA2_256 + self.digest(data))

    __call__ = cid

    @staticmethod
    def is_cid(value: str) -> bool:
        """True for a well-formed CIDv0 string (does not imply the content exists)."""
        if not isinstance(value, str) or len(value) != 46 or not value.startswith("Qm"):
            return False
        try:
            raw = b58decode(value)
        except ValueError:
            return False
        return len(raw) == 34 and raw[:2] == _MH_SHA2_256


def content_id(data: Union[BytesLike, str, Any]) -> str:
    """Module-level convenience wrapper around :class:`CidHasher`."""
    return CidHasher().cid(data)


__all__ = ["CidHasher", "canonical_json_bytes", "content_id"]
