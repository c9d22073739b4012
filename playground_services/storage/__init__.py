"""
Storage primitives: deterministic content ids and the local durable store.
"""

from .ids import CidHasher, canonical_json_bytes, content_id
from .sqlite import KeyValueStore

__all__ = ["CidHasher", "canonical_json_bytes", "content_id", "KeyValueStore"]
