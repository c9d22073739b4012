from __future__ import annotations

import hashlib

from playground_services.storage.ids import CidHasher, canonical_json_bytes, content_id
from playground_services.tx.base58 import b58decode, b58encode


def test_cid_is_cidv0_shaped_and_deterministic():
    h = CidHasher()
    a = h.cid(b'{"title":"t"}')
    b = h.cid(b'{"title":"t"}')
    assert a == b
    assert a.startswith("Qm")
    assert len(a) == 46
    assert CidHasher.is_cid(a)


def test_cid_is_sha256_multihash():
    raw = b58decode(CidHasher().cid(b""))
    assert raw == b"\x12\x20" + hashlib.sha256(b"").digest()


def test_different_content_different_cid():
    assert content_id({"title": "t", "code": "a"}) != content_id({"title": "t", "code": "b"})


def test_canonical_json_ignores_key_order():
    left = canonical_json_bytes({"b": 1, "a": [1, 2], "c": "ü"})
    right = canonical_json_bytes({"c": "ü", "a": [1, 2], "b": 1})
    assert left == right
    assert left == '{"a":[1,2],"b":1,"c":"ü"}'.encode("utf-8")


def test_is_cid_rejects_lookalikes():
    assert not CidHasher.is_cid("Qm" + "0" * 44)  # '0' is not in the base58 alphabet
    assert not CidHasher.is_cid("bafybeigdyrzt5sfp7udm7hu76uh7y26nf3efuylqabf3oclgtqy55fbzdi")
    assert not CidHasher.is_cid("")


def test_base58_keeps_leading_zero_bytes():
    raw = b"\x00\x00\x01\x02"
    encoded = b58encode(raw)
    assert encoded.startswith("11")
    assert b58decode(encoded) == raw
