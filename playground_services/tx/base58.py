"""
Base58 (Bitcoin alphabet) encode/decode.

Used for ledger account ids, transaction signatures, blockhashes and the
``Qm…`` content ids produced by the local store.
"""

from __future__ import annotations

ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_INDEX = {c: i for i, c in enumerate(ALPHABET)}


def b58encode(data: bytes) -> str:
    value = int.from_bytes(data, "big")
    encoded = ""
    while value > 0:
        value, mod = divmod(value, 58)
        encoded = ALPHABET[mod] + encoded
    # Preserve leading zeroes as "1" characters.
    padding = 0
    for byte in data:
        if byte == 0:
            padding += 1
        else:
            break
    return "1" * padding + encoded


def b58decode(text: str) -> bytes:
    """Decode a base58 string. Raises ValueError on characters outside the alphabet."""
    value = 0
    for ch in text:
        try:
            value = value * 58 + _INDEX[ch]
        except KeyError:
            raise ValueError(f"invalid base58 character {ch!r}") from None
    body = value.to_bytes((value.bit_length() + 7) // 8, "big") if value else b""
    padding = len(text) - len(text.lstrip("1"))
    return b"\x00" * padding + body


__all__ = ["ALPHABET", "b58encode", "b58decode"]
