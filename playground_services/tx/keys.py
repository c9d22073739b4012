"""
Ed25519 keypairs and the signer contract.

A *signer* is any ``async (Transaction) -> Transaction`` callable. The
orchestrators only ever call a signer; they never hold the wallet key. For
scripts and tests, :func:`keypair_signer` wraps a local :class:`Keypair`.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Awaitable, Callable, Optional

from nacl import signing
from nacl.exceptions import BadSignatureError

from .base58 import b58decode, b58encode

if TYPE_CHECKING:  # pragma: no cover
    from .message import Transaction

Signer = Callable[["Transaction"], Awaitable["Transaction"]]

PUBKEY_LEN = 32
SIGNATURE_LEN = 64


class Keypair:
    def __init__(self, signing_key: Optional[signing.SigningKey] = None) -> None:
        self._sk = signing_key or signing.SigningKey.generate()

    @classmethod
    def generate(cls) -> "Keypair":
        return cls(signing.SigningKey.generate())

    @classmethod
    def from_seed(cls, seed: bytes) -> "Keypair":
        if len(seed) != 32:
            raise ValueError("ed25519 seed must be 32 bytes")
        return cls(signing.SigningKey(seed))

    @property
    def public_key(self) -> bytes:
        return bytes(self._sk.verify_key)

    @property
    def address(self) -> str:
        return b58encode(self.public_key)

    def sign(self, message: bytes) -> bytes:
        return self._sk.sign(message).signature

    def __repr__(self) -> str:
        return f"Keypair({self.address})"


def pubkey_from_str(value: str) -> bytes:
    """Decode a base58 account id. Raises ValueError unless it is exactly 32 bytes."""
    raw = b58decode(value)
    if len(raw) != PUBKEY_LEN:
        raise ValueError(f"account id must decode to {PUBKEY_LEN} bytes, got {len(raw)}")
    return raw


def verify_signature(pubkey: bytes, message: bytes, signature: bytes) -> bool:
    try:
        signing.VerifyKey(pubkey).verify(message, signature)
    except BadSignatureError:
        return False
    return True


def keypair_signer(keypair: Keypair) -> Signer:
    """Signer that adds ``keypair``'s signature to whatever it is given."""

    async def _sign(tx: "Transaction") -> "Transaction":
        tx.partial_sign(keypair)
        return tx

    return _sign


__all__ = [
    "Keypair",
    "Signer",
    "PUBKEY_LEN",
    "SIGNATURE_LEN",
    "pubkey_from_str",
    "verify_signature",
    "keypair_signer",
]
