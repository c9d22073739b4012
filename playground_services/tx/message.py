"""
Legacy ledger transaction format: build, sign, serialize.

Wire layout
-----------
    transaction := compact_u16(n_sigs) || sig[64] * n_sigs || message
    message     := header[3]
                   || compact_u16(n_keys) || pubkey[32] * n_keys
                   || recent_blockhash[32]
                   || compact_u16(n_ix) || instruction * n_ix
    instruction := program_index(u8)
                   || compact_u16(n_acc) || account_index(u8) * n_acc
                   || compact_u16(len(data)) || data

Account keys are ordered: writable signers (fee payer first), read-only
signers, writable non-signers, read-only non-signers. The header counts
required signatures, read-only signers and read-only non-signers.
"""

from __future__ import annotations

import base64
import struct
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .base58 import b58decode, b58encode
from .keys import PUBKEY_LEN, SIGNATURE_LEN, Keypair, verify_signature

SYSTEM_PROGRAM = bytes(32)

_EMPTY_SIG = bytes(SIGNATURE_LEN)


# ------------------------------- Encoding helpers -------------------------------

def encode_compact_u16(n: int) -> bytes:
    if not 0 <= n <= 0xFFFF:
        raise ValueError("compact-u16 out of range")
    out = bytearray()
    while True:
        b = n & 0x7F
        n >>= 7
        if n:
            out.append(b | 0x80)
        else:
            out.append(b)
            return bytes(out)


def decode_compact_u16(buf: bytes, offset: int = 0) -> tuple[int, int]:
    """Return (value, new_offset)."""
    value = 0
    for i in range(3):
        b = buf[offset + i]
        value |= (b & 0x7F) << (7 * i)
        if not b & 0x80:
            return value, offset + i + 1
    raise ValueError("compact-u16 too long")


# --------------------------------- Structures ---------------------------------

@dataclass(frozen=True)
class AccountMeta:
    pubkey: bytes
    is_signer: bool
    is_writable: bool


@dataclass(frozen=True)
class Instruction:
    program_id: bytes
    accounts: Sequence[AccountMeta]
    data: bytes = b""


@dataclass
class Message:
    num_required_signatures: int
    num_readonly_signed: int
    num_readonly_unsigned: int
    account_keys: List[bytes]
    recent_blockhash: bytes
    instructions: List[tuple[int, List[int], bytes]]

    @classmethod
    def compile(cls, fee_payer: bytes, instructions: Sequence[Instruction], recent_blockhash: str) -> "Message":
        # pubkey -> [is_signer, is_writable], insertion order kept for ties
        metas: Dict[bytes, List[bool]] = {fee_payer: [True, True]}
        for ix in instructions:
            for acc in ix.accounts:
                m = metas.setdefault(acc.pubkey, [False, False])
                m[0] = m[0] or acc.is_signer
                m[1] = m[1] or acc.is_writable
            metas.setdefault(ix.program_id, [False, False])

        def _rank(key: bytes) -> int:
            signer, writable = metas[key]
            if key == fee_payer:
                return -1
            return (0 if signer else 2) + (0 if writable else 1)

        keys = sorted(metas, key=_rank)  # sorted() is stable
        index = {k: i for i, k in enumerate(keys)}

        blockhash = b58decode(recent_blockhash)
        if len(blockhash) != 32:
            raise ValueError("recent blockhash must decode to 32 bytes")

        compiled = [
            (index[ix.program_id], [index[a.pubkey] for a in ix.accounts], bytes(ix.data))
            for ix in instructions
        ]
        return cls(
            num_required_signatures=sum(1 for k in keys if metas[k][0]),
            num_readonly_signed=sum(1 for k in keys if metas[k][0] and not metas[k][1]),
            num_readonly_unsigned=sum(1 for k in keys if not metas[k][0] and not metas[k][1]),
            account_keys=keys,
            recent_blockhash=blockhash,
            instructions=compiled,
        )

    @property
    def signers(self) -> List[bytes]:
        return self.account_keys[: self.num_required_signatures]

    def serialize(self) -> bytes:
        out = bytearray(
            [self.num_required_signatures, self.num_readonly_signed, self.num_readonly_unsigned]
        )
        out += encode_compact_u16(len(self.account_keys))
        for k in self.account_keys:
            out += k
        out += self.recent_blockhash
        out += encode_compact_u16(len(self.instructions))
        for program_index, accounts, data in self.instructions:
            out.append(program_index)
            out += encode_compact_u16(len(accounts))
            out += bytes(accounts)
            out += encode_compact_u16(len(data))
            out += data
        return bytes(out)

    @classmethod
    def deserialize(cls, raw: bytes) -> "Message":
        n_req, n_ro_signed, n_ro_unsigned = raw[0], raw[1], raw[2]
        n_keys, off = decode_compact_u16(raw, 3)
        keys = [raw[off + i * PUBKEY_LEN: off + (i + 1) * PUBKEY_LEN] for i in range(n_keys)]
        off += n_keys * PUBKEY_LEN
        blockhash = raw[off: off + 32]
        off += 32
        n_ix, off = decode_compact_u16(raw, off)
        instructions = []
        for _ in range(n_ix):
            program_index = raw[off]
            n_acc, off = decode_compact_u16(raw, off + 1)
            accounts = list(raw[off: off + n_acc])
            off += n_acc
            n_data, off = decode_compact_u16(raw, off)
            instructions.append((program_index, accounts, raw[off: off + n_data]))
            off += n_data
        return cls(n_req, n_ro_signed, n_ro_unsigned, keys, blockhash, instructions)


@dataclass
class Transaction:
    """
    A compiled message plus one signature slot per required signer.

    Slots start zeroed; ``partial_sign`` fills the slots of the given keypairs
    and leaves the others untouched, so several parties can sign in turn.
    """

    message: Message
    signatures: List[bytes] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.signatures:
            self.signatures = [_EMPTY_SIG] * self.message.num_required_signatures

    @classmethod
    def build(
        cls,
        *,
        fee_payer: bytes,
        instructions: Sequence[Instruction],
        recent_blockhash: str,
    ) -> "Transaction":
        return cls(Message.compile(fee_payer, instructions, recent_blockhash))

    def message_bytes(self) -> bytes:
        return self.message.serialize()

    def _slot(self, pubkey: bytes) -> int:
        try:
            return self.message.signers.index(pubkey)
        except ValueError:
            raise ValueError(f"{b58encode(pubkey)} is not a required signer") from None

    def partial_sign(self, *keypairs: Keypair) -> None:
        msg = self.message_bytes()
        for kp in keypairs:
            self.signatures[self._slot(kp.public_key)] = kp.sign(msg)

    def add_signature(self, pubkey: bytes, signature: bytes) -> None:
        if len(signature) != SIGNATURE_LEN:
            raise ValueError("signature must be 64 bytes")
        self.signatures[self._slot(pubkey)] = signature

    def missing_signers(self) -> List[str]:
        return [
            b58encode(pk)
            for pk, sig in zip(self.message.signers, self.signatures)
            if sig == _EMPTY_SIG
        ]

    def verify_signatures(self) -> bool:
        msg = self.message_bytes()
        return all(
            sig != _EMPTY_SIG and verify_signature(pk, msg, sig)
            for pk, sig in zip(self.message.signers, self.signatures)
        )

    @property
    def signature(self) -> Optional[str]:
        """Fee payer's signature, which is also the transaction id."""
        if not self.signatures or self.signatures[0] == _EMPTY_SIG:
            return None
        return b58encode(self.signatures[0])

    def serialize(self) -> bytes:
        out = bytearray(encode_compact_u16(len(self.signatures)))
        for sig in self.signatures:
            out += sig
        out += self.message_bytes()
        return bytes(out)

    def to_base64(self) -> str:
        return base64.b64encode(self.serialize()).decode("ascii")

    @classmethod
    def deserialize(cls, raw: bytes) -> "Transaction":
        n_sigs, off = decode_compact_u16(raw, 0)
        sigs = [raw[off + i * SIGNATURE_LEN: off + (i + 1) * SIGNATURE_LEN] for i in range(n_sigs)]
        message = Message.deserialize(raw[off + n_sigs * SIGNATURE_LEN:])
        return cls(message=message, signatures=sigs)


# ------------------------------- System program -------------------------------

def create_account(
    *,
    from_pubkey: bytes,
    new_pubkey: bytes,
    lamports: int,
    space: int,
    owner: bytes = SYSTEM_PROGRAM,
) -> Instruction:
    """System ``CreateAccount``: u32 tag 0, u64 lamports, u64 space, owner[32]."""
    data = struct.pack("<IQQ", 0, lamports, space) + owner
    return Instruction(
        program_id=SYSTEM_PROGRAM,
        accounts=(
            AccountMeta(from_pubkey, is_signer=True, is_writable=True),
            AccountMeta(new_pubkey, is_signer=True, is_writable=True),
        ),
        data=data,
    )


__all__ = [
    "SYSTEM_PROGRAM",
    "AccountMeta",
    "Instruction",
    "Message",
    "Transaction",
    "create_account",
    "encode_compact_u16",
    "decode_compact_u16",
]
