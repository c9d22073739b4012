from __future__ import annotations

import struct

import pytest

from playground_services.tx.base58 import b58encode
from playground_services.tx.keys import Keypair, pubkey_from_str
from playground_services.tx.message import (
    SYSTEM_PROGRAM,
    AccountMeta,
    Instruction,
    Transaction,
    create_account,
    decode_compact_u16,
    encode_compact_u16,
)

from .conftest import BLOCKHASH


@pytest.mark.parametrize(
    "value, encoded",
    [(0, b"\x00"), (0x7F, b"\x7f"), (0x80, b"\x80\x01"), (0x3FFF, b"\xff\x7f"), (0x4000, b"\x80\x80\x01")],
)
def test_compact_u16(value, encoded):
    assert encode_compact_u16(value) == encoded
    assert decode_compact_u16(encoded) == (value, len(encoded))


def test_compact_u16_range():
    with pytest.raises(ValueError):
        encode_compact_u16(0x10000)


def test_create_account_layout():
    payer, new, owner = Keypair.from_seed(b"\x01" * 32), Keypair.from_seed(b"\x02" * 32), bytes(range(32))
    ix = create_account(from_pubkey=payer.public_key, new_pubkey=new.public_key, lamports=1_500, space=96, owner=owner)

    assert ix.program_id == SYSTEM_PROGRAM
    assert struct.unpack("<IQQ", ix.data[:20]) == (0, 1_500, 96)
    assert ix.data[20:] == owner
    assert [(a.is_signer, a.is_writable) for a in ix.accounts] == [(True, True), (True, True)]


def test_account_ordering_and_header():
    payer = Keypair.from_seed(b"\x01" * 32).public_key
    ro_signer = Keypair.from_seed(b"\x02" * 32).public_key
    writable = Keypair.from_seed(b"\x03" * 32).public_key
    readonly = Keypair.from_seed(b"\x04" * 32).public_key
    program = Keypair.from_seed(b"\x05" * 32).public_key

    ix = Instruction(
        program_id=program,
        accounts=(
            AccountMeta(readonly, is_signer=False, is_writable=False),
            AccountMeta(writable, is_signer=False, is_writable=True),
            AccountMeta(ro_signer, is_signer=True, is_writable=False),
        ),
        data=b"\x01\x02",
    )
    tx = Transaction.build(fee_payer=payer, instructions=[ix], recent_blockhash=BLOCKHASH)
    msg = tx.message

    assert msg.account_keys == [payer, ro_signer, writable, readonly, program]
    assert (msg.num_required_signatures, msg.num_readonly_signed, msg.num_readonly_unsigned) == (2, 1, 2)
    assert msg.instructions == [(4, [3, 2, 1], b"\x01\x02")]
    assert len(tx.signatures) == 2


def test_partial_signing_and_wire_format():
    payer, other = Keypair.from_seed(b"\x01" * 32), Keypair.from_seed(b"\x02" * 32)
    ix = create_account(from_pubkey=payer.public_key, new_pubkey=other.public_key, lamports=1, space=0)
    tx = Transaction.build(fee_payer=payer.public_key, instructions=[ix], recent_blockhash=BLOCKHASH)

    tx.partial_sign(other)
    assert tx.missing_signers() == [payer.address]
    assert tx.signature is None
    assert not tx.verify_signatures()

    tx.partial_sign(payer)
    assert tx.missing_signers() == []
    assert tx.verify_signatures()
    assert tx.signature == b58encode(tx.signatures[0])

    wire = tx.serialize()
    assert wire[0] == 2
    assert wire[1 + 128:] == tx.message_bytes()

    decoded = Transaction.deserialize(wire)
    assert decoded.message.account_keys == tx.message.account_keys
    assert decoded.verify_signatures()


def test_tampered_signature_fails_verification():
    payer = Keypair.from_seed(b"\x01" * 32)
    ix = Instruction(program_id=SYSTEM_PROGRAM, accounts=(), data=b"")
    tx = Transaction.build(fee_payer=payer.public_key, instructions=[ix], recent_blockhash=BLOCKHASH)
    tx.partial_sign(payer)

    tx.add_signature(payer.public_key, bytes(reversed(tx.signatures[0])))
    assert not tx.verify_signatures()


def test_signing_with_non_signer_is_rejected():
    payer, stranger = Keypair.from_seed(b"\x01" * 32), Keypair.from_seed(b"\x08" * 32)
    tx = Transaction.build(
        fee_payer=payer.public_key,
        instructions=[Instruction(program_id=SYSTEM_PROGRAM, accounts=())],
        recent_blockhash=BLOCKHASH,
    )
    with pytest.raises(ValueError):
        tx.partial_sign(stranger)


def test_bad_blockhash_is_rejected():
    payer = Keypair.from_seed(b"\x01" * 32)
    with pytest.raises(ValueError):
        Transaction.build(
            fee_payer=payer.public_key,
            instructions=[Instruction(program_id=SYSTEM_PROGRAM, accounts=())],
            recent_blockhash=b58encode(b"\x01" * 8),
        )


def test_pubkey_from_str_length_check():
    assert pubkey_from_str("11111111111111111111111111111111") == bytes(32)
    with pytest.raises(ValueError):
        pubkey_from_str("abc")
