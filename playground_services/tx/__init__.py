"""
Transaction codec for the ledger: base58, ed25519 keys, legacy message format.
"""

from .base58 import b58decode, b58encode
from .keys import Keypair, Signer, keypair_signer, pubkey_from_str, verify_signature
from .message import SYSTEM_PROGRAM, AccountMeta, Instruction, Message, Transaction, create_account

__all__ = [
    "b58encode",
    "b58decode",
    "Keypair",
    "Signer",
    "keypair_signer",
    "pubkey_from_str",
    "verify_signature",
    "SYSTEM_PROGRAM",
    "AccountMeta",
    "Instruction",
    "Message",
    "Transaction",
    "create_account",
]
