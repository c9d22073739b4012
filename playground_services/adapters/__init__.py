"""
Adapters for the external systems ZK Playground Services talks to.

- ipfs        : IPFS HTTP API client (add/pin) and the read-only gateway set
- ledger_rpc  : JSON-RPC client for a Solana-compatible ledger node

Submodules are loaded lazily via PEP 562 (__getattr__).
"""

from __future__ import annotations

import importlib
from typing import TYPE_CHECKING

__all__ = [
    "ipfs",
    "ledger_rpc",
]


def __getattr__(name: str):
    if name in __all__:
        return importlib.import_module(f".{name}", __name__)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__():
    return sorted(list(globals().keys()) + __all__)


if TYPE_CHECKING:
    from . import ipfs, ledger_rpc
