"""
ZK Playground Services

Backend for the ZK Playground: share circuits through IPFS (with a local
fallback), keep a gallery of published circuits, and drive verifier
deployment and proof verification against a Solana-compatible ledger.

    from playground_services import create_app
    app = create_app()
"""

from __future__ import annotations

from typing import Any

from .version import __version__

__all__ = ["__version__", "create_app"]


def create_app(*args: Any, **kwargs: Any):
    # Imported lazily so that `import playground_services` stays light.
    from .app import create_app as _create_app

    return _create_app(*args, **kwargs)
