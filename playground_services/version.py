"""
Version metadata for ZK Playground Services.

Bump ``__version__`` when making a release; use semver (MAJOR.MINOR.PATCH).
"""

from __future__ import annotations

__version__ = "0.1.0"

__all__ = ["__version__"]
