"""
Uvicorn launcher for ZK Playground Services.

Usage:
  python -m playground_services.main [--host 0.0.0.0] [--port 8080]
                                     [--workers 1] [--reload]
                                     [--log-level info]

Environment overrides (if flags not provided):
  HOST, PORT, WORKERS, RELOAD, LOG_LEVEL
"""

from __future__ import annotations

import argparse
import os
from typing import Optional

import uvicorn


def _env_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return v.lower() in ("1", "true", "yes", "y", "on")


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Run ZK Playground Services (uvicorn)")
    parser.add_argument("--host", default=os.getenv("HOST", "127.0.0.1"), help="Bind address (default: %(default)s)")
    parser.add_argument("--port", type=int, default=int(os.getenv("PORT", "8080")), help="Port (default: %(default)s)")
    parser.add_argument("--workers", type=int, default=int(os.getenv("WORKERS", "1")), help="Worker processes (default: %(default)s)")
    parser.add_argument("--reload", action="store_true", default=_env_bool("RELOAD", False), help="Enable autoreload (dev only)")
    parser.add_argument("--log-level", default=os.getenv("LOG_LEVEL", "info").lower(), help="Uvicorn log level (default: %(default)s)")
    args = parser.parse_args(argv)

    if args.reload and args.workers != 1:
        print("[playground-services] --reload implies --workers=1; overriding.")
        args.workers = 1

    # Factory import string so each worker builds its own app and services.
    uvicorn.run(
        "playground_services.app:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        log_level=args.log_level,
        reload=args.reload,
        workers=args.workers,
    )


if __name__ == "__main__":
    main()
