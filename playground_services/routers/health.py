from __future__ import annotations

"""
Health Router

Endpoints:
  - GET /healthz : liveness (process is up)
  - GET /readyz  : readiness (local store answers, ledger node reports healthy)
"""

import asyncio
import logging
import sqlite3
import time
from typing import Any, Dict

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ..errors import ApiError
from ..models.api import Readiness
from ..services import Services
from ..version import __version__
from . import get_services

log = logging.getLogger(__name__)
router = APIRouter(tags=["health"])

_PROCESS_START = time.time()


@router.get("/healthz", summary="Liveness probe")
async def healthz() -> Dict[str, Any]:
    return {
        "status": "ok",
        "version": __version__,
        "uptime_s": round(max(0.0, time.time() - _PROCESS_START), 3),
    }


@router.get("/readyz", summary="Readiness probe", response_model=Readiness)
async def readyz(services: Services = Depends(get_services)):
    checks: Dict[str, Dict[str, Any]] = {}

    try:
        await asyncio.to_thread(services.store.get, "gallery", [])
        checks["storage"] = {"ok": True, "path": str(services.store.path)}
    except (sqlite3.Error, OSError) as exc:
        checks["storage"] = {"ok": False, "error": str(exc)}

    chain = services.chain
    try:
        await chain.ensure_ready()
        checks["ledger"] = {"ok": True, "environment": chain.environment.value}
    except ApiError as exc:
        checks["ledger"] = {"ok": False, "environment": chain.environment.value, "error": exc.code}

    ok = all(c["ok"] for c in checks.values())
    body = Readiness(ok=ok, checks=checks, version=__version__)
    if not ok:
        log.warning("readiness check failed", extra={"checks": checks})
    return JSONResponse(body.model_dump(), status_code=200 if ok else 503)
