from __future__ import annotations

"""
Request ID middleware.

- Propagates an inbound **X-Request-Id** or generates one (uuid4 hex).
- Stores it on ``request.state.request_id`` for handlers.
- Binds ``request_id``, ``method`` and ``path`` into the structlog context for
  the duration of the request, so every log line carries them.
- Echoes the id back in the response headers.
"""

import uuid
from dataclasses import dataclass
from typing import Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from ..logging import bind_request_context, clear_request_context

_CONTEXT_KEYS = ("request_id", "method", "path")


@dataclass(frozen=True)
class RequestIdConfig:
    request_id_header: str = "X-Request-Id"


class RequestIdMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, config: Optional[RequestIdConfig] = None):
        super().__init__(app)
        self.cfg = config or RequestIdConfig()

    async def dispatch(self, request: Request, call_next):
        req_id = request.headers.get(self.cfg.request_id_header.lower()) or uuid.uuid4().hex
        request.state.request_id = req_id

        bind_request_context(request_id=req_id, method=request.method, path=request.url.path)
        try:
            response: Response = await call_next(request)
        finally:
            # Never leak context into the next request on this task.
            clear_request_context(*_CONTEXT_KEYS)

        response.headers[self.cfg.request_id_header] = req_id
        return response


__all__ = ["RequestIdConfig", "RequestIdMiddleware"]
