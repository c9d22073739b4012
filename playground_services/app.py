from __future__ import annotations

"""
FastAPI application factory.

    uvicorn playground_services.app:create_app --factory

The lifespan builds one ``Services`` container per app (unless one was passed
in, as tests do) and closes it on shutdown.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI

from .config import Settings, get_settings
from .logging import setup_logging
from .metrics import Metrics, setup_metrics
from .middleware.errors import install_error_handlers
from .middleware.request_id import RequestIdMiddleware
from .routers import build_router
from .services import Services
from .version import __version__


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    owned = app.state.services is None
    if owned:
        app.state.services = Services.from_settings(app.state.settings, metrics=app.state.metrics)
    try:
        yield
    finally:
        if owned:
            await app.state.services.aclose()
            app.state.services = None


def create_app(
    settings: Optional[Settings] = None,
    *,
    services: Optional[Services] = None,
    configure_logging: bool = True,
) -> FastAPI:
    """
    Build the app. Pass ``services`` to reuse an existing container; its
    lifetime then stays with the caller.
    """
    settings = settings or (services.settings if services else get_settings())
    if configure_logging:
        setup_logging(level=settings.log_level)

    app = FastAPI(
        title="ZK Playground Services",
        version=__version__,
        lifespan=_lifespan,
    )
    app.state.settings = settings
    app.state.services = services

    install_error_handlers(app)
    app.add_middleware(RequestIdMiddleware)

    metrics = (services.metrics if services else None) or Metrics(service_version=__version__)
    setup_metrics(app, metrics=metrics)

    app.include_router(build_router())
    return app


__all__ = ["create_app"]
