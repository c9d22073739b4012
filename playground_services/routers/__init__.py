"""
Routers package: aggregates all HTTP routes into a single APIRouter.

Usage (from app factory):
    from playground_services.routers import build_router
    app.include_router(build_router())
"""

from __future__ import annotations

from fastapi import APIRouter, Request

from ..services import Services


def get_services(request: Request) -> Services:
    """FastAPI dependency: the ``Services`` built in the app lifespan."""
    return request.app.state.services


def build_router() -> APIRouter:
    from . import circuits, gallery, health, network

    router = APIRouter()
    for module in (health, circuits, gallery, network):
        router.include_router(module.router)
    return router


__all__ = ["build_router", "get_services"]
