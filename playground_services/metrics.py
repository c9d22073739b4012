from __future__ import annotations

"""
Prometheus metrics for ZK Playground Services.

Features
--------
- A per-app ``CollectorRegistry`` (no global default registry), so several
  apps can coexist in one process (tests).
- Low-overhead ASGI middleware that records:
    - http_requests_total{method,path,status}
    - http_request_duration_seconds histogram
    - http_inprogress_requests gauge
- Domain counters incremented by the services:
    - circuit_uploads_total{via}             remote pin vs local fallback
    - gateway_failures_total{gateway}        failed/timed-out gateway reads
    - chain_workflows_total{workflow,outcome} deploy/verify results
- A FastAPI router serving /metrics.

Usage
-----
    metrics = Metrics(service_name="playground-services")
    services = Services.from_settings(settings, metrics=metrics)
    setup_metrics(app, metrics=metrics)
"""

import time
from typing import Any, Dict, Optional

from fastapi import APIRouter, FastAPI
from prometheus_client import (CONTENT_TYPE_LATEST, CollectorRegistry, Counter,
                               Gauge, Histogram, Info, generate_latest)
from starlette.responses import PlainTextResponse, Response
from starlette.types import ASGIApp, Receive, Scope, Send


# ------------------------------ Registry -------------------------------------


class Metrics:
    """
    Holder for registry and metric objects. Exposed via app.state.metrics.
    """

    def __init__(self, service_name: str = "playground-services", service_version: Optional[str] = None) -> None:
        self.registry = CollectorRegistry()

        self.http_inprogress = Gauge(
            "http_inprogress_requests",
            "In-progress HTTP requests",
            ["method", "path"],
            registry=self.registry,
        )
        self.http_requests_total = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "path", "status"],
            registry=self.registry,
        )
        self.http_request_duration_seconds = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "path", "status"],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
            registry=self.registry,
        )

        # Domain
        self.circuit_uploads_total = Counter(
            "circuit_uploads_total",
            "Shared circuit uploads by storage path",
            ["via"],
            registry=self.registry,
        )
        self.gateway_failures_total = Counter(
            "gateway_failures_total",
            "Gateway reads that failed or timed out",
            ["gateway"],
            registry=self.registry,
        )
        self.chain_workflows_total = Counter(
            "chain_workflows_total",
            "Deploy/verify workflow outcomes",
            ["workflow", "outcome"],
            registry=self.registry,
        )

        self.service_info = Info("service", "Service metadata", registry=self.registry)
        payload = {"name": service_name}
        if service_version:
            payload["version"] = service_version
        self.service_info.info(payload)

    # --- domain helpers ---------------------------------------------------- #

    def upload(self, via: str) -> None:
        self.circuit_uploads_total.labels(via).inc()

    def gateway_failure(self, gateway: str) -> None:
        self.gateway_failures_total.labels(gateway).inc()

    def workflow(self, workflow: str, outcome: str) -> None:
        self.chain_workflows_total.labels(workflow, outcome).inc()

    def render_latest(self) -> bytes:
        return generate_latest(self.registry)


# ------------------------------ Middleware -----------------------------------


def _extract_path_template(scope: Scope) -> str:
    route = scope.get("route")
    for attr in ("path_format", "path"):
        if route is not None and hasattr(route, attr):
            val = getattr(route, attr, None)
            if isinstance(val, str) and val:
                return val
    return scope.get("path") or ""


class PrometheusMiddleware:
    def __init__(self, app: ASGIApp, metrics: Metrics):
        self.app = app
        self.metrics = metrics

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        method = scope.get("method", "GET")
        path_tmpl = _extract_path_template(scope)
        start = time.perf_counter()
        status_code = 500

        self.metrics.http_inprogress.labels(method, path_tmpl).inc()

        async def send_wrapped(message: Dict[str, Any]) -> None:
            nonlocal status_code
            if message.get("type") == "http.response.start":
                status_code = int(message.get("status", 500))
            await send(message)

        try:
            await self.app(scope, receive, send_wrapped)
        finally:
            duration = time.perf_counter() - start
            labels = (method, path_tmpl, str(status_code))
            try:
                self.metrics.http_requests_total.labels(*labels).inc()
                self.metrics.http_request_duration_seconds.labels(*labels).observe(duration)
            finally:
                self.metrics.http_inprogress.labels(method, path_tmpl).dec()


# ------------------------------ Router ---------------------------------------


def create_metrics_router(metrics: Metrics, path: str = "/metrics") -> APIRouter:
    router = APIRouter()

    @router.get(path, include_in_schema=False)
    async def metrics_endpoint() -> Response:
        try:
            return Response(content=metrics.render_latest(), media_type=CONTENT_TYPE_LATEST)
        except Exception as e:  # exporters must not take the app down
            return PlainTextResponse(f"metrics error: {e}", status_code=500)

    return router


def setup_metrics(
    app: FastAPI,
    *,
    metrics: Optional[Metrics] = None,
    service_version: Optional[str] = None,
    path: str = "/metrics",
) -> Metrics:
    """
    Add the HTTP middleware, mount the exporter and store the instance in
    ``app.state.metrics``.
    """
    metrics = metrics or Metrics(service_version=service_version)
    app.add_middleware(PrometheusMiddleware, metrics=metrics)
    app.include_router(create_metrics_router(metrics, path))
    app.state.metrics = metrics
    return metrics


__all__ = [
    "Metrics",
    "PrometheusMiddleware",
    "create_metrics_router",
    "setup_metrics",
]
