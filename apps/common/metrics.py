"""
Prometheus metrics for the stub services.

Each app gets its own CollectorRegistry so several apps can live in one
process (tests) without duplicate-timeseries errors.
"""

from __future__ import annotations

import time

from fastapi import FastAPI, Request, Response
from prometheus_client import (
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
    CONTENT_TYPE_LATEST,
)


class ServiceMetrics:
    def __init__(self, prefix: str) -> None:
        self.registry = CollectorRegistry()

        self.requests = Counter(
            f"{prefix}_requests_total",
            "Total number of requests handled",
            ["method", "endpoint"],
            registry=self.registry,
        )

        self.duration = Histogram(
            f"{prefix}_request_duration_seconds",
            "Request duration including simulated delay",
            ["endpoint"],
            buckets=[0.1, 0.5, 1, 2, 3, 5, 10],
            registry=self.registry,
        )

    def render(self) -> Response:
        return Response(generate_latest(self.registry), media_type=CONTENT_TYPE_LATEST)


def install_metrics(app: FastAPI, metrics: ServiceMetrics) -> None:
    """Request counting middleware + GET /metrics."""

    @app.middleware("http")
    async def prometheus_middleware(request: Request, call_next):
        path = request.url.path
        if path == "/metrics":
            return await call_next(request)

        metrics.requests.labels(method=request.method, endpoint=path).inc()
        start = time.perf_counter()
        response = await call_next(request)
        metrics.duration.labels(endpoint=path).observe(time.perf_counter() - start)
        return response

    @app.get("/metrics", include_in_schema=False)
    def metrics_endpoint() -> Response:
        return metrics.render()
