"""
Catalog stub service.

GET /get_product returns the same example product for every request after a
simulated lookup delay.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, Response
from opentelemetry import trace

from apps.common.config import ServiceSettings
from apps.common.delay import suspend_or_disconnect
from apps.common.logging_setup import configure_logging, uvicorn_log_options
from apps.common.metrics import ServiceMetrics, install_metrics
from apps.common.otel import TracingContext, init_tracing

SERVICE_NAME = "ms-catalog"
DEFAULT_PORT = 3333
DEFAULT_DELAY_MS = 3000

EXAMPLE_PRODUCT: Dict[str, Any] = {
    "id": "123",
    "name": "Example Product",
    "price": 49.99,
}

logger = logging.getLogger("smartops.catalog")


def get_settings() -> ServiceSettings:
    return ServiceSettings.from_env("CATALOG", SERVICE_NAME, DEFAULT_PORT, DEFAULT_DELAY_MS)


def create_app(
    settings: Optional[ServiceSettings] = None,
    tracing: Optional[TracingContext] = None,
) -> FastAPI:
    settings = settings or get_settings()
    tracing = tracing or init_tracing(settings.service_name, settings)

    app = FastAPI(
        title="Catalog Service",
        description="Stub product lookup with simulated latency.",
        version=settings.version,
    )
    app.state.settings = settings
    app.state.tracing = tracing

    metrics = ServiceMetrics(settings.metrics_prefix)
    app.state.metrics = metrics
    install_metrics(app, metrics)

    @app.get("/healthz", tags=["internal"])
    def healthz() -> dict:
        return {"status": "ok", "service": settings.service_name}

    # product_id is what callers send; every id resolves to the example product
    @app.get("/get_product", tags=["catalog"])
    async def get_product(request: Request, product_id: Optional[str] = None):
        if not await suspend_or_disconnect(request, settings.delay_seconds):
            trace.get_current_span().set_attribute("app.request.abandoned", True)
            return Response(status_code=499)
        return EXAMPLE_PRODUCT

    @app.on_event("shutdown")
    def on_shutdown() -> None:
        tracing.shutdown()

    tracing.instrument_app(app)
    return app


def main() -> None:
    import uvicorn

    settings = get_settings()
    configure_logging(settings.log_level)
    tracing = init_tracing(settings.service_name, settings)
    app = create_app(settings, tracing)

    logger.info("Listening on http://localhost:%d", settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port, **uvicorn_log_options(settings.log_level))


if __name__ == "__main__":
    main()
