"""
Payment service.

POST /process_payment:
  1. Fetch product from catalog
  2. Ask authorization service
  3. Record a "process payment" span and answer

Both downstream calls go through one instrumented httpx client, so catalog
and authorization spans join the payment request's trace.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from prometheus_client import Counter
from pydantic import BaseModel, Field

from apps.common.config import ServiceSettings
from apps.common.logging_setup import configure_logging, uvicorn_log_options
from apps.common.metrics import ServiceMetrics, install_metrics
from apps.common.otel import TracingContext, init_tracing
from apps.payment.clients import DownstreamClients, DownstreamError

SERVICE_NAME = "ms-payment"
DEFAULT_PORT = 8080

logger = logging.getLogger("smartops.payment")


@dataclass(frozen=True)
class PaymentSettings:
    service: ServiceSettings
    catalog_url: str = "http://127.0.0.1:3333"
    authorization_url: str = "http://localhost:8081"
    http_timeout: float = 5.0


def get_settings() -> PaymentSettings:
    return PaymentSettings(
        service=ServiceSettings.from_env("PAYMENT", SERVICE_NAME, DEFAULT_PORT),
        catalog_url=os.getenv("CATALOG_URL", "http://127.0.0.1:3333"),
        authorization_url=os.getenv("AUTHORIZATION_URL", "http://localhost:8081"),
        http_timeout=float(os.getenv("PAYMENT_HTTP_TIMEOUT", "5")),
    )


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

class PaymentRequest(BaseModel):
    product_id: str = Field(..., min_length=1)
    payment_token: str = Field(..., min_length=1)


class PaymentMetrics(ServiceMetrics):
    def __init__(self, prefix: str) -> None:
        super().__init__(prefix)

        self.initiated = Counter(
            "payment_init_total",
            "Payments completed successfully",
            registry=self.registry,
        )
        self.errors = Counter(
            "payment_error_total",
            "Payments that failed",
            ["reason"],  # bad_request | product | authorization | not_authorized
            registry=self.registry,
        )


def _fail(span: trace.Span, exc: Exception, message: str) -> None:
    logger.warning("%s: %s", message, exc)
    span.record_exception(exc)
    span.set_status(Status(StatusCode.ERROR, message))


def create_app(
    settings: Optional[PaymentSettings] = None,
    tracing: Optional[TracingContext] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    settings = settings or get_settings()
    svc = settings.service
    tracing = tracing or init_tracing(svc.service_name, svc)
    tracer = tracing.get_tracer(__name__)

    owns_client = http_client is None
    if http_client is None:
        http_client = httpx.AsyncClient(timeout=settings.http_timeout)
    tracing.instrument_client(http_client)

    clients = DownstreamClients(http_client, settings.catalog_url, settings.authorization_url)
    metrics = PaymentMetrics(svc.metrics_prefix)

    app = FastAPI(
        title="Payment Service",
        description="Processes payments against catalog + authorization.",
        version=svc.version,
    )
    app.state.settings = settings
    app.state.tracing = tracing
    app.state.metrics = metrics

    install_metrics(app, metrics)

    @app.exception_handler(RequestValidationError)
    async def bad_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        metrics.errors.labels(reason="bad_request").inc()
        return JSONResponse(status_code=400, content={"error": str(exc.errors())})

    @app.get("/healthz", tags=["internal"])
    def healthz() -> dict:
        return {"status": "ok", "service": svc.service_name}

    @app.post("/process_payment", tags=["payment"])
    async def process_payment(payment: PaymentRequest):
        span = trace.get_current_span()
        span.set_attribute("payment.product_id", payment.product_id)

        try:
            product = await clients.get_product(payment.product_id)
        except DownstreamError as exc:
            metrics.errors.labels(reason="product").inc()
            _fail(span, exc, "Could not fetch product")
            return JSONResponse(status_code=500, content={"error": "Could not fetch product"})

        try:
            authorized = await clients.authorize(payment.payment_token, product.price)
        except DownstreamError as exc:
            metrics.errors.labels(reason="authorization").inc()
            _fail(span, exc, "Could not authorize payment")
            return JSONResponse(status_code=500, content={"error": "Could not authorize payment"})

        if not authorized:
            metrics.errors.labels(reason="not_authorized").inc()
            logger.info("Payment for product %s not authorized", product.id)
            return JSONResponse(status_code=403, content={"status": "Payment not authorized"})

        with tracer.start_as_current_span("process payment") as work:
            work.set_attribute("payment.product_id", product.id)
            work.set_attribute("payment.amount", product.price)
            work.set_status(Status(StatusCode.OK, "Payment successful"))

        metrics.initiated.inc()
        return {"status": "Payment successful"}

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        if owns_client:
            await http_client.aclose()
        tracing.shutdown()

    tracing.instrument_app(app)
    return app


def main() -> None:
    import uvicorn

    settings = get_settings()
    svc = settings.service
    configure_logging(svc.log_level)
    tracing = init_tracing(svc.service_name, svc)
    app = create_app(settings, tracing)

    logger.info("Listening on http://localhost:%d", svc.port)
    uvicorn.run(app, host=svc.host, port=svc.port, **uvicorn_log_options(svc.log_level))


if __name__ == "__main__":
    main()
