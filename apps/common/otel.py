"""
OpenTelemetry tracing bootstrap shared by the SmartOps stub services.

Features:
- Explicit TracingContext (provider + service identity) handed to the app
- OTLP gRPC exporter (reads OTEL_* env vars via ServiceSettings)
- Best-effort collector probe: unreachable collector -> run untraced
- FastAPI + httpx instrumentation bound to the context's provider
- Optional global install (provider, propagator, log correlation)
"""

from __future__ import annotations

import logging
import socket
from dataclasses import dataclass, replace
from typing import Optional

import httpx
from fastapi import FastAPI

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.instrumentation.logging import LoggingInstrumentor
from opentelemetry.propagate import set_global_textmap
from opentelemetry.propagators.composite import CompositePropagator
from opentelemetry.baggage.propagation import W3CBaggagePropagator
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SimpleSpanProcessor,
    SpanExporter,
)

from .config import ServiceSettings, clean_endpoint, split_host_port

logger = logging.getLogger("smartops.otel")

SUPPORTED_EXPORTERS = ("otlp", "console", "none")

# Service name that owns the global provider, if any.
_global_owner: Optional[str] = None


class TracingInitError(RuntimeError):
    """
    Raised when tracing cannot be brought up completely.

    Startup must abort on this: a half-configured provider is never returned.
    """
    pass


@dataclass
class TracingContext:
    service_name: str
    provider: TracerProvider
    exporting: bool
    is_global: bool = False

    def get_tracer(self, name: str) -> trace.Tracer:
        return self.provider.get_tracer(name)

    def instrument_app(self, app: FastAPI) -> None:
        """Wrap the app so every inbound request becomes a server span."""
        FastAPIInstrumentor.instrument_app(
            app,
            tracer_provider=self.provider,
            excluded_urls="healthz,metrics",
        )

    def instrument_client(self, client: httpx.AsyncClient) -> None:
        """Outbound calls get client spans + W3C traceparent injection."""
        HTTPXClientInstrumentor.instrument_client(client, tracer_provider=self.provider)

    def shutdown(self) -> None:
        logger.info("[OTEL] Shutting down tracer provider for %s", self.service_name)
        self.provider.shutdown()


def collector_reachable(endpoint: str, timeout: float) -> bool:
    host, port = split_host_port(endpoint)
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError as exc:
        logger.debug("[OTEL] Collector probe %s:%s failed: %s", host, port, exc)
        return False


def enable_log_correlation(provider: TracerProvider) -> None:
    """Stamp otelTraceID / otelSpanID on every log record (see LOG_FORMAT)."""
    LoggingInstrumentor().instrument(tracer_provider=provider)


def build_resource(settings: ServiceSettings) -> Resource:
    return Resource.create(
        {
            "service.name": settings.service_name,
            "service.namespace": settings.namespace,
            "deployment.environment": settings.environment,
            "service.version": settings.version,
        }
    )


def _build_exporter(settings: ServiceSettings) -> tuple[Optional[SpanExporter], bool]:
    """
    Returns (exporter, batched). A None exporter means spans stay in-process.
    """
    kind = settings.traces_exporter

    if kind == "none":
        return None, False

    if kind == "console":
        return ConsoleSpanExporter(service_name=settings.service_name), False

    if kind == "otlp":
        endpoint = clean_endpoint(settings.otlp_endpoint)

        if settings.collector_probe and not collector_reachable(
            endpoint, settings.collector_probe_timeout
        ):
            # Observability is best-effort: keep serving, just untraced.
            logger.warning(
                "[OTEL] Collector %s unreachable; %s will run without span export",
                endpoint,
                settings.service_name,
            )
            return None, False

        logger.info("[OTEL] Configuring OTLP gRPC exporter → %s", endpoint)
        return OTLPSpanExporter(endpoint=endpoint, insecure=True), True

    raise TracingInitError(
        f"Unknown OTEL_TRACES_EXPORTER {kind!r}; expected one of {SUPPORTED_EXPORTERS}"
    )


def init_tracing(
    service_name: str,
    settings: Optional[ServiceSettings] = None,
    span_exporter: Optional[SpanExporter] = None,
    set_global: bool = True,
) -> TracingContext:
    """
    Bring up tracing for one service process.

    Must run (and return) before the HTTP listener binds. Either returns a
    fully wired TracingContext or raises TracingInitError.

    An explicit `span_exporter` bypasses settings.traces_exporter and is
    flushed synchronously (SimpleSpanProcessor).

    With set_global=True the provider also becomes the process-wide
    OpenTelemetry provider; that may happen only once per process.
    """
    global _global_owner

    if not service_name or not service_name.strip():
        raise ValueError("service_name must be a non-empty string")

    if settings is None:
        settings = ServiceSettings(service_name=service_name, port=0)
    elif settings.service_name != service_name:
        settings = replace(settings, service_name=service_name)

    if set_global and _global_owner is not None:
        raise TracingInitError(
            f"Tracing already initialized for {_global_owner!r}; "
            "init_tracing may run only once per process"
        )

    try:
        provider = TracerProvider(resource=build_resource(settings))

        if span_exporter is not None:
            provider.add_span_processor(SimpleSpanProcessor(span_exporter))
            exporting = True
        else:
            exporter, batched = _build_exporter(settings)
            exporting = exporter is not None
            if exporter is not None:
                processor = BatchSpanProcessor(exporter) if batched else SimpleSpanProcessor(exporter)
                provider.add_span_processor(processor)
    except TracingInitError:
        raise
    except Exception as exc:
        raise TracingInitError(f"Failed to initialize tracing for {service_name}: {exc}") from exc

    ctx = TracingContext(
        service_name=service_name,
        provider=provider,
        exporting=exporting,
        is_global=set_global,
    )

    if set_global:
        trace.set_tracer_provider(provider)
        set_global_textmap(
            CompositePropagator([TraceContextTextMapPropagator(), W3CBaggagePropagator()])
        )
        enable_log_correlation(provider)
        _global_owner = service_name

    logger.info(
        "[OTEL] Tracing initialized for %s (exporter=%s, exporting=%s)",
        service_name,
        "custom" if span_exporter is not None else settings.traces_exporter,
        exporting,
    )
    return ctx
