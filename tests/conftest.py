"""Pytest configuration and fixtures."""

from typing import Optional

import httpx
import pytest
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import SpanKind

from apps.common.config import ServiceSettings
from apps.common.otel import init_tracing


@pytest.fixture
def span_exporter():
    """Collects finished spans in memory."""
    exporter = InMemorySpanExporter()
    yield exporter
    exporter.clear()


@pytest.fixture
def make_tracing(span_exporter):
    """Build an isolated (non-global) TracingContext for a service name."""
    contexts = []

    def _make(service_name: str, settings: Optional[ServiceSettings] = None):
        ctx = init_tracing(
            service_name,
            settings,
            span_exporter=span_exporter,
            set_global=False,
        )
        contexts.append(ctx)
        return ctx

    yield _make

    for ctx in contexts:
        ctx.shutdown()


def make_settings(service_name: str, port: int = 0, delay_ms: int = 0, **overrides) -> ServiceSettings:
    options = {"traces_exporter": "none", "collector_probe": False}
    options.update(overrides)
    return ServiceSettings(service_name=service_name, port=port, delay_ms=delay_ms, **options)


def asgi_client(app) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")


def server_spans(exporter: InMemorySpanExporter):
    return [s for s in exporter.get_finished_spans() if s.kind == SpanKind.SERVER]
