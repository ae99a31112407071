"""Tests for the authorization service."""

import asyncio
import time

import pytest
from opentelemetry.trace import SpanKind

from apps.authorization.app import DEFAULT_DELAY_MS, SERVICE_NAME, create_app

from conftest import asgi_client, make_settings, server_spans


@pytest.fixture
def build_app(make_tracing):
    def _build(delay_ms: int = 0):
        settings = make_settings(SERVICE_NAME, port=8081, delay_ms=delay_ms)
        return create_app(settings, make_tracing(SERVICE_NAME, settings))

    return _build


class TestAuthorize:
    """Tests for GET /authorize."""

    @pytest.mark.asyncio
    async def test_returns_authorized_after_default_delay(self, build_app):
        app = build_app(DEFAULT_DELAY_MS)

        async with asgi_client(app) as client:
            start = time.perf_counter()
            resp = await client.get("/authorize")
            elapsed = time.perf_counter() - start

        assert resp.status_code == 200
        assert resp.content == b'{"status":"authorized"}'
        assert elapsed >= DEFAULT_DELAY_MS / 1000.0

    @pytest.mark.asyncio
    async def test_concurrent_requests_do_not_serialize(self, build_app):
        """N requests finish in about one delay, not N x delay."""
        delay_ms = 500
        app = build_app(delay_ms)

        async with asgi_client(app) as client:
            start = time.perf_counter()
            responses = await asyncio.gather(*(client.get("/authorize") for _ in range(10)))
            elapsed = time.perf_counter() - start

        assert all(r.status_code == 200 for r in responses)
        assert elapsed >= delay_ms / 1000.0
        assert elapsed < 2 * delay_ms / 1000.0

    @pytest.mark.asyncio
    async def test_body_identical_across_calls(self, build_app):
        app = build_app()

        async with asgi_client(app) as client:
            bodies = {(await client.get("/authorize")).content for _ in range(5)}

        assert bodies == {b'{"status":"authorized"}'}

    @pytest.mark.asyncio
    async def test_request_recorded_as_server_span(self, build_app, span_exporter):
        app = build_app()

        async with asgi_client(app) as client:
            await client.get("/authorize")

        spans = server_spans(span_exporter)
        assert len(spans) == 1
        assert spans[0].kind == SpanKind.SERVER
        assert spans[0].resource.attributes["service.name"] == SERVICE_NAME
        assert "/authorize" in spans[0].name

    @pytest.mark.asyncio
    async def test_client_disconnect_abandons_request(self, build_app):
        app = build_app(5000)
        sent = []
        messages = iter([{"type": "http.request", "body": b"", "more_body": False}])

        async def receive():
            try:
                return next(messages)
            except StopIteration:
                await asyncio.sleep(0.05)
                return {"type": "http.disconnect"}

        async def send(message):
            sent.append(message)

        scope = {
            "type": "http",
            "asgi": {"version": "3.0", "spec_version": "2.4"},
            "http_version": "1.1",
            "method": "GET",
            "scheme": "http",
            "path": "/authorize",
            "raw_path": b"/authorize",
            "root_path": "",
            "query_string": b"",
            "headers": [(b"host", b"testserver")],
            "client": ("127.0.0.1", 50000),
            "server": ("testserver", 80),
        }

        start = time.perf_counter()
        await app(scope, receive, send)
        elapsed = time.perf_counter() - start

        assert elapsed < 1.0
        starts = [m for m in sent if m["type"] == "http.response.start"]
        assert starts and starts[0]["status"] == 499


class TestServiceEndpoints:
    @pytest.mark.asyncio
    async def test_unknown_path_is_404(self, build_app):
        async with asgi_client(build_app()) as client:
            resp = await client.get("/nope")
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_wrong_method_is_405(self, build_app):
        async with asgi_client(build_app()) as client:
            resp = await client.post("/authorize")
        assert resp.status_code == 405

    @pytest.mark.asyncio
    async def test_healthz(self, build_app):
        async with asgi_client(build_app()) as client:
            resp = await client.get("/healthz")
        assert resp.json() == {"status": "ok", "service": SERVICE_NAME}

    @pytest.mark.asyncio
    async def test_metrics_count_requests(self, build_app):
        app = build_app()

        async with asgi_client(app) as client:
            await client.get("/authorize")
            await client.get("/authorize")
            resp = await client.get("/metrics")

        assert resp.status_code == 200
        assert "ms_authorization_requests_total" in resp.text
        assert app.state.metrics.registry.get_sample_value(
            "ms_authorization_requests_total",
            {"method": "GET", "endpoint": "/authorize"},
        ) == 2.0

    def test_sync_client_roundtrip(self, build_app):
        """Runs through the full app lifecycle, including shutdown."""
        from fastapi.testclient import TestClient

        with TestClient(build_app()) as client:
            resp = client.get("/authorize")

        assert resp.status_code == 200
        assert resp.json() == {"status": "authorized"}
