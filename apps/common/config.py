"""
Shared service configuration.

Every service is tuned through environment variables so the same image can
run in dev / stage / prod without code changes.

Common variables:
  - SMARTOPS_ENV / SMARTOPS_NAMESPACE: deployment environment + namespace
  - OTEL_SERVICE_NAME: overrides the service identity on emitted spans
  - OTEL_EXPORTER_OTLP_ENDPOINT: collector address (gRPC)
  - OTEL_TRACES_EXPORTER: otlp | console | none
  - OTEL_COLLECTOR_PROBE / OTEL_COLLECTOR_PROBE_TIMEOUT: startup reachability check

Per-service variables use a prefix (e.g. AUTHORIZATION_PORT, CATALOG_DELAY_MS).
"""

from __future__ import annotations

import os
from dataclasses import dataclass


def env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "y")


@dataclass(frozen=True)
class ServiceSettings:
    service_name: str
    port: int
    delay_ms: int = 0
    host: str = "0.0.0.0"
    environment: str = "dev"
    namespace: str = "smartops-dev"
    version: str = "0.1.0"
    log_level: str = "INFO"

    otlp_endpoint: str = "http://localhost:4317"
    traces_exporter: str = "otlp"
    collector_probe: bool = True
    collector_probe_timeout: float = 1.0

    @property
    def delay_seconds(self) -> float:
        return self.delay_ms / 1000.0

    @property
    def metrics_prefix(self) -> str:
        # "ms-authorization" -> "ms_authorization"
        return self.service_name.replace("-", "_").replace(".", "_")

    @classmethod
    def from_env(
        cls,
        prefix: str,
        service_name: str,
        port: int,
        delay_ms: int = 0,
    ) -> "ServiceSettings":
        """
        Build settings for one service.

        `prefix` selects the per-service variables, so
        from_env("CATALOG", "ms-catalog", 3333, 3000) honours CATALOG_PORT,
        CATALOG_DELAY_MS, CATALOG_HOST and CATALOG_LOG_LEVEL.
        """
        prefix = prefix.upper()
        return cls(
            service_name=os.getenv("OTEL_SERVICE_NAME", service_name),
            port=int(os.getenv(f"{prefix}_PORT", str(port))),
            delay_ms=int(os.getenv(f"{prefix}_DELAY_MS", str(delay_ms))),
            host=os.getenv(f"{prefix}_HOST", "0.0.0.0"),
            environment=os.getenv("SMARTOPS_ENV", "dev"),
            namespace=os.getenv("SMARTOPS_NAMESPACE", "smartops-dev"),
            log_level=os.getenv(f"{prefix}_LOG_LEVEL", "INFO").upper(),
            otlp_endpoint=os.getenv(
                "OTEL_EXPORTER_OTLP_ENDPOINT",
                "http://localhost:4317",
            ),
            traces_exporter=os.getenv("OTEL_TRACES_EXPORTER", "otlp").strip().lower(),
            collector_probe=env_bool("OTEL_COLLECTOR_PROBE", True),
            collector_probe_timeout=float(os.getenv("OTEL_COLLECTOR_PROBE_TIMEOUT", "1.0")),
        )


def clean_endpoint(raw_endpoint: str) -> str:
    """OTLP gRPC exporter expects host:port (no http:// or https://)."""
    return raw_endpoint.replace("http://", "").replace("https://", "").rstrip("/")


def split_host_port(endpoint: str, default_port: int = 4317) -> tuple[str, int]:
    cleaned = clean_endpoint(endpoint)

    # [::1]:4317 -> ("::1", 4317)
    if cleaned.startswith("["):
        host, _, rest = cleaned[1:].partition("]")
        port = rest[1:] if rest.startswith(":") else ""
        return host, int(port) if port.isdigit() else default_port

    host, sep, port = cleaned.rpartition(":")
    if not sep or not port.isdigit():
        return cleaned, default_port
    return host, int(port)
