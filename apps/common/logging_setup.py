import logging
from typing import Any, Dict

LOG_FORMAT = (
    "%(asctime)s | %(levelname)s | %(name)s | "
    "trace_id=%(otelTraceID)s span_id=%(otelSpanID)s | %(message)s"
)


class TraceContextDefaults(logging.Filter):
    """
    Fills otelTraceID/otelSpanID with zeros on records created before the
    OpenTelemetry logging instrumentation is active, so LOG_FORMAT always
    renders.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "otelTraceID"):
            record.otelTraceID = "0"
        if not hasattr(record, "otelSpanID"):
            record.otelSpanID = "0"
        return True


def configure_logging(level: str = "INFO") -> None:
    """Root logging for a service process. Call before tracing bootstrap."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    for handler in logging.getLogger().handlers:
        handler.addFilter(TraceContextDefaults())


def uvicorn_log_options(level: str = "INFO") -> Dict[str, Any]:
    """
    Keep uvicorn on the root handlers configured above; access lines are
    dropped since every request is already a server span.
    """
    return {
        "log_config": None,
        "access_log": False,
        "log_level": level.lower(),
    }
