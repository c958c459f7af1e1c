"""Process setup and tracing helpers shared by background workers."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator

from opentelemetry.trace import Span, Status, StatusCode

from residence.core.config import Settings, get_settings
from residence.core.logging import configure_logging
from residence.obs import initialise_tracing, span_from_traceparent

LOGGER = logging.getLogger(__name__)


def configure_worker(service_name: str) -> Settings:
    """Configure logging and tracing for a worker process and return its settings."""

    configure_logging()
    settings = get_settings()
    if settings.enable_tracing:
        initialise_tracing(
            service_name=service_name,
            endpoint=settings.otel_exporter_endpoint,
            instrument_logging=False,
        )
    LOGGER.info(
        "worker configured",
        extra={"service_name": service_name, "tracing": settings.enable_tracing},
    )
    return settings


@contextmanager
def worker_span(name: str, traceparent: str | None = None, **attributes: Any) -> Iterator[Span]:
    """Run one unit of worker work in a span, marking the span failed if it raises."""

    with span_from_traceparent(name, traceparent, **attributes) as span:
        try:
            yield span
        except Exception as exc:
            span.record_exception(exc)
            span.set_status(Status(StatusCode.ERROR, str(exc)))
            raise


__all__ = ["configure_worker", "worker_span"]
