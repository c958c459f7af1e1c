"""Observability utilities."""

from .audit import AuditLogRecord, AuditMiddleware
from .metrics import (
    DATA_RETENTION_AUDIT_COUNTER,
    DATA_RETENTION_PROPOSAL_COUNTER,
    REQUEST_COUNTER,
    REQUEST_ERROR_COUNTER,
    REQUEST_LATENCY_SECONDS,
    TALLIES_COUNTER,
    TALLY_REJECTIONS_COUNTER,
    VOTES_CAST_COUNTER,
    PrometheusMiddleware,
    metrics_router,
)
from .tracing import (
    initialise_tracing,
    instrument_fastapi_app,
    instrument_sqlalchemy_engine,
    span_from_traceparent,
    traced,
)

__all__ = [
    "AuditLogRecord",
    "AuditMiddleware",
    "DATA_RETENTION_AUDIT_COUNTER",
    "DATA_RETENTION_PROPOSAL_COUNTER",
    "PrometheusMiddleware",
    "REQUEST_COUNTER",
    "REQUEST_ERROR_COUNTER",
    "REQUEST_LATENCY_SECONDS",
    "TALLIES_COUNTER",
    "TALLY_REJECTIONS_COUNTER",
    "VOTES_CAST_COUNTER",
    "initialise_tracing",
    "instrument_fastapi_app",
    "instrument_sqlalchemy_engine",
    "metrics_router",
    "span_from_traceparent",
    "traced",
]
