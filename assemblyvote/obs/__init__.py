"""Observability utilities."""

from .audit import AuditLogRecord, AuditMiddleware, S3AuditSink, mask_payload
from .metrics import (
    ATTENDANCE_TOGGLE_COUNTER,
    BALLOT_WEIGHT_COUNTER,
    BALLOTS_CAST_COUNTER,
    DELEGATION_COUNTER,
    OTP_DISPATCH_COUNTER,
    QUEUE_DEPTH_GAUGE,
    REQUEST_COUNTER,
    REQUEST_ERROR_COUNTER,
    REQUEST_LATENCY_SECONDS,
    SIGNATURES_EXPIRED_COUNTER,
    PrometheusMiddleware,
    metrics_router,
    report_queue_depth,
)
from .tracing import (
    core_span,
    initialise_tracing,
    inject_traceparent,
    instrument_fastapi_app,
    instrument_sqlalchemy_engine,
    span_from_traceparent,
)

__all__ = [
    "ATTENDANCE_TOGGLE_COUNTER",
    "AuditLogRecord",
    "AuditMiddleware",
    "BALLOTS_CAST_COUNTER",
    "BALLOT_WEIGHT_COUNTER",
    "DELEGATION_COUNTER",
    "OTP_DISPATCH_COUNTER",
    "PrometheusMiddleware",
    "QUEUE_DEPTH_GAUGE",
    "REQUEST_COUNTER",
    "REQUEST_ERROR_COUNTER",
    "REQUEST_LATENCY_SECONDS",
    "S3AuditSink",
    "SIGNATURES_EXPIRED_COUNTER",
    "core_span",
    "initialise_tracing",
    "inject_traceparent",
    "instrument_fastapi_app",
    "instrument_sqlalchemy_engine",
    "mask_payload",
    "metrics_router",
    "report_queue_depth",
    "span_from_traceparent",
]
